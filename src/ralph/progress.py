"""Append-only progress log shared between iterations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

PATTERNS_HEADING = "## Codebase Patterns"


@dataclass(slots=True)
class ProgressLog:
    path: Path
    content: str = ""

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.content, "utf-8")

    def append(self, text: str) -> None:
        if self.content and not self.content.endswith("\n"):
            self.content += "\n"
        self.content += text

    def append_entry(
        self,
        story_id: str,
        title: str,
        *,
        files_changed: list[str] | None = None,
        learnings: list[str] | None = None,
        now: datetime | None = None,
    ) -> None:
        self.append(
            format_entry(
                story_id,
                title,
                files_changed=files_changed or [],
                learnings=learnings or [],
                now=now,
            ),
        )

    def codebase_patterns(self) -> str:
        """Body of the ``## Codebase Patterns`` section, or an empty string."""

        start = self.content.find(PATTERNS_HEADING)
        if start == -1:
            return ""
        rest = self.content[start + len(PATTERNS_HEADING) :]
        end = rest.find("\n## ")
        if end == -1:
            return rest.strip()
        return rest[:end].strip()

    def tail(self, lines: int) -> str:
        parts = self.content.split("\n")
        if lines > 0 and len(parts) > lines:
            parts = parts[-lines:]
        return "\n".join(parts)


def load_progress(path: Path) -> ProgressLog:
    """Read the progress log; a missing file yields an empty log."""

    try:
        content = path.read_text("utf-8")
    except FileNotFoundError:
        content = ""
    return ProgressLog(path=path, content=content)


def create_progress(path: Path, *, now: datetime | None = None) -> ProgressLog:
    log = ProgressLog(path=path, content=default_content(now=now))
    log.save()
    return log


def default_content(*, now: datetime | None = None) -> str:
    started = (now or datetime.now()).strftime("%Y-%m-%d")
    return (
        "# Ralph Progress Log\n"
        f"Started: {started}\n"
        "\n"
        f"{PATTERNS_HEADING}\n"
        "<!-- Add reusable patterns discovered during implementation -->\n"
        "\n"
        "## Key Files\n"
        "<!-- Document important files for context -->\n"
        "\n"
        "---\n"
    )


def format_entry(
    story_id: str,
    title: str,
    *,
    files_changed: list[str],
    learnings: list[str],
    now: datetime | None = None,
) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M")
    lines = [f"\n## {stamp} - {story_id}", f"**{title}**", ""]
    if files_changed:
        lines.append("Files changed:")
        lines.extend(f"- {path}" for path in files_changed)
        lines.append("")
    if learnings:
        lines.append("**Learnings:**")
        lines.extend(f"- {item}" for item in learnings)
    lines.append("\n---\n")
    return "\n".join(lines)
