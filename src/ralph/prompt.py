"""Agent prompt template: loading, context building and rendering."""

from __future__ import annotations

import string
from dataclasses import dataclass
from pathlib import Path

from ralph.prd import Prd, UserStory
from ralph.progress import ProgressLog


class PromptTemplateError(ValueError):
    """Template references an unknown field or is malformed."""


@dataclass(slots=True)
class TemplateData:
    """Fields available to the prompt template."""

    prd: str
    progress: str
    branch_name: str
    pending_count: int
    completed_count: int
    total_count: int
    next_story: UserStory

    def as_mapping(self) -> dict[str, object]:
        return {
            "prd": self.prd,
            "progress": self.progress,
            "branch_name": self.branch_name,
            "pending_count": self.pending_count,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "next_story": self.next_story,
        }


def load_template(path: Path) -> str:
    return path.read_text("utf-8")


def save_template(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, "utf-8")


def create_template(path: Path) -> None:
    save_template(path, DEFAULT_PROMPT)


def build_template_data(prd: Prd, progress: ProgressLog) -> TemplateData:
    total, completed, pending = prd.stats()
    return TemplateData(
        prd=prd.to_json(),
        progress=progress.content,
        branch_name=prd.branch_name,
        pending_count=pending,
        completed_count=completed,
        total_count=total,
        next_story=prd.next_story() or UserStory(id="", title=""),
    )


def render(template: str, data: TemplateData) -> str:
    """Render ``template`` with ``str.format`` fields; literal braces are doubled."""

    try:
        return string.Formatter().vformat(template, (), data.as_mapping())
    except KeyError as error:
        raise PromptTemplateError(f"unknown template field: {error}") from error
    except (AttributeError, IndexError, ValueError) as error:
        raise PromptTemplateError(f"invalid prompt template: {error}") from error


DEFAULT_PROMPT = """\
# Ralph Agent Instructions

You are Ralph, an autonomous coding agent working through a PRD (Product Requirements Document).

## Your Task

1. Read the PRD below and identify the highest priority story where `passes: false`
2. Read the progress log for context and patterns from previous work
3. Check you're on the correct branch: `{branch_name}`
4. Implement that ONE story completely
5. Run typecheck and tests to verify your work
6. Update any AGENTS.md files with learnings if you discovered reusable patterns
7. Commit your changes: `feat: [ID] - [Title]`
8. Update prd.json: set `passes: true` for the completed story
9. Append your learnings to progress.txt

## Current Status

- **Total Stories:** {total_count}
- **Completed:** {completed_count}
- **Pending:** {pending_count}
- **Branch:** {branch_name}
- **Next Story:** {next_story.id} - {next_story.title}

## PRD (prd.json)

```json
{prd}
```

## Progress Log (progress.txt)

```
{progress}
```

## Progress Format

When appending to progress.txt, use this format:

```
## [Date] - [Story ID]
**[Title]**

Files changed:
- path/to/file1
- path/to/file2

**Learnings:**
- Pattern discovered
- Gotcha encountered
---
```

## Codebase Patterns

Add reusable patterns to the TOP of progress.txt under "## Codebase Patterns".

## Stop Condition

If ALL stories have `passes: true`, output exactly:

<promise>COMPLETE</promise>

Otherwise, end your response normally after completing one story.

## Important Rules

1. **One story at a time** - Don't try to do multiple stories
2. **Verify your work** - Run typecheck and tests before committing
3. **Commit after each story** - Each story = one commit
4. **Update the PRD** - Mark the story as passing when done
5. **Log your learnings** - Help future iterations learn from your work
"""
