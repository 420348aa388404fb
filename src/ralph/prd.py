"""PRD (task list) file contract: user stories with priorities and pass flags."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_STORY_ID_PATTERN = re.compile(r"^US-(\d+)")


@dataclass(slots=True)
class UserStory:
    """One unit of checklist work."""

    id: str
    title: str
    priority: int = 0
    passes: bool = False
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.description:
            payload["description"] = self.description
        payload["acceptanceCriteria"] = list(self.acceptance_criteria)
        payload["priority"] = self.priority
        payload["passes"] = self.passes
        if self.notes:
            payload["notes"] = self.notes
        return payload

    def format_for_display(self) -> str:
        status = "[x]" if self.passes else "[ ]"
        lines = [f"{status} {self.id}: {self.title} (P{self.priority})"]
        if self.description:
            lines.append(f"    {self.description}")
        if self.acceptance_criteria:
            lines.append("    Acceptance Criteria:")
            lines.extend(f"      - {criterion}" for criterion in self.acceptance_criteria)
        if self.notes:
            lines.append(f"    Notes: {self.notes}")
        return "\n".join(lines)


@dataclass(slots=True)
class Prd:
    """Product requirements document backing the loop."""

    branch_name: str = ""
    user_stories: list[UserStory] = field(default_factory=list)

    def add_story(self, story: UserStory) -> UserStory:
        if not story.id:
            story.id = self._generate_id()
        self.user_stories.append(story)
        return story

    def get_story(self, story_id: str) -> UserStory | None:
        wanted = story_id.upper()
        for story in self.user_stories:
            if story.id.upper() == wanted:
                return story
        return None

    def require_story(self, story_id: str) -> UserStory:
        story = self.get_story(story_id)
        if story is None:
            raise KeyError(f"story {story_id} not found")
        return story

    def update_story(self, story: UserStory) -> None:
        for index, existing in enumerate(self.user_stories):
            if existing.id.upper() == story.id.upper():
                self.user_stories[index] = story
                return
        raise KeyError(f"story {story.id} not found")

    def mark_done(self, story_id: str) -> UserStory:
        story = self.require_story(story_id)
        story.passes = True
        return story

    def mark_pending(self, story_id: str) -> UserStory:
        story = self.require_story(story_id)
        story.passes = False
        return story

    def delete_story(self, story_id: str) -> UserStory:
        story = self.require_story(story_id)
        self.user_stories.remove(story)
        return story

    def pending_stories(self) -> list[UserStory]:
        return [story for story in self.user_stories if not story.passes]

    def completed_stories(self) -> list[UserStory]:
        return [story for story in self.user_stories if story.passes]

    def next_story(self) -> UserStory | None:
        """Pending story with the lowest priority value; ties keep list order."""

        pending = self.pending_stories()
        if not pending:
            return None
        return min(pending, key=lambda story: story.priority)

    def is_complete(self) -> bool:
        """True when the list is non-empty and every story passes."""

        return bool(self.user_stories) and all(story.passes for story in self.user_stories)

    def stats(self) -> tuple[int, int, int]:
        total = len(self.user_stories)
        completed = sum(1 for story in self.user_stories if story.passes)
        return total, completed, total - completed

    def to_dict(self) -> dict[str, Any]:
        return {
            "branchName": self.branch_name,
            "userStories": [story.to_dict() for story in self.user_stories],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() + "\n", "utf-8")

    def _generate_id(self) -> str:
        highest = 0
        for story in self.user_stories:
            match = _STORY_ID_PATTERN.match(story.id)
            if match is not None:
                highest = max(highest, int(match.group(1)))
        return f"US-{highest + 1:03d}"


def load_prd(path: Path) -> Prd:
    """Load and validate a PRD JSON document."""

    raw = json.loads(path.read_text("utf-8"))
    if not isinstance(raw, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return parse_prd(raw)


def parse_prd(raw: dict[str, Any]) -> Prd:
    branch_name = raw.get("branchName", "")
    raw_stories = raw.get("userStories", [])
    if not isinstance(branch_name, str):
        raise TypeError("prd.branchName must be a string")
    if raw_stories is None:
        raw_stories = []
    if not isinstance(raw_stories, list):
        raise TypeError("prd.userStories must be an array")
    return Prd(
        branch_name=branch_name,
        user_stories=[_parse_story(item) for item in raw_stories],
    )


def _parse_story(item: object) -> UserStory:
    if not isinstance(item, dict):
        raise TypeError("prd.userStories entry must be an object")
    story_id = item.get("id", "")
    title = item.get("title", "")
    priority = item.get("priority", 0)
    passes = item.get("passes", False)
    description = item.get("description", "")
    criteria = item.get("acceptanceCriteria") or []
    notes = item.get("notes", "")
    if not isinstance(story_id, str):
        raise TypeError("userStory.id must be a string")
    if not isinstance(title, str):
        raise TypeError("userStory.title must be a string")
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise TypeError(f"userStory.priority must be an integer (story {story_id!r})")
    if not isinstance(passes, bool):
        raise TypeError(f"userStory.passes must be a boolean (story {story_id!r})")
    if not isinstance(description, str) or not isinstance(notes, str):
        raise TypeError(f"userStory description/notes must be strings (story {story_id!r})")
    if not isinstance(criteria, list) or not all(isinstance(c, str) for c in criteria):
        raise TypeError(f"userStory.acceptanceCriteria must be an array of strings ({story_id!r})")
    return UserStory(
        id=story_id,
        title=title,
        priority=priority,
        passes=passes,
        description=description,
        acceptance_criteria=list(criteria),
        notes=notes,
    )


def default_prd(branch_name: str = "ralph/feature", *, minimal: bool = False) -> Prd:
    prd = Prd(branch_name=branch_name)
    if not minimal:
        prd.add_story(
            UserStory(
                id="",
                title="Example user story",
                description="Replace this with your actual user story",
                acceptance_criteria=[
                    "Define clear acceptance criteria",
                    "Include testable conditions",
                    "typecheck passes",
                    "tests pass",
                ],
                priority=1,
            ),
        )
    return prd
