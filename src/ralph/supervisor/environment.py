"""Loop state exposed to child processes through ``RALPH_*`` variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_ACTIVE = "RALPH_ACTIVE"
ENV_ITERATION = "RALPH_ITERATION"
ENV_MAX_ITERATIONS = "RALPH_MAX_ITERATIONS"
ENV_STORY_ID = "RALPH_STORY_ID"
ENV_STORY_TITLE = "RALPH_STORY_TITLE"
ENV_BRANCH = "RALPH_BRANCH"
ENV_PRD_PATH = "RALPH_PRD_PATH"
ENV_PROGRESS_PATH = "RALPH_PROGRESS_PATH"
ENV_PROMPT_PATH = "RALPH_PROMPT_PATH"
ENV_TOTAL_STORIES = "RALPH_TOTAL_STORIES"
ENV_DONE_STORIES = "RALPH_DONE_STORIES"
ENV_PENDING_STORIES = "RALPH_PENDING_STORIES"
ENV_AGENT_TYPE = "RALPH_AGENT_TYPE"

ENV_HOOK = "RALPH_HOOK"
ENV_ITERATIONS = "RALPH_ITERATIONS"
ENV_STORIES_COMPLETED = "RALPH_STORIES_COMPLETED"
ENV_FAILURE_REASON = "RALPH_FAILURE_REASON"


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Snapshot of supervisor state handed to the agent subprocess."""

    iteration: int
    max_iterations: int
    story_id: str = ""
    story_title: str = ""
    branch: str = ""
    prd_path: str = ""
    progress_path: str = ""
    prompt_path: str = ""
    total_stories: int = 0
    done_stories: int = 0
    pending_stories: int = 0
    agent_type: str = ""
    active: bool = True

    def to_env(self) -> dict[str, str]:
        return {
            ENV_ACTIVE: "true" if self.active else "false",
            ENV_ITERATION: str(self.iteration),
            ENV_MAX_ITERATIONS: str(self.max_iterations),
            ENV_STORY_ID: self.story_id,
            ENV_STORY_TITLE: self.story_title,
            ENV_BRANCH: self.branch,
            ENV_PRD_PATH: self.prd_path,
            ENV_PROGRESS_PATH: self.progress_path,
            ENV_PROMPT_PATH: self.prompt_path,
            ENV_TOTAL_STORIES: str(self.total_stories),
            ENV_DONE_STORIES: str(self.done_stories),
            ENV_PENDING_STORIES: str(self.pending_stories),
            ENV_AGENT_TYPE: self.agent_type,
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ExecutionContext:
        """Rebuild the context inside a hook or agent script."""

        source = os.environ if environ is None else environ
        return cls(
            active=source.get(ENV_ACTIVE, "") == "true",
            iteration=_int(source.get(ENV_ITERATION)),
            max_iterations=_int(source.get(ENV_MAX_ITERATIONS)),
            story_id=source.get(ENV_STORY_ID, ""),
            story_title=source.get(ENV_STORY_TITLE, ""),
            branch=source.get(ENV_BRANCH, ""),
            prd_path=source.get(ENV_PRD_PATH, ""),
            progress_path=source.get(ENV_PROGRESS_PATH, ""),
            prompt_path=source.get(ENV_PROMPT_PATH, ""),
            total_stories=_int(source.get(ENV_TOTAL_STORIES)),
            done_stories=_int(source.get(ENV_DONE_STORIES)),
            pending_stories=_int(source.get(ENV_PENDING_STORIES)),
            agent_type=source.get(ENV_AGENT_TYPE, ""),
        )


def child_environment(overlay: Mapping[str, str] | None = None) -> dict[str, str]:
    """Copy of the current process environment with ``overlay`` applied."""

    env = os.environ.copy()
    if overlay:
        env.update(overlay)
    return env


def _int(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0
