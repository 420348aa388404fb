from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ralph.prd import Prd, UserStory
from ralph.progress import ProgressLog
from ralph.prompt import (
    DEFAULT_PROMPT,
    PromptTemplateError,
    build_template_data,
    create_template,
    load_template,
    render,
)
from ralph.supervisor.backend import COMPLETION_MARKER

pytestmark = [
    allure.epic("Task List"),
    allure.feature("Prompt Template"),
]


def _data(tmp_path: Path):
    prd = Prd(
        branch_name="ralph/login",
        user_stories=[
            UserStory(id="US-001", title="Schema", priority=1, passes=True),
            UserStory(id="US-002", title="Login form", priority=2),
        ],
    )
    return build_template_data(prd, ProgressLog(path=tmp_path / "p.txt", content="notes"))


def test_build_template_data_counts_and_next_story(tmp_path: Path) -> None:
    data = _data(tmp_path)

    assert data.branch_name == "ralph/login"
    assert (data.total_count, data.completed_count, data.pending_count) == (2, 1, 1)
    assert data.next_story.id == "US-002"
    assert '"branchName": "ralph/login"' in data.prd
    assert data.progress == "notes"


def test_default_template_renders_all_fields(tmp_path: Path) -> None:
    rendered = render(DEFAULT_PROMPT, _data(tmp_path))

    assert "`ralph/login`" in rendered
    assert "- **Next Story:** US-002 - Login form" in rendered
    assert "- **Pending:** 1" in rendered
    assert COMPLETION_MARKER in rendered
    assert "{prd}" not in rendered


def test_render_without_next_story_uses_blank_placeholder(tmp_path: Path) -> None:
    data = build_template_data(Prd(), ProgressLog(path=tmp_path / "p.txt"))

    assert render("next=[{next_story.id}]", data) == "next=[]"


def test_literal_braces_are_doubled(tmp_path: Path) -> None:
    assert render("{{literal}} {branch_name}", _data(tmp_path)) == "{literal} ralph/login"


@pytest.mark.parametrize("template", ["{unknown}", "{next_story.nope}", "{0}", "{branch_name"])
def test_render_errors_are_prompt_template_errors(tmp_path: Path, template: str) -> None:
    with pytest.raises(PromptTemplateError):
        render(template, _data(tmp_path))


def test_create_and_load_template(tmp_path: Path) -> None:
    path = tmp_path / ".ralph" / "prompt.md"

    create_template(path)

    assert load_template(path) == DEFAULT_PROMPT
