from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from ralph.prd import Prd, UserStory, default_prd, load_prd, parse_prd

pytestmark = [
    allure.epic("Task List"),
    allure.feature("PRD File"),
]


def _prd(*priorities: int, passes: tuple[bool, ...] = ()) -> Prd:
    flags = passes or (False,) * len(priorities)
    return Prd(
        branch_name="ralph/test",
        user_stories=[
            UserStory(id=f"US-{index:03d}", title=f"Story {index}", priority=priority, passes=done)
            for index, (priority, done) in enumerate(zip(priorities, flags, strict=True), start=1)
        ],
    )


def test_next_story_picks_lowest_priority_value() -> None:
    story = _prd(3, 1, 2).next_story()

    assert story is not None
    assert story.priority == 1
    assert story.id == "US-002"


def test_next_story_breaks_ties_by_list_order() -> None:
    story = _prd(2, 1, 1).next_story()

    assert story is not None
    assert story.id == "US-002"


def test_next_story_skips_passing_stories() -> None:
    story = _prd(1, 2, passes=(True, False)).next_story()

    assert story is not None
    assert story.id == "US-002"
    assert _prd(1, passes=(True,)).next_story() is None


def test_is_complete_requires_non_empty_all_passing() -> None:
    assert Prd().is_complete() is False
    assert _prd(1, 2, passes=(True, False)).is_complete() is False
    assert _prd(1, 2, passes=(True, True)).is_complete() is True


def test_stats() -> None:
    assert _prd(1, 2, 3, passes=(True, False, True)).stats() == (3, 2, 1)
    assert Prd().stats() == (0, 0, 0)


def test_add_story_generates_next_id() -> None:
    prd = _prd(1, 2)
    prd.user_stories.append(UserStory(id="custom", title="No number"))

    story = prd.add_story(UserStory(id="", title="New"))

    assert story.id == "US-003"
    assert Prd().add_story(UserStory(id="", title="First")).id == "US-001"


def test_story_lookup_is_case_insensitive() -> None:
    prd = _prd(1, 2)

    assert prd.get_story("us-002") is prd.user_stories[1]
    assert prd.get_story("US-404") is None
    with pytest.raises(KeyError, match="US-404"):
        prd.require_story("US-404")


def test_mark_done_pending_and_delete() -> None:
    prd = _prd(1, 2)

    prd.mark_done("US-001")
    assert [story.id for story in prd.completed_stories()] == ["US-001"]
    prd.mark_pending("us-001")
    assert prd.completed_stories() == []
    prd.delete_story("US-002")
    assert [story.id for story in prd.user_stories] == ["US-001"]


def test_update_story_replaces_by_id() -> None:
    prd = _prd(1)

    prd.update_story(UserStory(id="US-001", title="Renamed", priority=9))

    assert prd.user_stories[0].title == "Renamed"
    with pytest.raises(KeyError):
        prd.update_story(UserStory(id="US-999", title="Missing"))


def test_save_and_load_use_camel_case_keys(tmp_path: Path) -> None:
    path = tmp_path / ".ralph" / "prd.json"
    prd = _prd(1)
    prd.user_stories[0].acceptance_criteria = ["tests pass"]
    prd.user_stories[0].notes = "watch the cache"

    prd.save(path)

    raw = json.loads(path.read_text("utf-8"))
    assert raw["branchName"] == "ralph/test"
    assert raw["userStories"][0]["acceptanceCriteria"] == ["tests pass"]
    assert raw["userStories"][0]["passes"] is False
    assert load_prd(path) == prd


def test_parse_prd_validates_types() -> None:
    with pytest.raises(TypeError, match="userStories"):
        parse_prd({"userStories": {}})
    with pytest.raises(TypeError, match="priority"):
        parse_prd({"userStories": [{"id": "US-001", "title": "x", "priority": "high"}]})
    with pytest.raises(TypeError, match="passes"):
        parse_prd({"userStories": [{"id": "US-001", "title": "x", "passes": "yes"}]})


def test_load_prd_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "prd.json"
    path.write_text("[]", "utf-8")

    with pytest.raises(TypeError, match="Expected JSON object"):
        load_prd(path)


def test_format_for_display() -> None:
    story = UserStory(
        id="US-001",
        title="Login",
        priority=2,
        passes=True,
        description="Users can log in",
        acceptance_criteria=["form renders"],
    )

    text = story.format_for_display()

    assert text.splitlines()[0] == "[x] US-001: Login (P2)"
    assert "    Users can log in" in text
    assert "      - form renders" in text


def test_default_prd() -> None:
    assert default_prd("feature/x", minimal=True) == Prd(branch_name="feature/x")
    example = default_prd()
    assert example.branch_name == "ralph/feature"
    assert [story.id for story in example.user_stories] == ["US-001"]
