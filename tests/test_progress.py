from __future__ import annotations

from datetime import datetime
from pathlib import Path

import allure

from ralph.progress import (
    PATTERNS_HEADING,
    ProgressLog,
    create_progress,
    default_content,
    load_progress,
)

pytestmark = [
    allure.epic("Task List"),
    allure.feature("Progress Log"),
]

NOW = datetime(2026, 3, 14, 9, 30)


def test_load_missing_file_yields_empty_log(tmp_path: Path) -> None:
    log = load_progress(tmp_path / "progress.txt")

    assert log.content == ""


def test_create_writes_default_content(tmp_path: Path) -> None:
    path = tmp_path / ".ralph" / "progress.txt"

    create_progress(path, now=NOW)

    content = path.read_text("utf-8")
    assert content == default_content(now=NOW)
    assert "Started: 2026-03-14" in content
    assert PATTERNS_HEADING in content


def test_append_keeps_newline_separator(tmp_path: Path) -> None:
    log = ProgressLog(path=tmp_path / "progress.txt", content="first")

    log.append("second\n")
    log.save()

    assert load_progress(log.path).content == "first\nsecond\n"


def test_append_entry_formats_story_block(tmp_path: Path) -> None:
    log = ProgressLog(path=tmp_path / "progress.txt")

    log.append_entry(
        "US-001",
        "Login form",
        files_changed=["app/login.py"],
        learnings=["use the form helper"],
        now=NOW,
    )

    assert "## 2026-03-14 09:30 - US-001" in log.content
    assert "**Login form**" in log.content
    assert "- app/login.py" in log.content
    assert "- use the form helper" in log.content


def test_codebase_patterns_section(tmp_path: Path) -> None:
    log = ProgressLog(
        path=tmp_path / "progress.txt",
        content=f"# Log\n\n{PATTERNS_HEADING}\n- use fixtures\n- keep ids stable\n\n## Key Files\n",
    )

    assert log.codebase_patterns() == "- use fixtures\n- keep ids stable"
    assert ProgressLog(path=log.path, content="nothing here").codebase_patterns() == ""


def test_tail(tmp_path: Path) -> None:
    log = ProgressLog(path=tmp_path / "progress.txt", content="a\nb\nc\nd")

    assert log.tail(2) == "c\nd"
    assert log.tail(0) == "a\nb\nc\nd"
    assert log.tail(10) == "a\nb\nc\nd"
