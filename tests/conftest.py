"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import shlex
import sys
from pathlib import Path

import pytest

from ralph.config import Settings
from ralph.prd import Prd, UserStory
from ralph.progress import create_progress
from ralph.prompt import create_template

PYTHON = shlex.quote(sys.executable)


def python_command(script: Path, *args: str) -> str:
    """Shell-style command line running ``script`` with the current interpreter."""

    return " ".join([PYTHON, shlex.quote(str(script)), *(shlex.quote(arg) for arg in args)])


def write_script(path: Path, body: str) -> Path:
    path.write_text(body.strip() + "\n", "utf-8")
    return path


RECORD_ENV_SCRIPT = """
import json
import os
import sys

with open(sys.argv[1], "a", encoding="utf-8") as handle:
    env = {key: value for key, value in os.environ.items() if key.startswith("RALPH_")}
    handle.write(json.dumps(env) + "\\n")
"""


def read_records(path: Path) -> list[dict[str, str]]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text("utf-8").splitlines() if line]


@pytest.fixture(autouse=True)
def _clean_ralph_env(monkeypatch):
    """Keep ``RALPH_*`` variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("RALPH_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def project_dir(tmp_path: Path, monkeypatch) -> Path:
    """Empty working directory; relative ``.ralph/`` paths resolve inside it."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def record_env_hook(tmp_path: Path):
    """Factory returning a hook command that appends its ``RALPH_*`` env to a file."""
    script = write_script(tmp_path / "record_env.py", RECORD_ENV_SCRIPT)

    def _make(output: Path) -> str:
        return python_command(script, str(output))

    return _make


@pytest.fixture()
def ralph_project(project_dir: Path):
    """Factory writing PRD, progress log and prompt template into the project dir."""

    def _make(stories: list[UserStory], branch_name: str = "ralph/test") -> Settings:
        settings = Settings()
        settings.loop.sleep_between_seconds = 0
        settings.ensure_directories()
        Prd(branch_name=branch_name, user_stories=stories).save(settings.paths.prd)
        create_progress(settings.paths.progress)
        create_template(settings.paths.prompt)
        return settings

    return _make
