"""CLI entrypoint for ralph."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from ralph import __version__
from ralph.controllers import (
    AddStoryCommand,
    EditStoryCommand,
    InitCommand,
    LogCommand,
    PromptCommand,
    RalphCliController,
    RalphCommandError,
    ResetCommand,
    RunCommand,
    StatusCommand,
    StopCommand,
    StoryCommand,
)

click.rich_click.USE_MARKDOWN = True
RALPH_CONTROLLER = RalphCliController()


@click.group()
@click.version_option(version=__version__, prog_name="ralph")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file (default: ralph.yaml or .ralph/ralph.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def ralph(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Run a coding agent in a loop until every PRD story passes."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config_path


@ralph.command("init")
@click.option("--branch", "-b", default="ralph/feature", show_default=True, help="Git branch.")
@click.option("--force", "-f", is_flag=True, default=False, help="Overwrite existing files.")
@click.option("--minimal", "-m", is_flag=True, default=False, help="Skip the example story.")
@click.pass_obj
def init(config_path: Path | None, branch: str, force: bool, minimal: bool) -> None:
    """Create `ralph.yaml`, the PRD, the progress log and the prompt template."""

    _invoke(
        lambda: RALPH_CONTROLLER.init(
            InitCommand(config_path=config_path, branch=branch, force=force, minimal=minimal),
        ),
    )


@ralph.command("run")
@click.option(
    "--max-iterations",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Override loop.maxIterations.",
)
@click.option("--once", is_flag=True, default=False, help="Run a single iteration.")
@click.option("--dry-run", is_flag=True, default=False, help="Show what would run.")
@click.option("--agent", "-a", default=None, help="Override agent.type.")
@click.pass_obj
def run(
    config_path: Path | None,
    max_iterations: int | None,
    once: bool,
    dry_run: bool,
    agent: str | None,
) -> None:
    """Run the agent loop until all stories pass or the iteration budget runs out."""

    try:
        result = RALPH_CONTROLLER.run(
            RunCommand(
                config_path=config_path,
                max_iterations=max_iterations,
                once=once,
                dry_run=dry_run,
                agent=agent,
            ),
            on_progress=click.echo,
        )
    except RalphCommandError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Ralph loop failed.")


@ralph.command("stop")
@click.option("--force", "-f", is_flag=True, default=False, help="Kill immediately (SIGKILL).")
@click.pass_obj
def stop(config_path: Path | None, force: bool) -> None:
    """Stop a running loop started from this directory."""

    _invoke(lambda: RALPH_CONTROLLER.stop(StopCommand(config_path=config_path, force=force)))


@ralph.command("status")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output the PRD as JSON.")
@click.option("--pending", is_flag=True, default=False, help="Show only pending stories.")
@click.option("--done", is_flag=True, default=False, help="Show only completed stories.")
@click.pass_obj
def status(config_path: Path | None, as_json: bool, pending: bool, done: bool) -> None:
    """Show PRD stories and overall progress."""

    _invoke(
        lambda: RALPH_CONTROLLER.status(
            StatusCommand(
                config_path=config_path,
                as_json=as_json,
                pending_only=pending,
                done_only=done,
            ),
        ),
    )


@ralph.command("add")
@click.option("--title", "-t", required=True, help="Story title.")
@click.option("--description", "-d", default="", help="Story description.")
@click.option(
    "--priority",
    "-p",
    type=int,
    default=0,
    help="Priority (lower runs first; default: after existing stories).",
)
@click.option(
    "--acceptance",
    "-a",
    "acceptance_criteria",
    multiple=True,
    help="Acceptance criterion. Can be repeated.",
)
@click.pass_obj
def add(
    config_path: Path | None,
    title: str,
    description: str,
    priority: int,
    acceptance_criteria: tuple[str, ...],
) -> None:
    """Add a user story to the PRD."""

    _invoke(
        lambda: RALPH_CONTROLLER.add(
            AddStoryCommand(
                config_path=config_path,
                title=title,
                description=description,
                priority=priority,
                acceptance_criteria=acceptance_criteria,
            ),
        ),
    )


@ralph.command("edit")
@click.argument("story_id")
@click.option("--title", "-t", default=None, help="New title.")
@click.option("--description", "-d", default=None, help="New description.")
@click.option("--priority", "-p", type=int, default=None, help="New priority.")
@click.option("--notes", "-n", default=None, help="New notes.")
@click.pass_obj
def edit(  # noqa: PLR0913
    config_path: Path | None,
    story_id: str,
    title: str | None,
    description: str | None,
    priority: int | None,
    notes: str | None,
) -> None:
    """Edit fields of an existing story."""

    _invoke(
        lambda: RALPH_CONTROLLER.edit(
            EditStoryCommand(
                config_path=config_path,
                story_id=story_id,
                title=title,
                description=description,
                priority=priority,
                notes=notes,
            ),
        ),
    )


@ralph.command("done")
@click.argument("story_id")
@click.pass_obj
def done(config_path: Path | None, story_id: str) -> None:
    """Mark a story as passing."""

    _invoke(
        lambda: RALPH_CONTROLLER.done(StoryCommand(config_path=config_path, story_id=story_id)),
    )


@ralph.command("reset")
@click.argument("story_id", required=False)
@click.option("--all", "reset_all", is_flag=True, default=False, help="Reset every story.")
@click.pass_obj
def reset(config_path: Path | None, story_id: str | None, reset_all: bool) -> None:
    """Mark a story (or all stories) as pending again."""

    _invoke(
        lambda: RALPH_CONTROLLER.reset(
            ResetCommand(config_path=config_path, story_id=story_id, reset_all=reset_all),
        ),
    )


@ralph.command("delete")
@click.argument("story_id")
@click.option("--force", "-f", is_flag=True, default=False, help="Skip confirmation.")
@click.pass_obj
def delete(config_path: Path | None, story_id: str, force: bool) -> None:
    """Delete a story from the PRD."""

    command = StoryCommand(config_path=config_path, story_id=story_id)
    if not force:
        try:
            description = RALPH_CONTROLLER.describe_story(command)
        except RalphCommandError as error:
            raise click.ClickException(str(error)) from error
        if not click.confirm(f"Delete story {description}?", default=False):
            click.echo("Cancelled")
            return
    _invoke(lambda: RALPH_CONTROLLER.delete(command))


@ralph.command("log")
@click.option("--append", "-a", default=None, help="Append a note to the log.")
@click.option("--patterns", "-p", is_flag=True, default=False, help="Show codebase patterns.")
@click.option("--clear", is_flag=True, default=False, help="Reset the progress log.")
@click.option("--tail", "-t", type=click.IntRange(min=0), default=0, help="Show last N lines.")
@click.pass_obj
def log(
    config_path: Path | None,
    append: str | None,
    patterns: bool,
    clear: bool,
    tail: int,
) -> None:
    """Show or update the progress log."""

    _invoke(
        lambda: RALPH_CONTROLLER.log(
            LogCommand(
                config_path=config_path,
                append=append,
                patterns=patterns,
                clear=clear,
                tail=tail,
            ),
        ),
    )


@ralph.command("prompt")
@click.option("--render", "-r", "render_", is_flag=True, default=False, help="Render with PRD.")
@click.option("--reset", is_flag=True, default=False, help="Restore the default template.")
@click.pass_obj
def prompt(config_path: Path | None, render_: bool, reset: bool) -> None:
    """Show, render or reset the prompt template."""

    _invoke(
        lambda: RALPH_CONTROLLER.prompt(
            PromptCommand(config_path=config_path, render=render_, reset=reset),
        ),
    )


def _invoke(call: Callable[[], list[str]]) -> None:
    try:
        lines = call()
    except RalphCommandError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ralph()
