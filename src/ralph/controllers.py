"""Controllers for ralph CLI commands."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ralph.config import DEFAULT_CONFIG_YAML, Settings
from ralph.prd import Prd, UserStory, default_prd, load_prd
from ralph.progress import ProgressLog, create_progress, load_progress
from ralph.prompt import (
    PromptTemplateError,
    build_template_data,
    create_template,
    load_template,
    render,
)
from ralph.supervisor import (
    AlreadyRunningError,
    IterationSupervisor,
    LoopResult,
    ProcessRegistry,
    StopOutcome,
    SupervisorError,
    TerminalReason,
    cancel_on_signals,
)
from ralph.supervisor.backend import AgentRunner, resolve_agent_spec

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_CRITERIA = ("typecheck passes", "tests pass")
PROGRESS_BAR_WIDTH = 40


class RalphCommandError(RuntimeError):
    """User-facing command failure; the CLI reports it and exits non-zero."""


@dataclass(slots=True)
class InitCommand:
    """CLI input for project initialization."""

    config_path: Path | None = None
    branch: str = "ralph/feature"
    force: bool = False
    minimal: bool = False


@dataclass(slots=True)
class RunCommand:
    """CLI input for the agent loop."""

    config_path: Path | None = None
    max_iterations: int | None = None
    once: bool = False
    dry_run: bool = False
    agent: str | None = None


@dataclass(slots=True)
class RunCommandResult:
    lines: list[str]
    success: bool


@dataclass(slots=True)
class StopCommand:
    """CLI input for stopping a running loop."""

    config_path: Path | None = None
    force: bool = False


@dataclass(slots=True)
class StatusCommand:
    """CLI input for PRD status."""

    config_path: Path | None = None
    as_json: bool = False
    pending_only: bool = False
    done_only: bool = False


@dataclass(slots=True)
class AddStoryCommand:
    """CLI input for adding a user story."""

    title: str
    config_path: Path | None = None
    description: str = ""
    priority: int = 0
    acceptance_criteria: tuple[str, ...] = ()


@dataclass(slots=True)
class EditStoryCommand:
    """CLI input for editing a user story."""

    story_id: str
    config_path: Path | None = None
    title: str | None = None
    description: str | None = None
    priority: int | None = None
    notes: str | None = None


@dataclass(slots=True)
class StoryCommand:
    """CLI input for commands addressing one story by id."""

    story_id: str
    config_path: Path | None = None


@dataclass(slots=True)
class ResetCommand:
    """CLI input for resetting stories to pending."""

    config_path: Path | None = None
    story_id: str | None = None
    reset_all: bool = False


@dataclass(slots=True)
class LogCommand:
    """CLI input for progress log operations."""

    config_path: Path | None = None
    append: str | None = None
    patterns: bool = False
    clear: bool = False
    tail: int = 0


@dataclass(slots=True)
class PromptCommand:
    """CLI input for prompt template operations."""

    config_path: Path | None = None
    render: bool = False
    reset: bool = False


class RalphCliController:
    """Coordinates project files, the agent loop and the process registry."""

    def init(self, command: InitCommand) -> list[str]:
        settings = Settings()
        settings.ensure_directories()

        created: list[str] = []
        skipped: list[str] = []

        config_path = command.config_path or Path("ralph.yaml")
        if command.force or not config_path.exists():
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(DEFAULT_CONFIG_YAML, "utf-8")
            created.append(str(config_path))
        else:
            skipped.append(str(config_path))

        paths = settings.paths
        if command.force or not paths.prd.exists():
            default_prd(command.branch, minimal=command.minimal).save(paths.prd)
            created.append(str(paths.prd))
        else:
            skipped.append(str(paths.prd))

        if command.force or not paths.progress.exists():
            create_progress(paths.progress)
            created.append(str(paths.progress))
        else:
            skipped.append(str(paths.progress))

        if command.force or not paths.prompt.exists():
            create_template(paths.prompt)
            created.append(str(paths.prompt))
        else:
            skipped.append(str(paths.prompt))

        lines = ["Initializing Ralph..."]
        if created:
            lines.append("Created:")
            lines.extend(f"  - {path}" for path in created)
        if skipped:
            lines.append("Skipped (already exists):")
            lines.extend(f"  - {path}" for path in skipped)
            lines.append("  Use --force to overwrite existing files")
        lines.extend(
            [
                "",
                "Next steps:",
                f"  1. Edit {paths.prd} to add your user stories",
                f"  2. Customize {paths.prompt} if needed",
                "  3. Run 'ralph status' to see your stories",
                "  4. Run 'ralph run' to start the loop",
            ],
        )
        return lines

    def run(
        self,
        command: RunCommand,
        *,
        on_progress: Callable[[str], None] | None = None,
    ) -> RunCommandResult:
        """Run the loop (or one iteration) while holding the PID record."""

        settings = self._settings(command.config_path)
        if command.max_iterations is not None:
            settings.loop.max_iterations = command.max_iterations
        if command.once:
            settings.loop.max_iterations = 1
        if command.agent:
            settings.agent.type = command.agent
        try:
            settings.validate()
        except ValueError as error:
            raise RalphCommandError(f"Invalid configuration: {error}") from error

        if not settings.paths.prd.exists():
            raise RalphCommandError(
                f"PRD not found at {settings.paths.prd}. Run 'ralph init' first.",
            )
        if not settings.paths.prompt.exists():
            raise RalphCommandError(
                f"Prompt not found at {settings.paths.prompt}. Run 'ralph init' first.",
            )

        runner = AgentRunner(resolve_agent_spec(settings.agent))
        supervisor = IterationSupervisor(settings, runner=runner, on_progress=on_progress)
        try:
            supervisor.load()
        except SupervisorError as error:
            raise RalphCommandError(str(error)) from error

        if command.dry_run:
            return RunCommandResult(
                lines=_dry_run_lines(settings, runner, supervisor.prd),
                success=True,
            )

        if not runner.available():
            raise RalphCommandError(
                f"Agent command {runner.spec.executable!r} not found in PATH.",
            )

        registry = self._registry()
        try:
            registry.write()
        except AlreadyRunningError as error:
            raise RalphCommandError(f"{error}. Use 'ralph stop' first.") from error
        logger.info("Recorded PID file %s", registry.path)

        cancellation = threading.Event()

        def _interrupted(_signal_name: str) -> None:
            if on_progress is not None:
                on_progress("Interrupted. Cleaning up...")

        try:
            with cancel_on_signals(cancellation, on_signal=_interrupted):
                if command.once:
                    outcome = supervisor.run_once(cancellation)
                    return _once_result(outcome.complete, outcome.error)
                return _loop_result(supervisor.run(cancellation))
        finally:
            registry.remove()

    def stop(self, command: StopCommand) -> list[str]:
        settings = self._settings(command.config_path)
        registry = self._registry()
        running, pid = registry.is_running()
        if not running:
            return ["Ralph is not running"]

        lines = [f"Found Ralph process (PID {pid})"]
        lines.append(
            "Sending SIGKILL..." if command.force else "Sending SIGTERM for graceful shutdown...",
        )
        report = registry.stop(
            force=command.force,
            poll_interval_seconds=settings.stop.poll_interval_seconds,
            max_polls=settings.stop.max_polls,
        )
        if report.outcome is StopOutcome.STOPPED:
            lines.append("Ralph stopped successfully")
        elif report.outcome is StopOutcome.NOT_RUNNING:
            lines.append("Ralph is not running")
        elif command.force:
            lines.append("Failed to stop process")
        else:
            lines.append("Process still running. Use --force to kill immediately.")
        return lines

    def status(self, command: StatusCommand) -> list[str]:
        settings = self._settings(command.config_path)
        if not settings.paths.prd.exists():
            return ["No PRD found. Run 'ralph init' to get started."]
        prd = self._load_prd(settings)
        if command.as_json:
            return [prd.to_json()]

        total, completed, pending = prd.stats()
        lines = [
            "Ralph Status",
            "",
            f"  Branch:  {prd.branch_name}",
            f"  Total:   {total} stories",
            f"  Done:    {completed} stories",
            f"  Pending: {pending} stories",
        ]
        if total:
            lines.append(_progress_bar(completed, total))
        lines.append("")

        if command.pending_only:
            stories = prd.pending_stories()
            if not stories:
                lines.append("  All stories complete!")
                return lines
        elif command.done_only:
            stories = prd.completed_stories()
            if not stories:
                lines.append("  No completed stories yet.")
                return lines
        else:
            stories = prd.user_stories
        if not stories:
            lines.append("  No stories in PRD. Run 'ralph add' to add stories.")
            return lines

        lines.append("  Stories:")
        for story in stories:
            marker = "x" if story.passes else " "
            lines.append(f"  [{marker}] [P{story.priority}] {story.id}: {story.title}")
            if not story.passes:
                lines.extend(f"      - {criterion}" for criterion in story.acceptance_criteria)

        next_story = prd.next_story()
        if next_story is not None and not command.done_only:
            lines.extend(["", f"  Next up: {next_story.id} - {next_story.title}"])
        return lines

    def add(self, command: AddStoryCommand) -> list[str]:
        settings = self._settings(command.config_path)
        if not settings.paths.prd.exists():
            raise RalphCommandError("PRD not found. Run 'ralph init' first.")
        if not command.title.strip():
            raise RalphCommandError("Title is required.")
        prd = self._load_prd(settings)
        story = prd.add_story(
            UserStory(
                id="",
                title=command.title.strip(),
                description=command.description,
                priority=command.priority or len(prd.user_stories) + 1,
                acceptance_criteria=list(
                    command.acceptance_criteria or DEFAULT_ACCEPTANCE_CRITERIA,
                ),
            ),
        )
        prd.save(settings.paths.prd)
        return [
            f"Added story: {story.id}",
            f"  Title: {story.title}",
            f"  Priority: {story.priority}",
            f"  Acceptance Criteria: {len(story.acceptance_criteria)} items",
        ]

    def edit(self, command: EditStoryCommand) -> list[str]:
        settings = self._settings(command.config_path)
        prd = self._load_prd(settings)
        story = _require_story(prd, command.story_id)
        if command.title is not None:
            story.title = command.title
        if command.description is not None:
            story.description = command.description
        if command.priority is not None:
            story.priority = command.priority
        if command.notes is not None:
            story.notes = command.notes
        prd.save(settings.paths.prd)
        return [f"Updated story: {story.id}", story.format_for_display()]

    def done(self, command: StoryCommand) -> list[str]:
        settings = self._settings(command.config_path)
        prd = self._load_prd(settings)
        story = _require_story(prd, command.story_id)
        if story.passes:
            return [f"Story {story.id} is already marked as done"]
        prd.mark_done(story.id)
        prd.save(settings.paths.prd)
        total, completed, _ = prd.stats()
        lines = [
            f"Marked {story.id} as done: {story.title}",
            f"  Progress: {completed}/{total} complete",
        ]
        if prd.is_complete():
            lines.append("All stories complete!")
        return lines

    def reset(self, command: ResetCommand) -> list[str]:
        settings = self._settings(command.config_path)
        prd = self._load_prd(settings)
        if command.reset_all:
            count = 0
            for story in prd.completed_stories():
                story.passes = False
                count += 1
            prd.save(settings.paths.prd)
            if count == 0:
                return ["No completed stories to reset"]
            return [f"Reset {count} stories to pending"]

        if not command.story_id:
            raise RalphCommandError("Story ID required (or use --all).")
        story = _require_story(prd, command.story_id)
        if not story.passes:
            return [f"Story {story.id} is already pending"]
        prd.mark_pending(story.id)
        prd.save(settings.paths.prd)
        return [f"Reset {story.id} to pending: {story.title}"]

    def describe_story(self, command: StoryCommand) -> str:
        """One-line description used for delete confirmation prompts."""

        settings = self._settings(command.config_path)
        story = _require_story(self._load_prd(settings), command.story_id)
        return f"{story.id}: {story.title}"

    def delete(self, command: StoryCommand) -> list[str]:
        settings = self._settings(command.config_path)
        prd = self._load_prd(settings)
        story = _require_story(prd, command.story_id)
        prd.delete_story(story.id)
        prd.save(settings.paths.prd)
        return [f"Deleted story: {story.id}"]

    def log(self, command: LogCommand) -> list[str]:
        settings = self._settings(command.config_path)
        path = settings.paths.progress
        if command.clear:
            create_progress(path)
            return ["Progress log cleared"]
        if not path.exists():
            return [
                f"Progress log not found at {path}",
                "Run 'ralph init' to create one",
            ]

        progress = self._load_progress(path)
        if command.append:
            progress.append(f"\n**Note:** {command.append}\n")
            progress.save()
            return ["Appended note to progress log"]
        if command.patterns:
            patterns = progress.codebase_patterns()
            if not patterns:
                return ["No codebase patterns found in progress log"]
            return ["## Codebase Patterns", patterns]
        return [progress.tail(command.tail)]

    def prompt(self, command: PromptCommand) -> list[str]:
        settings = self._settings(command.config_path)
        path = settings.paths.prompt
        if command.reset:
            create_template(path)
            return ["Reset prompt template to default"]
        if not path.exists():
            return [
                f"Prompt template not found at {path}",
                "Run 'ralph init' to create one, or 'ralph prompt --reset' to create default",
            ]
        template = load_template(path)
        if not command.render:
            return [template]

        prd = self._load_prd(settings)
        progress = self._load_progress(settings.paths.progress)
        try:
            return [render(template, build_template_data(prd, progress))]
        except PromptTemplateError as error:
            raise RalphCommandError(f"Failed to render prompt: {error}") from error

    def _settings(self, config_path: Path | None) -> Settings:
        try:
            return Settings.from_env(config_path=config_path)
        except ValueError as error:
            raise RalphCommandError(f"Invalid configuration: {error}") from error

    def _registry(self) -> ProcessRegistry:
        return ProcessRegistry()

    @staticmethod
    def _load_prd(settings: Settings) -> Prd:
        path = settings.paths.prd
        try:
            return load_prd(path)
        except FileNotFoundError as error:
            raise RalphCommandError(f"PRD not found at {path}. Run 'ralph init' first.") from error
        except (OSError, ValueError, TypeError) as error:
            raise RalphCommandError(f"Failed to load PRD {path}: {error}") from error

    @staticmethod
    def _load_progress(path: Path) -> ProgressLog:
        try:
            return load_progress(path)
        except (OSError, ValueError) as error:
            raise RalphCommandError(f"Failed to load progress log {path}: {error}") from error


def _require_story(prd: Prd, story_id: str) -> UserStory:
    story = prd.get_story(story_id)
    if story is None:
        raise RalphCommandError(f"Story {story_id} not found.")
    return story


def _progress_bar(completed: int, total: int) -> str:
    filled = completed * PROGRESS_BAR_WIDTH // total
    bar = "#" * filled + "-" * (PROGRESS_BAR_WIDTH - filled)
    return f"  [{bar}] {completed * 100 // total}%"


def _loop_result(result: LoopResult) -> RunCommandResult:
    lines = [""]
    if result.reason is TerminalReason.COMPLETE:
        lines.append("All stories complete!")
    elif result.reason is TerminalReason.MAX_ITERATIONS:
        lines.append("Max iterations reached")
    elif result.reason is TerminalReason.CANCELLED:
        lines.append("Loop cancelled")
    else:
        lines.append(f"Error: {result.error}")
    lines.extend(
        [
            f"  Reason: {result.reason.value}",
            f"  Iterations: {result.iterations}",
            f"  Stories completed: {result.stories_completed}",
            f"  Duration: {result.duration_seconds:.1f}s",
        ],
    )
    return RunCommandResult(lines=lines, success=result.reason is not TerminalReason.ERROR)


def _once_result(complete: bool, error: SupervisorError | None) -> RunCommandResult:
    if error is not None:
        return RunCommandResult(lines=["", f"Error: {error}"], success=False)
    if complete:
        return RunCommandResult(lines=["", "All stories complete!"], success=True)
    return RunCommandResult(
        lines=[
            "",
            "Iteration complete",
            "  Run 'ralph status' to check progress",
            "  Run 'ralph run --once' for another iteration",
        ],
        success=True,
    )


def _dry_run_lines(settings: Settings, runner: AgentRunner, prd: Prd) -> list[str]:
    total, completed, pending = prd.stats()
    spec = runner.spec
    timeout = "none" if spec.timeout_seconds is None else f"{spec.timeout_seconds:g}s"
    lines = [
        "Dry Run - Ralph Configuration",
        "",
        "Agent:",
        f"  Type:    {spec.agent_type}",
        f"  Command: {spec.command_string()}",
        f"  Timeout: {timeout}",
        "",
        "Loop:",
        f"  Max Iterations: {settings.loop.max_iterations}",
        f"  Sleep Between:  {settings.loop.sleep_between_seconds:g}s",
        "",
        "Files:",
        f"  PRD:      {settings.paths.prd}",
        f"  Progress: {settings.paths.progress}",
        f"  Prompt:   {settings.paths.prompt}",
        "",
        "PRD Status:",
        f"  Branch:    {prd.branch_name}",
        f"  Total:     {total} stories",
        f"  Completed: {completed} stories",
        f"  Pending:   {pending} stories",
    ]
    hooks = settings.hooks.to_hook_set()
    if hooks.has_hooks():
        lines.extend(["", "Hooks:"])
        for name, commands in (
            ("onStart", hooks.on_start),
            ("onIteration", hooks.on_iteration),
            ("onComplete", hooks.on_complete),
            ("onFailure", hooks.on_failure),
        ):
            if commands:
                lines.append(f"  {name}: {', '.join(commands)}")
    lines.append("")
    next_story = prd.next_story()
    if next_story is None:
        lines.append("All stories complete!")
    else:
        lines.extend(["Next Story:", next_story.format_for_display()])
    return lines
