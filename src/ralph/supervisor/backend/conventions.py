"""Registry of agent argument conventions and AgentSpec resolution."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING

from ralph.supervisor.backend.base import (
    AgentConvention,
    AgentSpec,
    BuiltinConvention,
    CustomCommand,
)

if TYPE_CHECKING:
    from ralph.config import AgentSettings

CUSTOM_AGENT_TYPE = "custom"

_CONVENTIONS: dict[str, AgentConvention] = {}

_AGENT_TYPE_ALIASES = {
    "claude": "claude-code",
    "claudecode": "claude-code",
    "open-code": "opencode",
}


def register_convention(convention: AgentConvention) -> None:
    """Register a builtin agent tag; later registrations replace earlier ones."""

    _CONVENTIONS[convention.tag] = convention


def supported_agent_types() -> tuple[str, ...]:
    return (*_CONVENTIONS, CUSTOM_AGENT_TYPE)


def normalize_agent_type(value: str) -> str:
    normalized = value.strip().lower()
    return _AGENT_TYPE_ALIASES.get(normalized, normalized)


def resolve_agent_spec(settings: AgentSettings) -> AgentSpec:
    """Resolve configured agent settings into an immutable ``AgentSpec``."""

    agent_type = normalize_agent_type(settings.type)
    timeout = settings.timeout_seconds if settings.timeout_seconds > 0 else None
    flags = tuple(settings.flags)

    if agent_type == CUSTOM_AGENT_TYPE:
        if not settings.command.strip():
            raise ValueError("custom agent type requires agent.command to be set")
        argv = tuple(shlex.split(settings.command))
        if not argv:
            raise ValueError(f"invalid custom agent command: {settings.command!r}")
        return AgentSpec(
            agent_type=agent_type,
            invocation=CustomCommand(argv=argv),
            convention=AgentConvention(
                tag=CUSTOM_AGENT_TYPE,
                executable=argv[0],
                base_args=argv[1:],
                prompt_flag="-p",
                prompt_via_stdin=True,
            ),
            executable=argv[0],
            args=(*argv[1:], *flags),
            timeout_seconds=timeout,
        )

    convention = _CONVENTIONS.get(agent_type)
    if convention is None:
        raise ValueError(
            f"unknown agent type: {settings.type!r} "
            f"(expected one of {', '.join(supported_agent_types())})",
        )
    return AgentSpec(
        agent_type=agent_type,
        invocation=BuiltinConvention(tag=agent_type),
        convention=convention,
        executable=convention.executable,
        args=(*convention.base_args, *flags),
        timeout_seconds=timeout,
    )


register_convention(
    AgentConvention(
        tag="claude-code",
        executable="claude",
        base_args=("--dangerously-skip-permissions",),
        prompt_flag="-p",
    ),
)
register_convention(
    AgentConvention(
        tag="amp",
        executable="amp",
        base_args=("--dangerously-allow-all",),
        prompt_flag=None,
        prompt_via_stdin=True,
    ),
)
register_convention(AgentConvention(tag="opencode", executable="opencode", prompt_flag="-p"))
register_convention(AgentConvention(tag="codex", executable="codex", prompt_flag="-p"))
