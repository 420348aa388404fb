"""Agent backend implementations."""

from ralph.supervisor.backend.base import (
    COMPLETION_MARKER,
    AgentConvention,
    AgentExecutionResult,
    AgentExecutor,
    AgentSpec,
    BuiltinConvention,
    CustomCommand,
    ExitKind,
)
from ralph.supervisor.backend.cli_backend import AgentRunner
from ralph.supervisor.backend.conventions import (
    normalize_agent_type,
    register_convention,
    resolve_agent_spec,
    supported_agent_types,
)

__all__ = [
    "COMPLETION_MARKER",
    "AgentConvention",
    "AgentExecutionResult",
    "AgentExecutor",
    "AgentRunner",
    "AgentSpec",
    "BuiltinConvention",
    "CustomCommand",
    "ExitKind",
    "normalize_agent_type",
    "register_convention",
    "resolve_agent_spec",
    "supported_agent_types",
]
