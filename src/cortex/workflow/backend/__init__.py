"""Agent backend implementations."""

from cortex.workflow.backend.base import Agent, AgentRegistry, AgentResult, AgentRunError, AgentTask
from cortex.workflow.backend.cli_backend import (
    ClaudeCodeBackend,
    CliAgentBackend,
    OpenCodeBackend,
    ShellBackend,
    build_default_registry,
)

__all__ = [
    "Agent",
    "AgentRegistry",
    "AgentResult",
    "AgentRunError",
    "AgentTask",
    "ClaudeCodeBackend",
    "CliAgentBackend",
    "OpenCodeBackend",
    "ShellBackend",
    "build_default_registry",
]
