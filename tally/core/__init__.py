"""Core run orchestration for the Tally test runner.

This package contains zero external dependencies and represents
the pure orchestration logic of the application. The engine, module
loading, and console output are handled by the adapters package.
"""

from .models import (
    BlockEvent,
    BlockPath,
    BlockTracker,
    BlockType,
    ErrorRecord,
    HookDescriptor,
    HookKind,
    HookOutcome,
    RunConfig,
    RunResult,
    RunState,
)

__all__ = [
    "BlockEvent",
    "BlockPath",
    "BlockTracker",
    "BlockType",
    "ErrorRecord",
    "HookDescriptor",
    "HookKind",
    "HookOutcome",
    "RunConfig",
    "RunResult",
    "RunState",
]
