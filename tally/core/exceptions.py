"""Exception types for the Tally test runner.

ConfigurationError is the only "user error": it is reported to the
operator without a stack trace. Hook failures terminate the phase they
occur in. BlockError is the wrapper the engine uses to attach block
context to a failure raised by a test body.
"""

from collections.abc import Sequence
from typing import Any


class TallyError(Exception):
    """Base class for all Tally errors."""


class ConfigurationError(TallyError):
    """Malformed input discovered before the run starts.

    Examples: a referenced path does not exist, a discovered module does
    not export the expected shape.
    """

    code = "USER_ERROR"


class HookError(TallyError):
    """A setup or teardown hook signalled failure."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class HookTimeoutError(HookError):
    """A setup or teardown hook did not call done() within its time limit."""

    def __init__(self, message: str, source: str | None = None, timeout_ms: int | None = None):
        super().__init__(message, source)
        self.timeout_ms = timeout_ms


class BlockError(TallyError):
    """A failure raised inside a before/after/test block.

    Carries the block's ancestor names and, for tests, the test name, so
    the aggregator can label the failure without the engine's help.
    """

    def __init__(
        self,
        cause: BaseException,
        parents: Sequence[str],
        test: str | None = None,
    ):
        super().__init__(str(cause))
        self.cause = cause
        self.parents = tuple(parents)
        self.test = test
        self.__cause__ = cause

    def __repr__(self) -> str:
        return f"BlockError({self.cause!r}, parents={self.parents!r}, test={self.test!r})"


def describe_error(error: Any) -> str:
    """One-line description of an error-like value."""
    if isinstance(error, BaseException):
        message = str(error)
        name = type(error).__name__
        return f"{name}: {message}" if message else name
    return str(error)


__all__ = [
    "BlockError",
    "ConfigurationError",
    "HookError",
    "HookTimeoutError",
    "TallyError",
    "describe_error",
]
