"""Failure collection, bail-out policy, and stack rendering."""

import logging
import traceback
from collections.abc import Sequence
from typing import Any

from .block_path import NO_BLOCK_LABEL, block_path
from .exceptions import BlockError, describe_error
from .models import ErrorRecord

logger = logging.getLogger(__name__)


class ErrorAggregator:
    """Collects failures in capture order and decides when to bail out.

    Stacks are rendered most specific first (the error line, then the
    innermost frame outward) so that truncating from the top keeps the
    frames closest to the failure.
    """

    def __init__(self, max_errors: int | None = None, max_stack_lines: int = 5):
        """Initialize the aggregator.

        Args:
            max_errors: Bail out once more than this many errors are
                captured. None means unbounded.
            max_stack_lines: Maximum stack lines kept per error.
        """
        self.max_errors = max_errors
        self.max_stack_lines = max_stack_lines
        self.records: list[ErrorRecord] = []

    def capture(self, raw: Any) -> ErrorRecord:
        """Normalize an error-like value into an ErrorRecord and keep it."""
        cause = raw.cause if isinstance(raw, BlockError) else raw
        stack = self._stack_lines(raw, cause)

        parents = getattr(raw, "parents", None)
        path = block_path(parents) if isinstance(parents, (list, tuple)) else None
        test_name = getattr(raw, "test", None)

        record = ErrorRecord(
            message=describe_error(cause),
            stack_lines=tuple(stack[: self.max_stack_lines]),
            test_name=str(test_name) if test_name else None,
            block_identity=path.label if path is not None else NO_BLOCK_LABEL,
        )
        self.records.append(record)
        logger.debug(f"Captured error #{len(self.records)}: {record.message}")
        return record

    @staticmethod
    def should_bail_out(total_captured: int, max_errors: int | float | None) -> bool:
        """True once total_captured exceeds max_errors.

        A max_errors of 0 bails on the first error; None (or infinity)
        never bails.
        """
        if max_errors is None:
            return False
        return total_captured > max_errors

    @property
    def bail_out_triggered(self) -> bool:
        return self.should_bail_out(len(self.records), self.max_errors)

    @staticmethod
    def render(records: Sequence[ErrorRecord]) -> list[str]:
        """Format records as text blocks in capture order.

        Each block is an optional header naming the block and test,
        followed by the truncated stack. A test name already ending the
        block label is not repeated. Callers separate blocks with a
        blank line.
        """
        blocks = []
        for record in records:
            lines = []
            identity, test_name = record.block_identity, record.test_name
            if identity and test_name and (
                identity == test_name or identity.endswith(f" {test_name}")
            ):
                test_name = None
            header = " - ".join(part for part in (identity, test_name) if part)
            if header:
                lines.append(header)
            lines.extend(record.stack_lines or (record.message,))
            blocks.append("\n".join(lines))
        return blocks

    @staticmethod
    def _stack_lines(raw: Any, cause: Any) -> list[str]:
        stack = getattr(raw, "stack", None)
        if stack is None and cause is not raw:
            stack = getattr(cause, "stack", None)
        if isinstance(stack, str):
            return stack.strip().splitlines()
        if stack:
            return [part for line in stack for part in str(line).splitlines()]

        if isinstance(cause, BaseException):
            # Each message line counts toward the stack limit.
            lines = describe_error(cause).splitlines() or [type(cause).__name__]
            frames = traceback.extract_tb(cause.__traceback__) if cause.__traceback__ else []
            for frame in reversed(frames):
                lines.append(f"    at {frame.name} ({frame.filename}:{frame.lineno})")
            return lines

        return str(cause).splitlines() or [repr(cause)]
