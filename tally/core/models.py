"""Domain models for the Tally test runner.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias


class BlockType(Enum):
    """Kinds of block reported by the engine.

    Values are the wire names used in event payloads.
    """

    BEFORE = "before"
    AFTER = "after"
    TEST = "test"
    PENDING_TEST = "pendingTest"
    DESCRIBE = "describe"


@dataclass(frozen=True)
class BlockEvent:
    """A blockStart/blockComplete payload emitted by the engine."""

    parents: tuple[str, ...]
    type: BlockType
    test: str | None = None

    def __post_init__(self) -> None:
        """Normalize parents to a tuple and type to a BlockType."""
        if not isinstance(self.parents, tuple):
            object.__setattr__(self, "parents", tuple(self.parents))
        if not isinstance(self.type, BlockType):
            object.__setattr__(self, "type", BlockType(self.type))

    @classmethod
    def from_payload(cls, payload: "BlockEvent | Mapping[str, Any]") -> "BlockEvent":
        """Build an event from the engine's wire mapping.

        Raises:
            ValueError: If the payload's type is not a known block type.
        """
        if isinstance(payload, BlockEvent):
            return payload
        return cls(
            parents=tuple(payload.get("parents") or ()),
            type=BlockType(payload["type"]),
            test=payload.get("test"),
        )


@dataclass(frozen=True)
class BlockPath:
    """Structural identity of a block: its ordered ancestor names.

    Two paths are equal iff their segments are element-wise equal.
    """

    segments: tuple[str, ...]

    @property
    def label(self) -> str:
        """Human-readable name, also used as the block's display name."""
        return " ".join(self.segments)

    def __str__(self) -> str:
        return self.label


@dataclass
class BlockTracker:
    """Timing and reporting state for one block identity.

    Created on first observation and kept for the whole run. Only the
    BlockTrackerRegistry mutates it.
    """

    id: BlockPath
    display_name: str
    type: BlockType
    test_name: str | None = None
    before_started_at: float | None = None  # monotonic milliseconds
    after_started_at: float | None = None


@dataclass(frozen=True)
class ErrorRecord:
    """A captured failure, normalized for rendering."""

    message: str
    stack_lines: tuple[str, ...]
    test_name: str | None = None
    block_identity: str | None = None


@dataclass(frozen=True)
class RunConfig:
    """Settings for a single run, assembled before it starts.

    max_errors of None means unbounded.
    """

    timeout_ms: int = 5000
    max_errors: int | None = None
    max_stack_lines: int = 5
    pattern: str | None = None
    verbose: bool = False
    quiet: bool = False

    def __post_init__(self) -> None:
        """Validate run config invariants on creation."""
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_errors is not None and self.max_errors < 0:
            raise ValueError(
                f"max_errors must be non-negative or None, got {self.max_errors}"
            )
        if self.max_stack_lines < 0:
            raise ValueError(
                f"max_stack_lines must be non-negative, got {self.max_stack_lines}"
            )


class HookKind(Enum):
    """Whether a hook runs before or after the whole test run."""

    SETUP = "setup"
    TEARDOWN = "teardown"


DoneCallback: TypeAlias = Callable[..., None]
HookCallable: TypeAlias = Callable[[DoneCallback], Any]


@dataclass(frozen=True)
class HookDescriptor:
    """A setup or teardown routine discovered from a hook module."""

    kind: HookKind
    source: str
    invoke: HookCallable
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        """Validate hook descriptor invariants on creation."""
        if not callable(self.invoke):
            raise ValueError(f"{self.kind.value} hook from {self.source} is not callable")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(
                f"timeout_ms must be positive, got {self.timeout_ms}"
            )


@dataclass(frozen=True)
class HookOutcome:
    """Result of running one hook: success, or failure with its cause."""

    descriptor: HookDescriptor
    error: BaseException | None
    elapsed_ms: float

    @property
    def ok(self) -> bool:
        return self.error is None


class RunState(Enum):
    """Lifecycle states of a RunController.

    Transitions:
    - IDLE → SETTING_UP (run started)
    - SETTING_UP → EXECUTING (all setup hooks succeeded)
    - SETTING_UP → TERMINATED (a setup hook failed)
    - EXECUTING → TEARING_DOWN (engine finished, or bail-out)
    - TEARING_DOWN → REPORTING → TERMINATED
    """

    IDLE = "idle"
    SETTING_UP = "setting_up"
    EXECUTING = "executing"
    TEARING_DOWN = "tearing_down"
    REPORTING = "reporting"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RunResult:
    """Summary of a finished run."""

    exit_code: int
    tests_ran: int
    errors: tuple[ErrorRecord, ...]
    hook_failure: ErrorRecord | None
    bailed_out: bool
    final_state: RunState

    @property
    def passed(self) -> bool:
        return self.exit_code == 0
