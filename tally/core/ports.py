"""Port interfaces for the Tally test runner.

These abstract base classes define the boundaries between the run
orchestrator and its collaborators. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **EnginePort**: executes nested describe/before/it/after blocks and
   emits lifecycle events.
2. **ModuleSourcePort**: finds and loads setup, config, and test modules.
3. **OutputPort**: writes operator-facing report text.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import RunConfig

# Engine event names (wire format)
EVENT_ERROR = "error"
EVENT_BLOCK_START = "blockStart"
EVENT_BLOCK_COMPLETE = "blockComplete"
EVENT_END = "end"

ENGINE_EVENTS = (EVENT_ERROR, EVENT_BLOCK_START, EVENT_BLOCK_COMPLETE, EVENT_END)


class EnginePort(ABC):
    """Port for the test-execution engine.

    The engine owns block semantics. It reports progress only through
    events, delivered synchronously to subscribed handlers in emission
    order:

    - ``error``: an error-like value (see BlockError)
    - ``blockStart``: a BlockEvent for a before/after/test block
    - ``blockComplete``: a BlockEvent; pending tests use pendingTest
    - ``end``: no payload, all scheduled blocks finished
    """

    @abstractmethod
    def on(self, event_name: str, handler: Callable[..., None]) -> None:
        """Subscribe a handler to an engine event.

        Raises:
            ValueError: If event_name is not one of ENGINE_EVENTS.
        """

    @abstractmethod
    def describe(self, name: str, configurator: Callable[[Any], None]) -> None:
        """Register a top-level describe block.

        Args:
            name: Block name, usually the test file's relative path.
            configurator: Called with a block builder to declare nested
                describe/before/after/it blocks.
        """

    @abstractmethod
    async def run(self, config: RunConfig) -> None:
        """Execute all registered blocks, then emit ``end``."""


@dataclass(frozen=True)
class Discovery:
    """Files found under the test directory, in discovery order."""

    setup_files: tuple[Path, ...] = field(default_factory=tuple)
    config_files: tuple[Path, ...] = field(default_factory=tuple)
    test_files: tuple[Path, ...] = field(default_factory=tuple)


class ModuleSourcePort(ABC):
    """Port for locating and loading user modules.

    The orchestrator never imports user code itself; it only sees the
    module objects this port returns.
    """

    @abstractmethod
    def discover(self, directory: Path, explicit: Path | None = None) -> Discovery:
        """Find setup, config, and test files.

        Args:
            directory: Root test directory to search recursively.
            explicit: Optional extra file or directory of test files.

        Raises:
            ConfigurationError: If a given path does not exist.
        """

    @abstractmethod
    def load_module(self, path: Path) -> Any:
        """Load a module from a file.

        Raises:
            ConfigurationError: If the module cannot be imported.
        """


class OutputPort(ABC):
    """Port for operator-facing output.

    ``style`` is a rich style string such as "bold green"; adapters may
    ignore it.
    """

    @abstractmethod
    def write(self, text: str, style: str | None = None) -> None:
        """Write text without a trailing newline."""

    @abstractmethod
    def write_line(self, text: str = "", style: str | None = None) -> None:
        """Write text followed by a newline."""
