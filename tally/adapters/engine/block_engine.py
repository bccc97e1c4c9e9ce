"""In-process test-execution engine.

Executes nested describe/before/after/it blocks declared by test
modules and reports progress through the EnginePort events. Block
bodies are zero-argument callables; coroutine bodies are bounded by the
block timeout, plain functions run to completion.
"""

import asyncio
import inspect
import logging
import re
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union

from tally.core.exceptions import BlockError
from tally.core.models import BlockEvent, BlockType, RunConfig
from tally.core.ports import (
    ENGINE_EVENTS,
    EVENT_BLOCK_COMPLETE,
    EVENT_BLOCK_START,
    EVENT_END,
    EVENT_ERROR,
    EnginePort,
)

logger = logging.getLogger(__name__)

Body = Callable[[], Any]


@dataclass
class _Hook:
    body: Body
    timeout_ms: int | None = None


@dataclass
class _Test:
    name: str
    body: Body | None = None  # None marks a pending test
    timeout_ms: int | None = None


@dataclass
class _Describe:
    name: str
    befores: list[_Hook] = field(default_factory=list)
    afters: list[_Hook] = field(default_factory=list)
    children: list[Union[_Test, "_Describe"]] = field(default_factory=list)


class BlockBuilder:
    """Handed to test configurators to declare blocks.

    Example:
        def tests(t):
            t.before(connect)

            def nested(t):
                t.it("rounds up", lambda: check(round(1.5) == 2))
                t.it("handles NaN")  # pending

            t.describe("round()", nested)
    """

    def __init__(self, block: _Describe):
        self._block = block

    def describe(self, name: str, configurator: Callable[["BlockBuilder"], None]) -> None:
        child = _Describe(name)
        self._block.children.append(child)
        configurator(BlockBuilder(child))

    def before(self, body: Body, timeout: int | None = None) -> None:
        self._block.befores.append(_Hook(body, timeout))

    def after(self, body: Body, timeout: int | None = None) -> None:
        self._block.afters.append(_Hook(body, timeout))

    def it(self, name: str, body: Body | None = None, timeout: int | None = None) -> None:
        self._block.children.append(_Test(name, body, timeout))

    def xit(self, name: str, body: Body | None = None, timeout: int | None = None) -> None:
        """Declare a test that is reported as pending and never run."""
        self._block.children.append(_Test(name, None, timeout))


class BlockEngine(EnginePort):
    """Runs registered describe trees sequentially, emitting events.

    A failing before() skips the tests and nested blocks of its describe;
    its after() blocks still run.
    """

    def __init__(self) -> None:
        self._roots: list[_Describe] = []
        self._handlers: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self._timeout_ms = RunConfig().timeout_ms
        self._pattern: re.Pattern[str] | None = None

    def on(self, event_name: str, handler: Callable[..., None]) -> None:
        if event_name not in ENGINE_EVENTS:
            raise ValueError(f"Unknown engine event: {event_name}")
        self._handlers[event_name].append(handler)

    def describe(self, name: str, configurator: Callable[[Any], None]) -> None:
        root = _Describe(name)
        configurator(BlockBuilder(root))
        self._roots.append(root)

    async def run(self, config: RunConfig) -> None:
        self._timeout_ms = config.timeout_ms
        self._pattern = re.compile(config.pattern) if config.pattern else None

        for root in self._roots:
            await self._run_describe(root, (root.name,))

        self._emit(EVENT_END)

    async def _run_describe(self, block: _Describe, parents: tuple[str, ...]) -> None:
        if not self._has_selected_tests(block, parents):
            return

        ready = True
        for hook in block.befores:
            if not await self._run_body(hook.body, hook.timeout_ms, parents, BlockType.BEFORE):
                ready = False
                break

        if ready:
            for child in block.children:
                if isinstance(child, _Describe):
                    await self._run_describe(child, parents + (child.name,))
                else:
                    await self._run_test(child, parents)

        for hook in block.afters:
            await self._run_body(hook.body, hook.timeout_ms, parents, BlockType.AFTER)

    async def _run_test(self, test: _Test, parents: tuple[str, ...]) -> None:
        path = parents + (test.name,)
        if not self._selected(path):
            return
        if test.body is None:
            self._emit(
                EVENT_BLOCK_COMPLETE,
                BlockEvent(path, BlockType.PENDING_TEST, test.name),
            )
            return
        await self._run_body(test.body, test.timeout_ms, path, BlockType.TEST, test.name)

    async def _run_body(
        self,
        body: Body,
        timeout_ms: int | None,
        parents: tuple[str, ...],
        block_type: BlockType,
        test: str | None = None,
    ) -> bool:
        """Run one block body. Returns False if it failed."""
        # Yield between blocks so a caller that stopped waiting can cancel us.
        await asyncio.sleep(0)

        event = BlockEvent(parents, block_type, test)
        self._emit(EVENT_BLOCK_START, event)

        budget = timeout_ms or self._timeout_ms
        scope: asyncio.Timeout | None = None
        try:
            result = body()
            if inspect.isawaitable(result):
                async with asyncio.timeout(budget / 1000) as scope:
                    await result
        except Exception as e:
            # A TimeoutError raised by the body itself is an ordinary failure.
            if scope is not None and scope.expired():
                label = " ".join(parents)
                name = "it()" if block_type is BlockType.TEST else f"{block_type.value}()"
                cause = TimeoutError(f"{label} {name} timed out after {budget}ms")
                self._emit(EVENT_ERROR, BlockError(cause, parents, test))
                return False
            logger.debug(f"{block_type.value} block failed in {' '.join(parents)}: {e}")
            self._emit(EVENT_ERROR, BlockError(e, parents, test))
            return False

        self._emit(EVENT_BLOCK_COMPLETE, event)
        return True

    def _selected(self, path: tuple[str, ...]) -> bool:
        return self._pattern is None or self._pattern.search(" ".join(path)) is not None

    def _has_selected_tests(self, block: _Describe, parents: tuple[str, ...]) -> bool:
        for child in block.children:
            if isinstance(child, _Describe):
                if self._has_selected_tests(child, parents + (child.name,)):
                    return True
            elif self._selected(parents + (child.name,)):
                return True
        return False

    def _emit(self, event_name: str, *args: Any) -> None:
        for handler in list(self._handlers[event_name]):
            handler(*args)
