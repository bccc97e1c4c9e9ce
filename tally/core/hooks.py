"""Setup and teardown hook execution.

Hooks use a callback completion contract: each hook receives a
single-shot ``done`` callback. ``done()`` means success, ``done(err)``
with a truthy ``err`` means failure, and raising is the same as calling
``done`` with the raised exception. Every hook races a timer; whichever
settles first wins and later signals are ignored.
"""

import asyncio
import inspect
import logging
import math
import time
from collections.abc import Callable, Iterable
from numbers import Real
from typing import Any

from .exceptions import ConfigurationError, HookError, HookTimeoutError
from .models import HookDescriptor, HookKind, HookOutcome

logger = logging.getLogger(__name__)


class Settlement:
    """One-shot, first-writer-wins result slot.

    Wraps an asyncio.Future that resolves to the failure cause, or None
    on success. Only the first settle() call has any effect.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._future: asyncio.Future[BaseException | None] = (
            loop or asyncio.get_running_loop()
        ).create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def settle(self, error: BaseException | None = None) -> bool:
        """Record the outcome. Returns False if already settled."""
        if self._future.done():
            return False
        self._future.set_result(error)
        return True

    async def wait(self) -> BaseException | None:
        return await self._future


def _as_error(value: Any, descriptor: HookDescriptor) -> BaseException | None:
    """Map a done() argument to a failure cause; falsy means success."""
    if not value:
        return None
    if isinstance(value, BaseException):
        return value
    return HookError(
        f"{descriptor.kind.value} hook in {descriptor.source} failed: {value}",
        source=descriptor.source,
    )


class HookOrchestrator:
    """Runs hooks one at a time, each bounded by its own timeout."""

    def __init__(
        self,
        default_timeout_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            default_timeout_ms: Time limit for hooks that set no timeout.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self.default_timeout_ms = default_timeout_ms
        self._clock = clock
        # Coroutine hooks that outlived their timeout; held until they finish.
        self._abandoned: set[asyncio.Task[Any]] = set()

    async def run_hook(self, descriptor: HookDescriptor) -> HookOutcome:
        """Run one hook and wait for done(), a raise, or the timeout."""
        loop = asyncio.get_running_loop()
        settlement = Settlement(loop)
        timeout_ms = descriptor.timeout_ms or self.default_timeout_ms
        started = self._clock()

        def done(error: Any = None) -> None:
            if not settlement.settle(_as_error(error, descriptor)):
                logger.debug(
                    f"Ignoring late done() from {descriptor.kind.value} hook "
                    f"in {descriptor.source}"
                )

        timer = loop.call_later(
            timeout_ms / 1000,
            settlement.settle,
            HookTimeoutError(
                f"{descriptor.kind.value} hook in {descriptor.source} "
                f"timed out after {timeout_ms}ms",
                source=descriptor.source,
                timeout_ms=timeout_ms,
            ),
        )

        task: asyncio.Task[Any] | None = None
        try:
            result = descriptor.invoke(done)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(lambda t: self._on_hook_task_done(t, settlement))
        except Exception as e:
            settlement.settle(e)

        try:
            error = await settlement.wait()
        finally:
            timer.cancel()

        if task is not None and not task.done():
            self._abandoned.add(task)
            task.add_done_callback(self._abandoned.discard)

        elapsed_ms = (self._clock() - started) * 1000
        if error is None:
            logger.debug(
                f"{descriptor.kind.value} hook in {descriptor.source} "
                f"completed in {elapsed_ms:.0f}ms"
            )
        else:
            logger.warning(
                f"{descriptor.kind.value} hook in {descriptor.source} failed: {error}"
            )
        return HookOutcome(descriptor=descriptor, error=error, elapsed_ms=elapsed_ms)

    async def run_all(self, descriptors: Iterable[HookDescriptor]) -> list[HookOutcome]:
        """Run hooks sequentially, stopping after the first failure."""
        outcomes = []
        for descriptor in descriptors:
            outcome = await self.run_hook(descriptor)
            outcomes.append(outcome)
            if not outcome.ok:
                break
        return outcomes

    @staticmethod
    def _on_hook_task_done(task: asyncio.Task[Any], settlement: Settlement) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            settlement.settle(error)


def hooks_from_module(module: Any, source: str) -> list[HookDescriptor]:
    """Read the setup/teardown hooks a hook module exposes.

    A module may define ``setup(done)`` and/or ``teardown(done)``; each
    may carry a ``timeout`` attribute in milliseconds; fractions round up.

    Raises:
        ConfigurationError: If a hook attribute is not callable or has an
            invalid timeout.
    """
    descriptors = []
    for kind in (HookKind.SETUP, HookKind.TEARDOWN):
        hook = getattr(module, kind.value, None)
        if hook is None:
            continue
        if not callable(hook):
            raise ConfigurationError(
                f"The {kind.value} hook in {source} must be a function."
            )

        timeout = getattr(hook, "timeout", None)
        if timeout is not None and (
            isinstance(timeout, bool)
            or not isinstance(timeout, Real)
            or not math.isfinite(timeout)
            or timeout <= 0
        ):
            raise ConfigurationError(
                f"The {kind.value} hook timeout in {source} must be a positive "
                f"number of milliseconds, got {timeout!r}."
            )

        descriptors.append(
            HookDescriptor(
                kind=kind,
                source=source,
                invoke=hook,
                timeout_ms=math.ceil(timeout) if timeout is not None else None,
            )
        )
    return descriptors
