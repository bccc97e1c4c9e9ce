"""Run lifecycle state machine.

A RunController drives one run: setup hooks, the engine run, teardown
hooks, and the final report. All run state lives on the instance, so
several runs can coexist in one process.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .aggregator import ErrorAggregator
from .block_path import block_label
from .hooks import HookOrchestrator
from .models import (
    BlockEvent,
    BlockPath,
    BlockType,
    ErrorRecord,
    HookDescriptor,
    HookOutcome,
    RunConfig,
    RunResult,
    RunState,
)
from .ports import (
    EVENT_BLOCK_COMPLETE,
    EVENT_BLOCK_START,
    EVENT_END,
    EVENT_ERROR,
    EnginePort,
)
from .reporter import Reporter
from .tracker import BlockTrackerRegistry

logger = logging.getLogger(__name__)


class RunController:
    """Composes hooks, engine events, and reporting into a single run.

    State Transitions:
        - IDLE → SETTING_UP (run)
        - SETTING_UP → TERMINATED (a setup hook failed; exit 1)
        - SETTING_UP → EXECUTING (all setup hooks succeeded)
        - EXECUTING → TEARING_DOWN (engine end, engine crash, or bail-out)
        - TEARING_DOWN → REPORTING → TERMINATED

    Teardown is attempted after a bail-out as well, since hooks may hold
    external resources such as listening sockets.
    """

    def __init__(
        self,
        config: RunConfig,
        engine: EnginePort,
        reporter: Reporter,
        setup_hooks: Sequence[HookDescriptor] = (),
        teardown_hooks: Sequence[HookDescriptor] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the controller.

        Args:
            config: Settings for this run.
            engine: Engine that executes the registered blocks.
            reporter: Destination for progress and the final report.
            setup_hooks: Hooks run before the engine, in order.
            teardown_hooks: Hooks run after the engine, in order.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self.config = config
        self.engine = engine
        self.reporter = reporter
        self.setup_hooks = tuple(setup_hooks)
        self.teardown_hooks = tuple(teardown_hooks)
        self._clock = clock

        self.hooks = HookOrchestrator(config.timeout_ms, clock=clock)
        self.aggregator = ErrorAggregator(config.max_errors, config.max_stack_lines)
        self.registry = BlockTrackerRegistry()

        self.tests_ran = 0
        self.bailed_out = False
        self.hook_failure: ErrorRecord | None = None
        self._state = RunState.IDLE
        self._listening = False
        self._stopped: asyncio.Future[None] | None = None

    @property
    def state(self) -> RunState:
        return self._state

    async def run(self) -> RunResult:
        """Execute the full lifecycle and return the result.

        Raises:
            RuntimeError: If the controller has already been run.
        """
        if self._state is not RunState.IDLE:
            raise RuntimeError(f"Cannot start a run in {self._state.value} state")

        self._transition(RunState.SETTING_UP)
        failed = await self._run_hooks(self.setup_hooks)
        if failed is not None:
            self.hook_failure = self._hook_failure_record(failed)
            self.reporter.setup_aborted(self.hook_failure)
            self._transition(RunState.TERMINATED)
            return self._result(exit_code=1)

        self._transition(RunState.EXECUTING)
        await self._execute()

        self._transition(RunState.TEARING_DOWN)
        failed = await self._run_hooks(self.teardown_hooks)
        if failed is not None:
            self.hook_failure = self._hook_failure_record(failed)

        self._transition(RunState.REPORTING)
        exit_code = 0 if self._clean() else 1
        self.reporter.finish(
            tests_ran=self.tests_ran,
            records=self.aggregator.records,
            hook_failure=self.hook_failure,
            bailed_out=self.bailed_out,
            passed=exit_code == 0,
        )
        self._transition(RunState.TERMINATED)
        return self._result(exit_code=exit_code)

    # ------------------------------------------------------------------
    # Engine event handlers
    # ------------------------------------------------------------------

    def on_error(self, error: Any) -> None:
        if not self._listening:
            return
        self.aggregator.capture(error)
        if self.aggregator.bail_out_triggered:
            logger.info(
                f"maxErrors {self.config.max_errors} exceeded after "
                f"{len(self.aggregator.records)} errors, bailing out"
            )
            self.bailed_out = True
            self._stop_listening()

    def on_block_start(self, payload: BlockEvent | Mapping[str, Any]) -> None:
        if not self._listening:
            return
        event = BlockEvent.from_payload(payload)
        path = self._observe(event)
        if path is None:
            return

        if event.type is BlockType.BEFORE:
            self.registry.record_before_start(path, self._now_ms())
        elif event.type is BlockType.AFTER:
            self.registry.record_after_start(path, self._now_ms())

    def on_block_complete(self, payload: BlockEvent | Mapping[str, Any]) -> None:
        if not self._listening:
            return
        event = BlockEvent.from_payload(payload)
        path = self._observe(event)

        if event.type is BlockType.BEFORE and path is not None:
            elapsed = self.registry.elapsed_since_before_start(path, self._now_ms())
            self.reporter.block_hook_completed(path, event.type, elapsed)
        elif event.type is BlockType.AFTER and path is not None:
            elapsed = self.registry.elapsed_since_after_start(path, self._now_ms())
            self.reporter.block_hook_completed(path, event.type, elapsed)
        elif event.type is BlockType.PENDING_TEST:
            self.reporter.test_pending(block_label(event))
        elif event.type is BlockType.TEST:
            self.tests_ran += 1
            self.reporter.test_completed()

    def on_end(self, *_: Any) -> None:
        if not self._listening:
            return
        logger.debug("Engine signalled end of run")
        self._stop_listening()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(self) -> None:
        loop = asyncio.get_running_loop()
        self._stopped = loop.create_future()
        self.engine.on(EVENT_ERROR, self.on_error)
        self.engine.on(EVENT_BLOCK_START, self.on_block_start)
        self.engine.on(EVENT_BLOCK_COMPLETE, self.on_block_complete)
        self.engine.on(EVENT_END, self.on_end)
        self._listening = True

        engine_task = asyncio.ensure_future(self.engine.run(self.config))
        await asyncio.wait({engine_task, self._stopped}, return_when=asyncio.FIRST_COMPLETED)

        if self.bailed_out and not engine_task.done():
            # Stop waiting on the engine; in-flight work is abandoned.
            engine_task.cancel()
        try:
            await engine_task
        except asyncio.CancelledError:
            if not self.bailed_out:
                raise
        except Exception as e:
            logger.error(f"Engine run failed: {e}", exc_info=True)
            if not self.bailed_out:
                self.aggregator.capture(e)
        finally:
            self._stop_listening()

    async def _run_hooks(self, descriptors: Sequence[HookDescriptor]) -> HookOutcome | None:
        """Run hooks in order; return the first failed outcome, if any."""
        outcomes = await self.hooks.run_all(descriptors)
        for outcome in outcomes:
            self.reporter.hook_finished(outcome)
        return next((o for o in outcomes if not o.ok), None)

    def _hook_failure_record(self, outcome: HookOutcome) -> ErrorRecord:
        """Render a failed hook as its own error record.

        Hook failures are not counted as test errors. The header names
        the failing hook and its source.
        """
        hook_errors = ErrorAggregator(max_stack_lines=self.config.max_stack_lines)
        descriptor = outcome.descriptor
        return dataclasses.replace(
            hook_errors.capture(outcome.error),
            block_identity=f"{descriptor.kind.value} hook in {descriptor.source}",
        )

    def _observe(self, event: BlockEvent) -> BlockPath | None:
        """Resolve the event's tracker and announce new blocks."""
        tracker, is_new = self.registry.resolve(event)
        if tracker is None:
            return None
        if is_new:
            self.reporter.block_started(tracker.id)
        return tracker.id

    def _stop_listening(self) -> None:
        self._listening = False
        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_result(None)

    def _clean(self) -> bool:
        return not self.aggregator.records and self.hook_failure is None and not self.bailed_out

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _transition(self, new_state: RunState) -> None:
        logger.debug(f"Run state: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _result(self, exit_code: int) -> RunResult:
        return RunResult(
            exit_code=exit_code,
            tests_ran=self.tests_ran,
            errors=tuple(self.aggregator.records),
            hook_failure=self.hook_failure,
            bailed_out=self.bailed_out,
            final_state=self._state,
        )

