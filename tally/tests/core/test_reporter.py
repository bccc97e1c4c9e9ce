"""Tests for Reporter live output and the final report."""

import pytest

from tally.core.models import (
    BlockPath,
    BlockType,
    ErrorRecord,
    HookDescriptor,
    HookKind,
    HookOutcome,
    RunConfig,
)
from tally.core.reporter import FAIL_STYLE, PASS_STYLE, Reporter, summary_line
from tally.tests.fakes import FakeOutput


@pytest.fixture
def output() -> FakeOutput:
    return FakeOutput()


def make_reporter(output: FakeOutput, **config) -> Reporter:
    return Reporter(output, RunConfig(**config))


def outcome(kind: HookKind, error: BaseException | None = None, elapsed_ms: float = 12.0) -> HookOutcome:
    descriptor = HookDescriptor(kind=kind, source="tally_setup.py", invoke=lambda done: done())
    return HookOutcome(descriptor=descriptor, error=error, elapsed_ms=elapsed_ms)


PATH = BlockPath(("math_test.py", "round()"))


def test_block_started_writes_header(output: FakeOutput) -> None:
    make_reporter(output).block_started(PATH)
    assert output.lines == ["math_test.py round()"]


def test_block_started_suppressed_when_quiet(output: FakeOutput) -> None:
    make_reporter(output, quiet=True).block_started(PATH)
    assert output.text == ""


def test_hook_durations_only_when_verbose(output: FakeOutput) -> None:
    make_reporter(output).block_hook_completed(PATH, BlockType.BEFORE, 12.4)
    assert output.text == ""

    verbose = make_reporter(output, verbose=True)
    verbose.block_hook_completed(PATH, BlockType.BEFORE, 12.4)
    verbose.block_hook_completed(PATH, BlockType.AFTER, None)
    assert output.lines == [
        "math_test.py round() - before() in 12ms",
        "math_test.py round() - after() in unknown",
    ]


def test_progress_marks_break_before_next_line(output: FakeOutput) -> None:
    reporter = make_reporter(output)
    reporter.test_completed()
    reporter.test_completed()
    reporter.block_started(PATH)
    assert output.lines == ["..", "math_test.py round()"]


def test_summary_and_pass_banner(output: FakeOutput) -> None:
    reporter = make_reporter(output)
    reporter.finish(tests_ran=4, records=[])

    assert summary_line(4, 0) in output.lines
    assert "4 tests ran. 0 errors reported." in output.text
    assert output.styled(PASS_STYLE) == ["PASS"]
    assert output.styled(FAIL_STYLE) == []


def test_errors_rendered_in_order_with_fail_banner(output: FakeOutput) -> None:
    records = [
        ErrorRecord("E: one", ("E: one", "    at f (a.py:1)"), "t1", "file t1"),
        ErrorRecord("E: two", ("E: two",), "t2", "file t2"),
    ]
    reporter = make_reporter(output)
    reporter.finish(tests_ran=2, records=records)

    text = output.text
    assert text.index("file t1\nE: one") < text.index("file t2\nE: two")
    assert "2 tests ran. 2 errors reported." in text
    assert output.styled(FAIL_STYLE) == ["FAIL"]


def test_error_blocks_separated_by_blank_lines(output: FakeOutput) -> None:
    records = [ErrorRecord("a", ("a",)), ErrorRecord("b", ("b",))]
    make_reporter(output).finish(tests_ran=0, records=records)
    lines = output.lines
    assert lines[lines.index("a") - 1] == ""
    assert lines[lines.index("b") - 1] == ""


def test_pending_section(output: FakeOutput) -> None:
    reporter = make_reporter(output)
    reporter.test_pending("math_test.py handles NaN")
    reporter.test_pending("math_test.py handles NaN")
    reporter.finish(tests_ran=0, records=[])

    assert "Pending:" in output.lines
    assert output.lines.count("  pending: math_test.py handles NaN") == 2


def test_quiet_suppresses_buffered_sections(output: FakeOutput) -> None:
    reporter = make_reporter(output, quiet=True)
    reporter.test_pending("math_test.py handles NaN")
    reporter.hook_finished(outcome(HookKind.SETUP))
    reporter.finish(tests_ran=1, records=[])

    assert "Pending:" not in output.text
    assert "Setup:" not in output.text
    assert "1 tests ran. 0 errors reported." in output.text


def test_hook_sections(output: FakeOutput) -> None:
    reporter = make_reporter(output)
    reporter.hook_finished(outcome(HookKind.SETUP, elapsed_ms=7))
    reporter.hook_finished(outcome(HookKind.TEARDOWN, error=RuntimeError("x"), elapsed_ms=3))
    reporter.finish(tests_ran=0, records=[], passed=False)

    lines = output.lines
    assert lines.index("Setup:") < lines.index("  setup: tally_setup.py in 7ms")
    assert lines.index("Teardown:") < lines.index("  teardown: tally_setup.py failed after 3ms")


def test_hook_failure_block_and_bail_notice(output: FakeOutput) -> None:
    reporter = make_reporter(output, max_errors=0)
    hook_failure = ErrorRecord("HookError: closed", ("HookError: closed",))
    reporter.finish(
        tests_ran=1,
        records=[ErrorRecord("E", ("E",))],
        hook_failure=hook_failure,
        bailed_out=True,
    )

    text = output.text
    assert "HookError: closed" in text
    assert "maxErrors: 0 exceeded. All errors reported. Exiting." in text
    assert text.index("exceeded") < text.index("Test run complete.")
    assert output.styled(FAIL_STYLE) == ["FAIL"]


def test_setup_aborted(output: FakeOutput) -> None:
    record = ErrorRecord("HookTimeoutError: setup hook timed out", ("HookTimeoutError: setup hook timed out",))
    make_reporter(output).setup_aborted(record)
    assert "setup hook timed out" in output.text
    assert "0 tests ran. 0 errors reported." in output.text
    assert output.styled(FAIL_STYLE) == ["FAIL"]


def test_render_report_is_pure(output: FakeOutput) -> None:
    reporter = make_reporter(output)
    lines = reporter.render_report(tests_ran=3, records=[])
    assert output.text == ""
    assert lines[-1] == ("PASS", PASS_STYLE)
    assert lines[-2] == (summary_line(3, 0), None)
