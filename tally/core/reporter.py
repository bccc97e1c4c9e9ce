"""Console report for a test run.

Live events (block headers, hook durations, progress marks) are written
as they happen. Setup, teardown, and pending sections are buffered and
written with the errors and summary when the run ends.
"""

from collections.abc import Sequence

from .aggregator import ErrorAggregator
from .models import BlockPath, BlockType, ErrorRecord, HookKind, HookOutcome, RunConfig
from .ports import OutputPort


Line = tuple[str, str | None]

PASS_STYLE = "bold green"
FAIL_STYLE = "bold red"


def format_duration(elapsed_ms: float | None) -> str:
    if elapsed_ms is None:
        return "unknown"
    return f"{elapsed_ms:.0f}ms"


def bail_out_notice(max_errors: int | None) -> str:
    return f"maxErrors: {max_errors} exceeded. All errors reported. Exiting."


def summary_line(tests_ran: int, error_count: int) -> str:
    return f"Test run complete. {tests_ran} tests ran. {error_count} errors reported."


class Reporter:
    """Writes run progress and the final report to an OutputPort."""

    def __init__(self, output: OutputPort, config: RunConfig):
        """Initialize the reporter.

        Args:
            output: Destination for all report text.
            config: Run settings; verbose and quiet gate optional lines.
        """
        self.output = output
        self.config = config
        self.setup_lines: list[str] = []
        self.teardown_lines: list[str] = []
        self.pending_lines: list[str] = []
        self._midline = False

    # ------------------------------------------------------------------
    # Live output
    # ------------------------------------------------------------------

    def block_started(self, path: BlockPath) -> None:
        """Header for the first observation of a block."""
        if self.config.quiet:
            return
        self._write_line(path.label)

    def block_hook_completed(
        self, path: BlockPath, block_type: BlockType, elapsed_ms: float | None
    ) -> None:
        """Duration line for a finished before()/after() block."""
        if not self.config.verbose:
            return
        name = "before()" if block_type is BlockType.BEFORE else "after()"
        self._write_line(f"{path.label} - {name} in {format_duration(elapsed_ms)}")

    def test_completed(self) -> None:
        self.output.write(".")
        self._midline = True

    def test_pending(self, label: str) -> None:
        self.pending_lines.append(f"pending: {label}")

    def hook_finished(self, outcome: HookOutcome) -> None:
        descriptor = outcome.descriptor
        duration = format_duration(outcome.elapsed_ms)
        if outcome.ok:
            line = f"{descriptor.kind.value}: {descriptor.source} in {duration}"
        else:
            line = f"{descriptor.kind.value}: {descriptor.source} failed after {duration}"

        if descriptor.kind is HookKind.SETUP:
            self.setup_lines.append(line)
        else:
            self.teardown_lines.append(line)

    # ------------------------------------------------------------------
    # Final report
    # ------------------------------------------------------------------

    def render_report(
        self,
        tests_ran: int,
        records: Sequence[ErrorRecord],
        hook_failure: ErrorRecord | None = None,
        bailed_out: bool = False,
        passed: bool | None = None,
    ) -> list[Line]:
        """Build the end-of-run report as (text, style) lines.

        Args:
            tests_ran: Number of completed tests.
            records: Captured test errors in capture order.
            hook_failure: A setup/teardown failure rendered as its own block.
            bailed_out: Whether the run stopped at the maxErrors threshold.
            passed: Overrides the banner; defaults to "no errors, no hook
                failure, no bail-out".
        """
        lines: list[Line] = []

        if not self.config.quiet:
            for title, section in (
                ("Setup:", self.setup_lines),
                ("Teardown:", self.teardown_lines),
                ("Pending:", self.pending_lines),
            ):
                if section:
                    lines.append(("", None))
                    lines.append((title, None))
                    lines.extend((f"  {line}", None) for line in section)

        blocks = ErrorAggregator.render(records)
        if hook_failure is not None:
            blocks.extend(ErrorAggregator.render([hook_failure]))
        for block in blocks:
            lines.append(("", None))
            lines.extend((text, None) for text in block.splitlines())

        if bailed_out:
            lines.append(("", None))
            lines.append((bail_out_notice(self.config.max_errors), None))

        if passed is None:
            passed = not records and hook_failure is None and not bailed_out

        lines.append(("", None))
        lines.append((summary_line(tests_ran, len(records)), None))
        lines.append(("PASS", PASS_STYLE) if passed else ("FAIL", FAIL_STYLE))
        return lines

    def finish(
        self,
        tests_ran: int,
        records: Sequence[ErrorRecord],
        hook_failure: ErrorRecord | None = None,
        bailed_out: bool = False,
        passed: bool | None = None,
    ) -> None:
        """Write the end-of-run report."""
        for text, style in self.render_report(
            tests_ran, records, hook_failure, bailed_out, passed
        ):
            self._write_line(text, style)

    def setup_aborted(self, record: ErrorRecord) -> None:
        """Report a failed setup hook; the engine never ran."""
        self.finish(tests_ran=0, records=(), hook_failure=record, passed=False)

    def _write_line(self, text: str, style: str | None = None) -> None:
        if self._midline:
            self.output.write_line()
            self._midline = False
        self.output.write_line(text, style)
