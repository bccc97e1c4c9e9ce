"""Console output adapter.

Implements OutputPort by writing report text to the terminal through a
rich Console. Report text is printed literally: markup and highlighting
are disabled so stack traces and test names are never reinterpreted.
"""

from rich.console import Console

from tally.core.ports import OutputPort


class RichConsoleOutput(OutputPort):
    """Writes report text to stderr with optional styling."""

    def __init__(self, console: Console | None = None):
        """Initialize console output adapter.

        Args:
            console: Console to write to. Defaults to a stderr console.
        """
        self.console = console or Console(stderr=True, highlight=False)

    def write(self, text: str, style: str | None = None) -> None:
        self._print(text, style, end="")

    def write_line(self, text: str = "", style: str | None = None) -> None:
        self._print(text, style, end="\n")

    def _print(self, text: str, style: str | None, end: str) -> None:
        self.console.print(
            text,
            style=style,
            end=end,
            markup=False,
            highlight=False,
            emoji=False,
            soft_wrap=True,
        )
