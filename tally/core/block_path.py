"""Block identity derived from an event's ancestor names.

The engine reports a flat stream of events without parent/child object
references, so the same logical block is recognised by comparing the
ordered sequence of names from the run root down to it.
"""

from collections.abc import Sequence

from .models import BlockEvent, BlockPath

NO_BLOCK_LABEL = "(no block)"


def block_path(source: BlockEvent | Sequence[str] | None) -> BlockPath | None:
    """Return the identity for an event or a parents sequence.

    Returns None when there are no parents; such events are not tracked.
    """
    if source is None:
        return None
    parents = source.parents if isinstance(source, BlockEvent) else source
    if isinstance(parents, str):
        raise TypeError("parents must be a sequence of names, not a string")
    segments = tuple(str(name) for name in parents)
    if not segments:
        return None
    return BlockPath(segments)


def block_label(source: BlockEvent | Sequence[str] | None) -> str:
    """Display label for an event, or NO_BLOCK_LABEL if it has no parents."""
    path = block_path(source)
    return path.label if path is not None else NO_BLOCK_LABEL
