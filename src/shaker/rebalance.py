"""Scoped re-spacing of sibling keys.

When two neighbouring siblings leave no room for a key within the codec's
length limit, RebalanceManager lays a window of siblings out again with
even spacing. Only the window moves, and rows outside the sibling group are
never touched beyond the descendants that share a moved sibling's prefix.

The window grows around the insertion point (2, 4, 8, ... siblings) until
it is sparse enough for its size: a window of ``w`` siblings is used only
when its outer neighbours leave ``headroom * w**3`` keys of room per
sibling, so wider windows come out with wider spacing.
"""

import logging
from dataclasses import dataclass, field

from .errors import CapacityExceeded, OrdinalExhausted
from .ordinal import OrdinalCodec, SEPARATOR, child_ordinal
from .store import EntryStore

logger = logging.getLogger(__name__)

# Exponent of the window width in the room a window must leave per sibling
DENSITY_EXPONENT = 3


@dataclass
class Rebalanced:
    """Outcome of making room among siblings.

    Attributes:
        parent: Ordinal of the sibling group's parent (None for roots).
        key: Free local key for the pending insertion.
        window: Half-open range of sibling positions that was re-spaced.
        moves: Old and new ordinal of every sibling whose key changed.
    """
    parent: str | None
    key: str
    window: tuple[int, int]
    moves: list[tuple[str, str]] = field(default_factory=list)

    def remap(self, ordinal: str) -> str:
        """Current ordinal of an entry that may sit inside a moved subtree."""
        for old, new in self.moves:
            if ordinal == old or ordinal.startswith(old + SEPARATOR):
                return new + ordinal[len(old):]
        return ordinal


class RebalanceManager:
    """Frees a key slot among siblings by re-spacing a local window.

    Must be called inside the transaction of the operation that needs the
    slot, so an abort discards the re-spacing as well.
    """

    def __init__(self, store: EntryStore, codec: OrdinalCodec):
        self.store = store
        self.codec = codec
        self.count = 0

    def make_room(self, parent: str | None, keys: list[str], index: int) -> Rebalanced:
        """Re-space siblings so a new key fits at position ``index``.

        Args:
            parent: Parent of the sibling group.
            keys: Current local keys of the siblings, in order.
            index: Position the new key must take (0..len(keys)).

        Returns:
            The free key and the moves applied to the store.

        Raises:
            CapacityExceeded: Not even the whole group can take another key.
        """
        total = len(keys)
        width = 2
        while True:
            lo = max(0, index - width // 2)
            hi = min(total, lo + width)
            lo = max(0, hi - width)
            whole = lo == 0 and hi == total
            if whole or self._sparse(keys, lo, hi, width):
                try:
                    planned = self._plan(parent, keys, index, lo, hi, self.codec.headroom)
                    break
                except OrdinalExhausted:
                    pass
            if not whole:
                width *= 2
                continue
            try:
                planned = self._plan(parent, keys, index, lo, hi, 1)
                break
            except OrdinalExhausted as e:
                raise CapacityExceeded(f"No room for another child under {parent!r}") from e

        result = Rebalanced(parent=parent, key=planned[index - lo], window=(lo, hi))
        for position, new_key in zip(range(lo, hi), planned[:index - lo] + planned[index - lo + 1:]):
            old_key = keys[position]
            if new_key == old_key:
                continue
            old, new = child_ordinal(parent, old_key), child_ordinal(parent, new_key)
            self.store.reparent_and_rekey(old, parent, new)
            result.moves.append((old, new))

        self.count += 1
        logger.info(
            "rebalanced %d of %d siblings under %s (window %d..%d)",
            len(result.moves), total, parent, lo, hi,
        )
        return result

    def _sparse(self, keys: list[str], lo: int, hi: int, width: int) -> bool:
        """Check that positions lo..hi plus one new key leave enough room for ``width``."""
        low, high = _bounds(keys, lo, hi)
        room = self.codec.gap(low, high) // (hi - lo + 2)
        return room >= self.codec.headroom * width**DENSITY_EXPONENT

    def _plan(
        self,
        parent: str | None,
        keys: list[str],
        index: int,
        lo: int,
        hi: int,
        min_step: int,
    ) -> list[str]:
        """Lay out keys for positions lo..hi plus the new slot at ``index``.

        A planned key that was already issued to another entry is redrawn
        between its planned neighbours.
        """
        low, high = _bounds(keys, lo, hi)
        count = hi - lo + 1
        planned = [self.codec.initial_key_at(i, count, low, high, min_step) for i in range(count)]

        owners = keys[lo:index] + [None] + keys[index:hi]

        def taken(key: str) -> bool:
            return self.store.is_issued(child_ordinal(parent, key))

        previous = low
        for i, key in enumerate(planned):
            if key != owners[i] and taken(key):
                following = planned[i + 1] if i + 1 < count else high
                key = self.codec.key_between(previous, following, taken)
                planned[i] = key
            previous = key
        return planned


def _bounds(keys: list[str], lo: int, hi: int) -> tuple[str | None, str | None]:
    """Outer neighbours of positions lo..hi; None past either end."""
    low = keys[lo - 1] if lo > 0 else None
    high = keys[hi] if hi < len(keys) else None
    return low, high
