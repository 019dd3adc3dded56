"""Sortable ordinal keys.

An ordinal is a path of local keys joined by ``.``: a root entry owns a
single local key (``"V"``), its children extend it (``"V.F"``, ``"V.k"``).
Local keys are base-62 fractions written with the digits ``0-9A-Za-z``;
``"V"`` reads as 31/62 and ``"V1"`` as 31/62 + 1/62**2.

Keys never end in ``0``. Under that rule plain string comparison agrees with
the fractional value, and every pair of distinct keys has room between them
once a digit is appended. ``.`` sorts below every digit, so the byte order
of full ordinals is the depth-first order of the whole tree.
"""

import string
from typing import Callable

from .errors import OrdinalExhausted

DIGITS = string.digits + string.ascii_uppercase + string.ascii_lowercase
BASE = len(DIGITS)
SEPARATOR = "."

# One character above SEPARATOR; closes the range of a subtree
_SUBTREE_END = chr(ord(SEPARATOR) + 1)

_VALUES = {digit: value for value, digit in enumerate(DIGITS)}

DEFAULT_MAX_LENGTH = 10
DEFAULT_HEADROOM = BASE


def is_valid_key(key: str) -> bool:
    """Check that a local key is non-empty, base-62 and has no trailing zero."""
    return bool(key) and all(ch in _VALUES for ch in key) and key[-1] != DIGITS[0]


def child_ordinal(parent: str | None, key: str) -> str:
    """Build the ordinal of the child of ``parent`` with local key ``key``."""
    if parent is None:
        return key
    return f"{parent}{SEPARATOR}{key}"


def parent_ordinal(ordinal: str) -> str | None:
    """Ordinal the given one extends, or None for a root ordinal."""
    head, sep, _ = ordinal.rpartition(SEPARATOR)
    return head if sep else None


def local_key(ordinal: str) -> str:
    """Last path segment of an ordinal."""
    return ordinal.rpartition(SEPARATOR)[2]


def subtree_range(ordinal: str) -> tuple[str, str]:
    """Exclusive bounds enclosing every descendant of ``ordinal``."""
    return f"{ordinal}{SEPARATOR}", f"{ordinal}{_SUBTREE_END}"


def is_within(ordinal: str, root: str) -> bool:
    """True when ``ordinal`` is ``root`` or one of its descendants."""
    return ordinal == root or ordinal.startswith(f"{root}{SEPARATOR}")


class OrdinalCodec:
    """Generates and compares local keys.

    Args:
        max_length: Longest local key the codec issues. Asking for a key that
            only fits at a greater length raises ``OrdinalExhausted``.
        headroom: Default spacing, in units of the last digit, left between
            keys laid out by ``initial_key_at``.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH, headroom: int = DEFAULT_HEADROOM):
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        if headroom < 1:
            raise ValueError("headroom must be at least 1")
        self.max_length = max_length
        self.headroom = headroom

    def __repr__(self) -> str:
        return f"OrdinalCodec(max_length={self.max_length}, headroom={self.headroom})"

    @staticmethod
    def compare(a: str, b: str) -> int:
        """Byte-lexicographic comparison: -1, 0 or 1."""
        a_bytes, b_bytes = a.encode(), b.encode()
        return (a_bytes > b_bytes) - (a_bytes < b_bytes)

    def key_between(
        self,
        low: str | None,
        high: str | None,
        taken: Callable[[str], bool] | None = None,
    ) -> str:
        """Return a key strictly between ``low`` and ``high``.

        ``None`` stands for an open end; with both ends open the result is
        the initial key ``"V"``. The key is the midpoint of the gap at the
        shortest length that has a free slot.

        Args:
            low: Lower bound, or None.
            high: Upper bound, or None.
            taken: Optional predicate. A generated key it accepts is skipped
                and the search continues above it.

        Raises:
            OrdinalExhausted: The key would be longer than ``max_length``.
            ValueError: ``low`` is not below ``high``, or a bound is malformed.
        """
        self._check_bounds(low, high)
        while True:
            length, floor, step = self._layout(low, high, 1, 1)
            key = self._encode(floor + step, length)
            if taken is None or not taken(key):
                return key
            low = key

    def initial_key_at(
        self,
        index: int,
        count: int,
        low: str | None = None,
        high: str | None = None,
        min_step: int | None = None,
    ) -> str:
        """Key for slot ``index`` out of ``count`` evenly spaced keys.

        The same arguments always give the same key, and keys for increasing
        indexes increase, so a list of ``count`` items can be keyed one item
        at a time. Used for bulk population and for rebalancing a window of
        siblings between two fixed neighbours.

        Raises:
            IndexError: ``index`` is outside ``[0, count)``.
            OrdinalExhausted: ``count`` keys with ``min_step`` spacing do not
                fit between the bounds within ``max_length``.
        """
        if not 0 <= index < count:
            raise IndexError(f"index {index} outside 0..{count - 1}")
        self._check_bounds(low, high)
        length, floor, step = self._layout(low, high, count, min_step or self.headroom)
        return self._encode(floor + step * (index + 1), length)

    def gap(self, low: str | None, high: str | None) -> int:
        """Room between two bounds, counted in keys of ``max_length`` digits.

        Bounds longer than ``max_length`` are measured at their own length.
        """
        self._check_bounds(low, high)
        length = max(self.max_length, len(low or ""), len(high or ""))
        floor = self._value(low, length) if low is not None else 0
        ceiling = self._value(high, length) if high is not None else BASE**length
        return ceiling - floor

    def _layout(self, low: str | None, high: str | None, count: int, min_step: int) -> tuple[int, int, int]:
        """Find the shortest length where ``count`` keys fit ``min_step`` apart."""
        length = max(len(low or ""), len(high or ""), 1)
        while length <= self.max_length:
            floor = self._value(low, length) if low is not None else 0
            ceiling = self._value(high, length) if high is not None else BASE**length
            step = (ceiling - floor) // (count + 1)
            if step >= min_step:
                return length, floor, step
            length += 1
        raise OrdinalExhausted(low, high)

    @staticmethod
    def _check_bounds(low: str | None, high: str | None) -> None:
        for bound in (low, high):
            if bound is not None and not is_valid_key(bound):
                raise ValueError(f"Malformed key: {bound!r}")
        if low is not None and high is not None and low >= high:
            raise ValueError(f"Lower bound {low!r} is not below {high!r}")

    @staticmethod
    def _value(key: str, length: int) -> int:
        value = 0
        for ch in key.ljust(length, DIGITS[0]):
            value = value * BASE + _VALUES[ch]
        return value

    @staticmethod
    def _encode(value: int, length: int) -> str:
        digits = []
        for _ in range(length):
            value, digit = divmod(value, BASE)
            digits.append(DIGITS[digit])
        return "".join(reversed(digits)).rstrip(DIGITS[0])
