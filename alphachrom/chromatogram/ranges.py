"""Ordered registry of disjoint half-open m/z ranges.

Each range ``[low, high)`` exclusively owns one chromatogram trace. Ranges are
kept as parallel sorted lists of lower and upper bounds so that containment
and neighbour queries are a single ``bisect`` each. Owners live in a side table
keyed by a stable integer range ID, never by the (mutable) bounds.

Because ranges are half-open, a point sitting exactly on a boundary shared by
two ranges belongs to the upper one.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..tasks import RangeInvariantError


@dataclass(frozen=True)
class MassRange:
    """Half-open m/z interval ``[low, high)`` with a stable ID."""

    range_id: int
    low: float
    high: float

    def contains(self, mz: float) -> bool:
        return self.low <= mz < self.high

    @property
    def width(self) -> float:
        return self.high - self.low


class DisjointRangeIndex:
    """Sorted, non-overlapping m/z ranges with an owner per range.

    Examples
    --------
    >>> index = DisjointRangeIndex()
    >>> first = index.add(99.99, 100.01, "trace A")
    >>> index.find_containing(100.0).range_id == first.range_id
    True
    >>> index.neighbors(100.02)[0].high
    100.01
    """

    def __init__(self):
        self._lows: List[float] = []
        self._highs: List[float] = []
        self._ids: List[int] = []
        self._owners: Dict[int, Any] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._ids)

    def _range_at(self, i: int) -> MassRange:
        return MassRange(self._ids[i], self._lows[i], self._highs[i])

    def _slot(self, mz: float) -> int:
        # Index of the last range whose lower bound is <= mz, -1 if none
        return bisect_right(self._lows, mz) - 1

    def find_containing(self, mz: float) -> Optional[MassRange]:
        """Range owning ``mz``, or None."""
        i = self._slot(mz)
        if i >= 0 and mz < self._highs[i]:
            return self._range_at(i)
        return None

    def neighbors(self, mz: float) -> Tuple[Optional[MassRange], Optional[MassRange]]:
        """Nearest ranges entirely below and entirely above an uncontained ``mz``.

        Raises
        ------
        ValueError
            If ``mz`` is contained in a range
        """
        i = self._slot(mz)
        if i >= 0 and mz < self._highs[i]:
            raise ValueError(f"m/z {mz} is owned by range #{self._ids[i]}")
        lower = self._range_at(i) if i >= 0 else None
        upper = self._range_at(i + 1) if i + 1 < len(self._ids) else None
        return lower, upper

    def add(self, low: float, high: float, owner: Any) -> MassRange:
        """Insert a new range; it must not overlap any existing one."""
        if not low < high:
            raise RangeInvariantError(f"Incorrect range [{low}, {high})")
        i = bisect_right(self._lows, low)
        if i > 0 and self._highs[i - 1] > low:
            raise RangeInvariantError(
                f"Range [{low}, {high}) overlaps [{self._lows[i - 1]}, {self._highs[i - 1]})"
            )
        if i < len(self._lows) and self._lows[i] < high:
            raise RangeInvariantError(
                f"Range [{low}, {high}) overlaps [{self._lows[i]}, {self._highs[i]})"
            )

        range_id = self._next_id
        self._next_id += 1
        self._lows.insert(i, low)
        self._highs.insert(i, high)
        self._ids.insert(i, range_id)
        self._owners[range_id] = owner
        return MassRange(range_id, low, high)

    def owner(self, range_id: int) -> Any:
        return self._owners[range_id]

    def ranges(self) -> Iterator[MassRange]:
        """Ranges in ascending m/z order."""
        for i in range(len(self._ids)):
            yield self._range_at(i)

    def items(self) -> Iterator[Tuple[MassRange, Any]]:
        for mass_range in self.ranges():
            yield mass_range, self._owners[mass_range.range_id]

    def check_disjoint(self) -> bool:
        """True when every range is non-empty and ranges do not overlap."""
        for i in range(len(self._ids)):
            if not self._lows[i] < self._highs[i]:
                return False
            if i > 0 and self._highs[i - 1] > self._lows[i]:
                return False
        return True


def shrink_to_neighbors(
    tolerance_range: Tuple[float, float],
    lower: Optional[MassRange],
    upper: Optional[MassRange],
) -> Tuple[float, float]:
    """Clip a tolerance window so it touches, but never crosses, its neighbours."""
    low, high = tolerance_range
    if lower is not None and lower.high > low:
        low = lower.high
    if upper is not None and upper.low < high:
        high = upper.low
    return low, high
