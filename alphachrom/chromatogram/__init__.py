"""Chromatogram building from intensity-ordered mass list points.

Provides:
- DisjointRangeIndex: sorted half-open m/z ranges, O(log n) lookup
- ChromatogramTrace: one retained point per scan, apex-seeded
- ChromatogramBuilderTask: one raw file in, one feature list out
"""

from .ranges import (
    DisjointRangeIndex,
    MassRange,
    shrink_to_neighbors,
)

from .trace import ChromatogramTrace

from .builder import (
    ChromatogramBuilderParams,
    ChromatogramBuilderTask,
    check_retention_order,
)

__all__ = [
    'DisjointRangeIndex',
    'MassRange',
    'shrink_to_neighbors',
    'ChromatogramTrace',
    'ChromatogramBuilderParams',
    'ChromatogramBuilderTask',
    'check_retention_order',
]
