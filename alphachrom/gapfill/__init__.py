"""Gap filling: recover features a detector missed in some raw files.

Provides:
- Gap: search window for one missing (row, raw file) cell
- GapFillTask: serial, file-parallel or two-pass RT-corrected gap filling
- MultiThreadGapFillTask: raw files split across worker sub tasks
- SameRangeGapFillTask: search in the span of a row's existing features
"""

from .gap import (
    Gap,
    GapDataPoint,
    peak_bounds,
)

from .engine import (
    GapFillParams,
    GapFillTask,
)

from .workers import (
    GapFillSubTask,
    MultiThreadGapFillTask,
    SubTaskFinishListener,
    split_file_ranges,
)

from .same_range import (
    SameRangeGapFillParams,
    SameRangeGapFillTask,
    fill_same_range,
    row_search_ranges,
)

__all__ = [
    # Gap
    'Gap',
    'GapDataPoint',
    'peak_bounds',
    # Engine
    'GapFillParams',
    'GapFillTask',
    # Workers
    'GapFillSubTask',
    'MultiThreadGapFillTask',
    'SubTaskFinishListener',
    'split_file_ranges',
    # Same range
    'SameRangeGapFillParams',
    'SameRangeGapFillTask',
    'fill_same_range',
    'row_search_ranges',
]
