"""Same-range gap filling.

Each missing cell is searched in the m/z and RT span covered by the row's
existing features: the union of their m/z ranges, widened by the m/z
tolerance, and the union of their RT ranges. Every MS1 scan of that RT span
contributes its base peak (or a zero-intensity placeholder); the whole
profile becomes the ESTIMATED feature. Rows are processed on a thread pool.
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from ..constants import DEFAULT_GAP_FILL_SUFFIX
from ..datamodel.feature import Feature, FeatureStatus, build_feature
from ..datamodel.feature_list import AppliedMethod, FeatureList, FeatureListRow
from ..tasks import Task
from ..tolerances import MzTolerance, range_center, range_span
from ..xic.peak_shape import calculate_quality_parameters

logger = logging.getLogger(__name__)


@dataclass
class SameRangeGapFillParams:
    """Parameters for same-range gap filling."""

    mz_tolerance: MzTolerance = field(default_factory=MzTolerance)
    max_workers: Optional[int] = None
    suffix: str = DEFAULT_GAP_FILL_SUFFIX

    def __post_init__(self):
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")


def row_search_ranges(
    row: FeatureListRow,
    mz_tolerance: MzTolerance,
) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    """``(mz_range, rt_range)`` spanned by a row's features, None for an empty row."""
    mz_range = None
    rt_range = None
    for feature in row.features:
        mz_range = range_span(mz_range, feature.mz_range)
        rt_range = range_span(rt_range, feature.rt_range)
    if mz_range is None or rt_range is None:
        return None
    return mz_tolerance.widen(mz_range), rt_range


def fill_same_range(raw_file, mz_range, rt_range, check_canceled=None) -> Optional[Feature]:
    """Build an ESTIMATED feature from every MS1 scan of ``raw_file`` in ``rt_range``."""
    scan_numbers, rts, mzs, intensities = [], [], [], []
    for scan_number in raw_file.scan_numbers(ms_level=1, rt_range=rt_range):
        if check_canceled is not None:
            check_canceled()
        scan = raw_file.get_scan(scan_number)
        base_peak = scan.base_peak(mz_range)
        if base_peak is None:
            mz, intensity = range_center(mz_range), 0.0
        else:
            mz, intensity = base_peak
        scan_numbers.append(scan_number)
        rts.append(scan.retention_time)
        mzs.append(mz)
        intensities.append(intensity)

    intensities = np.array(intensities, dtype=np.float64)
    if not np.any(intensities > 0):
        return None
    feature = build_feature(
        raw_file,
        FeatureStatus.ESTIMATED,
        np.array(scan_numbers, dtype=np.int64),
        np.array(rts, dtype=np.float64),
        np.array(mzs, dtype=np.float64),
        intensities,
    )
    if feature.area == 0:
        return None
    return feature


class SameRangeGapFillTask(Task):
    """Fill gaps of a feature list from the span of each row's existing features."""

    def __init__(self, feature_list: FeatureList, params: SameRangeGapFillParams, token=None, publish=None):
        super().__init__(token=token, publish=publish)
        self.feature_list = feature_list
        self.params = params
        self._processed_rows = 0
        self._count_lock = threading.Lock()

    @property
    def description(self) -> str:
        return f"Gap filling {self.feature_list} using RT and m/z range"

    def _fill_row(self, source_row: FeatureListRow, row: FeatureListRow) -> None:
        search = row_search_ranges(source_row, self.params.mz_tolerance)
        for raw_file in self.feature_list.raw_files:
            self.check_canceled()
            feature = source_row.get_feature(raw_file)
            if feature is None and search is not None:
                mz_range, rt_range = search
                feature = fill_same_range(raw_file, mz_range, rt_range, self.check_canceled)
            if feature is not None:
                row.add_feature(raw_file, feature)

        with self._count_lock:
            self._processed_rows += 1
            self.set_progress(self._processed_rows / len(self.feature_list))

    def _run(self) -> FeatureList:
        logger.info(f"Started gap-filling {self.feature_list}")
        destination = self.feature_list.empty_copy(f"{self.feature_list} {self.params.suffix}")
        pairs: List[Tuple[FeatureListRow, FeatureListRow]] = list(
            zip(self.feature_list.rows, destination.rows)
        )

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.params.max_workers) as executor:
            futures = [executor.submit(self._fill_row, source, row) for source, row in pairs]
            for future in concurrent.futures.as_completed(futures):
                future.result()

        self.check_canceled()
        calculate_quality_parameters(destination)
        destination.add_applied_method(
            AppliedMethod("Gap filling using RT and m/z range", self.params)
        )
        logger.info(f"Finished gap-filling {self.feature_list}")
        return destination
