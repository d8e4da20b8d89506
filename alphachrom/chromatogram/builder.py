"""Chromatogram builder: single-pass trace reconstruction for one raw file.

Algorithm
---------
1. Check that the selected scans are ordered by retention time
2. Flatten every (scan, mass list point) pair and sort by intensity, descending
3. Walk the points from the most intense down:
   - a point inside an existing range joins that range's trace
   - otherwise a point above the start intensity opens a new range, shrunk to
     touch (never cross) its neighbours, or joins the upper neighbour when the
     shrink leaves nothing
4. Drop traces without ``min_scan_span`` adjacent scans above the noise level
5. Finalize the survivors into features, sorted by m/z, one row each

Traces are therefore seeded at their apex and grow outward, and at no point
do two ranges overlap.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np

from ..constants import (
    DEFAULT_CHROMATOGRAM_SUFFIX,
    DEFAULT_MASS_LIST,
    DEFAULT_MIN_SCAN_SPAN,
    DEFAULT_NOISE_LEVEL,
    DEFAULT_START_INTENSITY,
)
from ..datamodel.feature import Feature
from ..datamodel.feature_list import AppliedMethod, FeatureList, FeatureListRow
from ..datamodel.scan import Scan, ScanSelection, scan_position_index
from ..tasks import ChromatogramBuildError, RangeInvariantError, Task
from ..tolerances import InstrumentType, MzTolerance
from ..xic.peak_shape import calculate_quality_parameters
from .ranges import DisjointRangeIndex, shrink_to_neighbors
from .trace import ChromatogramTrace

logger = logging.getLogger(__name__)


@dataclass
class ChromatogramBuilderParams:
    """Parameters for chromatogram building.

    Attributes
    ----------
    scan_selection : ScanSelection
        Scans to build from (MS1 by default)
    mass_list : str
        Name of the mass list every selected scan must carry
    mz_tolerance : MzTolerance
        Width of a newly opened m/z range around its seed point
    start_intensity : float
        Minimum intensity for a point to open a new trace
    noise_level : float
        Points must be strictly above this to count toward the scan span
    min_scan_span : int
        Minimum number of adjacent scans above noise for a trace to survive
    suffix : str
        Appended to the raw file name to name the resulting feature list
    """

    scan_selection: ScanSelection = field(default_factory=ScanSelection)
    mass_list: str = DEFAULT_MASS_LIST
    mz_tolerance: MzTolerance = field(default_factory=MzTolerance)
    start_intensity: float = DEFAULT_START_INTENSITY
    noise_level: float = DEFAULT_NOISE_LEVEL
    min_scan_span: int = DEFAULT_MIN_SCAN_SPAN
    suffix: str = DEFAULT_CHROMATOGRAM_SUFFIX

    def __post_init__(self):
        if self.min_scan_span < 1:
            raise ValueError(f"min_scan_span must be at least 1, got {self.min_scan_span}")
        if self.start_intensity < 0:
            raise ValueError(f"start_intensity must not be negative, got {self.start_intensity}")
        if self.noise_level < 0:
            raise ValueError(f"noise_level must not be negative, got {self.noise_level}")

    @classmethod
    def for_instrument(cls, instrument: InstrumentType, **kwargs) -> 'ChromatogramBuilderParams':
        """Parameters with the instrument's m/z tolerance; other fields via kwargs."""
        return cls(mz_tolerance=MzTolerance.for_instrument(instrument), **kwargs)


def check_retention_order(scans: Sequence[Scan]) -> None:
    """Raise ChromatogramBuildError unless RT is non-decreasing."""
    previous_rt = -np.inf
    for scan in scans:
        if scan.retention_time < previous_rt:
            raise ChromatogramBuildError(
                f"Retention time of scan #{scan.scan_number} is smaller than the "
                f"retention time of the previous scan. Only scans with increasing "
                f"retention times can be used; restrict the scan selection."
            )
        previous_rt = scan.retention_time


class ChromatogramBuilderTask(Task):
    """Build chromatograms for one raw file into a new feature list.

    Parameters
    ----------
    raw_file : RawDataFile
        Input file
    params : ChromatogramBuilderParams
        Builder settings
    token, publish
        See ``Task``
    """

    def __init__(self, raw_file, params: ChromatogramBuilderParams, token=None, publish=None):
        super().__init__(token=token, publish=publish)
        self.raw_file = raw_file
        self.params = params
        self.ranges = DisjointRangeIndex()
        self.duplicate_count = 0

    @property
    def description(self) -> str:
        return f"Chromatogram builder on {self.raw_file}"

    def _collect_points(self, scans: List[Scan]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Flatten mass list points into (mz, intensity, scan number) arrays."""
        mz_parts, intensity_parts, scan_parts = [], [], []
        for scan in scans:
            self.check_canceled()
            mass_list = scan.get_mass_list(self.params.mass_list)
            if mass_list is None:
                raise ChromatogramBuildError(
                    f"Scan {self.raw_file} #{scan.scan_number} does not have a "
                    f"mass list {self.params.mass_list}"
                )
            mz_parts.append(mass_list.mz)
            intensity_parts.append(mass_list.intensity)
            scan_parts.append(np.full(len(mass_list), scan.scan_number, dtype=np.int64))

        if not mz_parts:
            empty = np.empty(0, dtype=np.float64)
            return empty, empty, np.empty(0, dtype=np.int64)

        mz = np.concatenate(mz_parts)
        intensity = np.concatenate(intensity_parts)
        scan_numbers = np.concatenate(scan_parts)
        valid = ~(np.isnan(mz) | np.isnan(intensity))
        return mz[valid], intensity[valid], scan_numbers[valid]

    def _place_point(self, scan_number: int, mz: float, intensity: float, scan_index) -> None:
        owner = self.ranges.find_containing(mz)
        if owner is not None:
            if not self.ranges.owner(owner.range_id).add_point(scan_number, mz, intensity):
                self.duplicate_count += 1
            return

        # Never open a trace on noise
        if intensity < self.params.start_intensity:
            return

        lower, upper = self.ranges.neighbors(mz)
        low, high = shrink_to_neighbors(self.params.mz_tolerance.tolerance_range(mz), lower, upper)

        if low < high:
            trace = ChromatogramTrace(self.raw_file, scan_index)
            trace.add_point(scan_number, mz, intensity)
            self.ranges.add(low, high, trace)
        elif low == high and upper is not None and upper.low == high:
            if not self.ranges.owner(upper.range_id).add_point(scan_number, mz, intensity):
                self.duplicate_count += 1
        else:
            raise RangeInvariantError(f"Incorrect range [{low}, {high}] for m/z {mz}")

    def _finish_traces(self) -> List[Feature]:
        features = []
        n_ranges = len(self.ranges)
        for i, (_, trace) in enumerate(self.ranges.items()):
            self.check_canceled()
            self.set_progress(0.5 + 0.5 * i / n_ranges)
            if trace.longest_run_above_noise(self.params.noise_level) < self.params.min_scan_span:
                continue
            features.append(trace.finish())
        features.sort(key=lambda f: f.mz)
        return features

    def _run(self) -> FeatureList:
        logger.info(f"Started chromatogram builder on {self.raw_file}")
        params = self.params

        scans = params.scan_selection.matching_scans(self.raw_file)
        if not scans:
            raise ChromatogramBuildError(f"No scans of {self.raw_file} match the scan selection")
        check_retention_order(scans)

        ms_levels = {scan.ms_level for scan in scans}
        if len(ms_levels) > 1:
            logger.warning(
                f"Building chromatograms on both MS1 and MS2 scans of {self.raw_file} "
                f"(levels {sorted(ms_levels)}). This will likely produce wrong results; "
                f"restrict the scan selection to one MS level."
            )

        scan_index = scan_position_index([scan.scan_number for scan in scans])
        mz, intensity, point_scans = self._collect_points(scans)

        # Stable sort: equal intensities keep their acquisition order
        order = np.argsort(-intensity, kind="stable")
        n_points = len(order)
        for count, i in enumerate(order):
            self.check_canceled()
            if count % 1000 == 0:
                self.set_progress(0.5 * count / n_points)
            self._place_point(int(point_scans[i]), float(mz[i]), float(intensity[i]), scan_index)

        if self.duplicate_count:
            logger.debug(f"{self.duplicate_count} points dropped on already occupied scans")

        features = self._finish_traces()

        feature_list = FeatureList(f"{self.raw_file} {params.suffix}", [self.raw_file])
        for row_id, feature in enumerate(features, start=1):
            row = FeatureListRow(row_id)
            row.add_feature(self.raw_file, feature)
            feature_list.add_row(row)

        calculate_quality_parameters(feature_list)
        feature_list.add_applied_method(AppliedMethod("Chromatogram builder", params))

        logger.info(
            f"Finished chromatogram builder on {self.raw_file}: "
            f"{len(features)} of {len(self.ranges)} traces kept"
        )
        return feature_list
