"""Mutable chromatogram trace accumulated by the chromatogram builder."""

from typing import Dict, Optional, Tuple

import numpy as np

from ..datamodel.feature import Feature, FeatureStatus, build_feature
from ..datamodel.scan import scan_positions
from ..xic.extraction import longest_contiguous_run


class ChromatogramTrace:
    """One data point per scan for a single disjoint m/z range.

    Points arrive in descending intensity order, so the first point stored
    for a scan is the most intense one the range sees in that scan. Later
    points for the same scan are counted and dropped.

    Parameters
    ----------
    raw_file : RawDataFile
        File the trace is built from
    scan_index : dict
        Position of every scan of the builder's scan selection, shared by
        all traces of one run; adjacency for the contiguous-run filter is
        judged against this numbering (see ``scan_position_index``)
    """

    def __init__(self, raw_file, scan_index: Dict[int, int]):
        self.raw_file = raw_file
        self._scan_index = scan_index
        self._points: Dict[int, Tuple[float, float]] = {}
        self.apex_mz: Optional[float] = None
        self.duplicate_count = 0
        self._mz_sum = 0.0
        self._weighted_mz_sum = 0.0
        self._weight_sum = 0.0

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return f"ChromatogramTrace(m/z {self.mz:.4f}, {len(self._points)} points)"

    def add_point(self, scan_number: int, mz: float, intensity: float) -> bool:
        """Store a point unless the scan already has one.

        Returns
        -------
        bool
            True if the point was stored
        """
        if scan_number in self._points:
            self.duplicate_count += 1
            return False
        if self.apex_mz is None:
            self.apex_mz = mz
        self._points[scan_number] = (mz, intensity)
        self._mz_sum += mz
        self._weighted_mz_sum += intensity * mz
        self._weight_sum += intensity
        return True

    def data_point(self, scan_number: int) -> Optional[Tuple[float, float]]:
        return self._points.get(scan_number)

    @property
    def mz(self) -> float:
        """Running mean m/z of the stored points."""
        if not self._points:
            return 0.0
        return self._mz_sum / len(self._points)

    @property
    def weighted_mz(self) -> float:
        if self._weight_sum <= 0:
            return self.mz
        return self._weighted_mz_sum / self._weight_sum

    def _sorted_points(self):
        numbers = np.fromiter(self._points.keys(), dtype=np.int64, count=len(self._points))
        positions = scan_positions(self._scan_index, numbers)
        order = np.argsort(positions, kind="stable")
        numbers = numbers[order]
        positions = positions[order]
        mz = np.array([self._points[n][0] for n in numbers], dtype=np.float64)
        intensity = np.array([self._points[n][1] for n in numbers], dtype=np.float64)
        return numbers, positions, mz, intensity

    def longest_run_above_noise(self, noise_level: float) -> int:
        """Longest streak of file-adjacent scans strictly above ``noise_level``."""
        if not self._points:
            return 0
        _, positions, _, intensity = self._sorted_points()
        return int(longest_contiguous_run(positions, intensity, noise_level))

    def finish(self) -> Feature:
        """Finalize into a DETECTED feature whose m/z is the apex point's m/z."""
        numbers, _, mz, intensity = self._sorted_points()
        rt = np.array(
            [self.raw_file.get_scan(int(n)).retention_time for n in numbers],
            dtype=np.float64,
        )
        return build_feature(
            self.raw_file,
            FeatureStatus.DETECTED,
            numbers,
            rt,
            mz,
            intensity,
            mz=self.apex_mz,
        )
