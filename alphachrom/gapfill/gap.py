"""Gap: search window for one trace a detector missed in one raw file.

A gap is fed the scans of its raw file in retention time order. Inside its
RT window it records, per scan, the most intense point in its m/z window (or
a zero-intensity placeholder at the window centre). When the file has been
streamed, the recorded profile is cut down to the peak around its apex and
finalized into an ESTIMATED feature.

Scans must be offered in non-decreasing retention time; this is not checked.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..datamodel.feature import Feature, FeatureStatus, build_feature
from ..datamodel.scan import Scan
from ..tolerances import range_center, range_contains


@dataclass(frozen=True)
class GapDataPoint:
    """Best point of one scan inside the gap window."""

    scan_number: int
    mz: float
    rt: float
    intensity: float


def peak_bounds(intensities: np.ndarray, intensity_tolerance: float) -> Tuple[int, int]:
    """Inclusive ``(left, right)`` indices of the peak around the apex.

    Starting from the first maximum, the peak grows toward each side while the
    next point does not rise above the current one by more than
    ``intensity_tolerance`` (relative). A zero-intensity point is included and
    ends that side.

    Examples
    --------
    >>> peak_bounds(np.array([0.0, 10.0, 50.0, 100.0, 60.0, 0.0, 80.0]), 0.2)
    (0, 5)
    """
    apex = int(np.argmax(intensities))
    limit = 1.0 + intensity_tolerance

    left = apex
    while left > 0:
        if intensities[left - 1] > intensities[left] * limit:
            break
        left -= 1
        if intensities[left] == 0:
            break

    right = apex
    while right < len(intensities) - 1:
        if intensities[right + 1] > intensities[right] * limit:
            break
        right += 1
        if intensities[right] == 0:
            break

    return left, right


class Gap:
    """Missing (row, raw file) cell of a feature list.

    Parameters
    ----------
    row : FeatureListRow
        Destination row the recovered feature belongs to
    raw_file : RawDataFile
        File searched for the missing signal
    mz_range : tuple
        Closed m/z search window
    rt_range : tuple
        Closed RT search window (minutes)
    intensity_tolerance : float
        Relative rise allowed while extending the peak from its apex
    noise_level : float, optional
        Points below this intensity are ignored
    """

    def __init__(
        self,
        row,
        raw_file,
        mz_range: Tuple[float, float],
        rt_range: Tuple[float, float],
        intensity_tolerance: float,
        noise_level: Optional[float] = None,
    ):
        self.row = row
        self.raw_file = raw_file
        self.mz_range = mz_range
        self.rt_range = rt_range
        self.intensity_tolerance = intensity_tolerance
        self.noise_level = noise_level
        self._points: List[GapDataPoint] = []

    def __repr__(self) -> str:
        return (
            f"Gap(row #{self.row.row_id}, {self.raw_file}, "
            f"m/z {self.mz_range[0]:.4f}-{self.mz_range[1]:.4f}, "
            f"RT {self.rt_range[0]:.3f}-{self.rt_range[1]:.3f})"
        )

    @property
    def data_points(self) -> List[GapDataPoint]:
        return list(self._points)

    def offer_next_scan(self, scan: Scan) -> None:
        rt = scan.retention_time
        if not range_contains(self.rt_range, rt):
            return

        min_intensity = self.noise_level if self.noise_level is not None else 0.0
        base_peak = scan.base_peak(self.mz_range, min_intensity)
        if base_peak is None:
            point = GapDataPoint(scan.scan_number, range_center(self.mz_range), rt, 0.0)
        else:
            mz, intensity = base_peak
            point = GapDataPoint(scan.scan_number, mz, rt, intensity)
        self._points.append(point)

    def no_more_offers(self) -> Optional[Feature]:
        """Finalize the recorded profile; None when nothing usable was found."""
        if not self._points:
            return None
        intensities = np.array([p.intensity for p in self._points], dtype=np.float64)
        if not np.any(intensities > 0):
            return None

        left, right = peak_bounds(intensities, self.intensity_tolerance)
        segment = self._points[left:right + 1]
        feature = build_feature(
            self.raw_file,
            FeatureStatus.ESTIMATED,
            np.array([p.scan_number for p in segment], dtype=np.int64),
            np.array([p.rt for p in segment], dtype=np.float64),
            np.array([p.mz for p in segment], dtype=np.float64),
            intensities[left:right + 1],
        )
        if feature.area == 0:
            return None
        return feature
