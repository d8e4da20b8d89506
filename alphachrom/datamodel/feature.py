"""Feature: one chromatographic signal of one raw data file.

Detected traces, gap-filled estimates and manually picked peaks share this
single type; ``status`` says where a feature came from and ``shape_model``
optionally carries a fitted peak model.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..constants import NOT_FOUND
from ..xic.extraction import trapezoid_area_seconds


class FeatureStatus(Enum):
    """Origin of a feature."""
    DETECTED = "detected"    # Built from the file's own data by a detector
    ESTIMATED = "estimated"  # Recovered by gap filling
    MANUAL = "manual"        # Picked by a user


@dataclass(frozen=True)
class ShapeModel:
    """Fitted peak shape attached to a feature (e.g. Gaussian, triangle)."""

    name: str
    parameters: Dict[str, float] = field(default_factory=dict)
    intensities: Optional[np.ndarray] = None


@dataclass(frozen=True, eq=False)
class Feature:
    """Finalized chromatographic feature.

    Attributes
    ----------
    raw_file : RawDataFile
        File the feature was found in
    status : FeatureStatus
        DETECTED, ESTIMATED or MANUAL
    mz : float
        Representative m/z
    rt : float
        Retention time of the apex (minutes)
    height : float
        Apex intensity
    area : float
        Trapezoidal area over retention time in seconds
    scan_numbers, rt_values, mz_values, intensities : np.ndarray
        Per-scan data points in scan order
    representative_scan : int
        Scan number of the apex
    fragment_scan : int
        Best MS2 scan (highest TIC) inside the feature window, -1 if none
    all_fragment_scans : tuple of int
        Every MS2 scan inside the feature window
    rt_range, mz_range, intensity_range : tuple
        Spans of the raw data points
    charge : int
        Charge state (0 = unknown)
    """

    raw_file: Any
    status: FeatureStatus
    mz: float
    rt: float
    height: float
    area: float
    scan_numbers: np.ndarray
    rt_values: np.ndarray
    mz_values: np.ndarray
    intensities: np.ndarray
    representative_scan: int = NOT_FOUND
    fragment_scan: int = NOT_FOUND
    all_fragment_scans: Tuple[int, ...] = ()
    rt_range: Optional[Tuple[float, float]] = None
    mz_range: Optional[Tuple[float, float]] = None
    intensity_range: Optional[Tuple[float, float]] = None
    charge: int = 0
    isotope_pattern: Optional[Any] = None
    shape_model: Optional[ShapeModel] = None
    parent: Optional['Feature'] = None
    fwhm: Optional[float] = None
    tailing_factor: Optional[float] = None
    asymmetry_factor: Optional[float] = None

    def __repr__(self) -> str:
        return (
            f"Feature({self.status.value}, {self.raw_file}, "
            f"m/z {self.mz:.4f} @ {self.rt:.3f} min, height {self.height:.4g})"
        )

    def __len__(self) -> int:
        return len(self.scan_numbers)

    def data_point(self, scan_number: int) -> Optional[Tuple[float, float]]:
        """``(mz, intensity)`` recorded for ``scan_number``, or None."""
        hits = np.flatnonzero(self.scan_numbers == scan_number)
        if len(hits) == 0:
            return None
        i = hits[0]
        return float(self.mz_values[i]), float(self.intensities[i])

    def with_quality(self, fwhm, tailing_factor, asymmetry_factor) -> 'Feature':
        return replace(
            self, fwhm=fwhm, tailing_factor=tailing_factor, asymmetry_factor=asymmetry_factor
        )

    def with_charge(self, charge: int) -> 'Feature':
        return replace(self, charge=charge)

    def with_isotope_pattern(self, isotope_pattern) -> 'Feature':
        return replace(self, isotope_pattern=isotope_pattern)

    def with_shape_model(self, shape_model: ShapeModel) -> 'Feature':
        """Copy carrying a fitted shape, pointing back to this feature."""
        return replace(self, shape_model=shape_model, parent=self)


def build_feature(
    raw_file,
    status: FeatureStatus,
    scan_numbers: np.ndarray,
    rt_values: np.ndarray,
    mz_values: np.ndarray,
    intensities: np.ndarray,
    mz: Optional[float] = None,
) -> Feature:
    """Finalize per-scan data points into a Feature.

    The apex is the first point of maximum intensity. Time and m/z spans are
    taken over non-zero points only; the MS2 scans inside that final window
    supply the fragment links and, if the best one knows it, the charge.

    Parameters
    ----------
    raw_file : RawDataFile
        Source file (used for fragment scan lookup)
    status : FeatureStatus
        Origin of the feature
    scan_numbers, rt_values, mz_values, intensities : np.ndarray
        Data points in scan order (at least one)
    mz : float, optional
        Representative m/z; defaults to the mean m/z of the non-zero points

    Returns
    -------
    Feature
    """
    scan_numbers = np.asarray(scan_numbers, dtype=np.int64)
    rt_values = np.ascontiguousarray(rt_values, dtype=np.float64)
    mz_values = np.ascontiguousarray(mz_values, dtype=np.float64)
    intensities = np.ascontiguousarray(intensities, dtype=np.float64)
    if len(scan_numbers) == 0:
        raise ValueError("Cannot build a feature without data points")

    apex = int(np.argmax(intensities))
    nonzero = intensities > 0
    if not np.any(nonzero):
        nonzero = np.ones(len(intensities), dtype=bool)

    rt_range = (float(rt_values[nonzero].min()), float(rt_values[nonzero].max()))
    mz_range = (float(mz_values[nonzero].min()), float(mz_values[nonzero].max()))
    intensity_range = (float(intensities.min()), float(intensities.max()))
    if mz is None:
        mz = float(np.mean(mz_values[nonzero]))

    fragment_scans = raw_file.fragment_scans(rt_range, mz_range)
    fragment_scan = raw_file.best_fragment_scan(rt_range, mz_range)
    charge = 0
    if fragment_scan != NOT_FOUND:
        precursor_charge = raw_file.get_scan(fragment_scan).precursor_charge
        if precursor_charge > 0:
            charge = precursor_charge

    return Feature(
        raw_file=raw_file,
        status=status,
        mz=float(mz),
        rt=float(rt_values[apex]),
        height=float(intensities[apex]),
        area=float(trapezoid_area_seconds(rt_values, intensities)),
        scan_numbers=scan_numbers,
        rt_values=rt_values,
        mz_values=mz_values,
        intensities=intensities,
        representative_scan=int(scan_numbers[apex]),
        fragment_scan=fragment_scan,
        all_fragment_scans=tuple(fragment_scans),
        rt_range=rt_range,
        mz_range=mz_range,
        intensity_range=intensity_range,
        charge=charge,
    )
