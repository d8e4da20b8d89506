"""Chromatographic peak shape metrics.

High-performance implementations of:
- FWHM (Full Width at Half Maximum) calculation
- Tailing factor at 5% of peak height
- Asymmetry factor at 10% of peak height

All widths are reported in the unit of the supplied time axis (minutes for
features). Metrics that cannot be computed are returned as NaN by the kernels
and as ``None`` on features.
"""

from typing import TYPE_CHECKING

import numpy as np
from numba import njit

if TYPE_CHECKING:
    from ..datamodel.feature_list import FeatureList


@njit
def _level_crossings(
    rt_values: np.ndarray,
    intensities: np.ndarray,
    fraction: float,
) -> tuple:
    """Find where the peak crosses ``fraction * height`` on either side of the apex.

    Uses linear interpolation between the last point above and the first
    point at or below the level.

    Returns:
        (left_rt, apex_rt, right_rt); left/right are NaN when the trace never
        drops to the level on that side
    """
    n = len(rt_values)
    if n == 0:
        return np.nan, np.nan, np.nan

    max_idx = np.argmax(intensities)
    apex_rt = rt_values[max_idx]
    level = intensities[max_idx] * fraction

    # Find left crossing (scanning backward from apex)
    left_rt = np.nan
    for i in range(max_idx - 1, -1, -1):
        if intensities[i] <= level:
            denom = intensities[i + 1] - intensities[i]
            if abs(denom) > 1e-10:
                frac = (level - intensities[i]) / denom
                left_rt = rt_values[i] + frac * (rt_values[i + 1] - rt_values[i])
            else:
                left_rt = rt_values[i]
            break

    # Find right crossing (scanning forward from apex)
    right_rt = np.nan
    for i in range(max_idx + 1, n):
        if intensities[i] <= level:
            denom = intensities[i] - intensities[i - 1]
            if abs(denom) > 1e-10:
                frac = (level - intensities[i - 1]) / denom
                right_rt = rt_values[i - 1] + frac * (rt_values[i] - rt_values[i - 1])
            else:
                right_rt = rt_values[i]
            break

    return left_rt, apex_rt, right_rt


@njit
def calculate_fwhm(rt_values: np.ndarray, intensities: np.ndarray) -> float:
    """Full width at half maximum, NaN if either half-height crossing is missing.

    Examples:
        >>> rt = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
        >>> calculate_fwhm(rt, np.array([0.0, 50.0, 100.0, 50.0, 0.0]))
        2.0
    """
    left_rt, apex_rt, right_rt = _level_crossings(rt_values, intensities, 0.5)
    return right_rt - left_rt


@njit
def calculate_tailing_factor(rt_values: np.ndarray, intensities: np.ndarray) -> float:
    """USP tailing factor ``(a + b) / 2a`` at 5% of the peak height.

    ``a`` is the front half-width and ``b`` the back half-width at that level.
    """
    left_rt, apex_rt, right_rt = _level_crossings(rt_values, intensities, 0.05)
    a = apex_rt - left_rt
    b = right_rt - apex_rt
    if not a > 0.0:
        return np.nan
    return (a + b) / (2.0 * a)


@njit
def calculate_asymmetry_factor(rt_values: np.ndarray, intensities: np.ndarray) -> float:
    """Asymmetry factor ``b / a`` at 10% of the peak height."""
    left_rt, apex_rt, right_rt = _level_crossings(rt_values, intensities, 0.1)
    a = apex_rt - left_rt
    b = right_rt - apex_rt
    if not a > 0.0:
        return np.nan
    return b / a


def _finite_or_none(value: float):
    return float(value) if np.isfinite(value) else None


def calculate_quality_parameters(feature_list: "FeatureList") -> None:
    """Attach FWHM, tailing and asymmetry factors to every feature in a list.

    Features are immutable, so each one is replaced in its row by an
    enriched copy.
    """
    for row in feature_list.rows:
        for raw_file, feature in row.items():
            if len(feature.rt_values) == 0:
                continue
            rt = feature.rt_values
            intensity = feature.intensities
            row.add_feature(
                raw_file,
                feature.with_quality(
                    fwhm=_finite_or_none(calculate_fwhm(rt, intensity)),
                    tailing_factor=_finite_or_none(calculate_tailing_factor(rt, intensity)),
                    asymmetry_factor=_finite_or_none(calculate_asymmetry_factor(rt, intensity)),
                ),
            )
