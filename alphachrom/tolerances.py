"""
Mass and retention time tolerance windows.

Tolerances turn a single m/z or RT value into a closed search window
``(low, high)``. All windows in AlphaChrom are plain ``(low, high)`` float
tuples so they can be handed to numba kernels without conversion.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .constants import (
    DEFAULT_MZ_TOLERANCE_DA,
    DEFAULT_MZ_TOLERANCE_PPM,
    DEFAULT_RT_TOLERANCE,
    PPM,
)


class InstrumentType(Enum):
    """Instrument types with different mass accuracy characteristics."""
    ORBITRAP = "orbitrap"  # ~60-240K resolution, 3-10 ppm
    TOF = "tof"            # ~30-60K resolution, 10-20 ppm
    ASTRAL = "astral"      # Orbitrap-based, similar to Orbitrap


@dataclass(frozen=True)
class MzTolerance:
    """m/z tolerance as the larger of an absolute and a relative (ppm) width.

    Parameters
    ----------
    absolute : float
        Absolute tolerance in Da
    ppm : float
        Relative tolerance in parts per million

    Examples
    --------
    >>> tol = MzTolerance(absolute=0.005, ppm=10.0)
    >>> tol.tolerance_range(200.0)
    (199.995, 200.005)
    >>> tol.tolerance_range(1000.0)  # ppm dominates above 500 m/z
    (999.99, 1000.01)
    """

    absolute: float = DEFAULT_MZ_TOLERANCE_DA
    ppm: float = DEFAULT_MZ_TOLERANCE_PPM

    def __post_init__(self):
        if self.absolute < 0 or self.ppm < 0:
            raise ValueError(
                f"m/z tolerance must not be negative (absolute={self.absolute}, ppm={self.ppm})"
            )
        if self.absolute == 0 and self.ppm == 0:
            raise ValueError("m/z tolerance must have a positive width")

    @classmethod
    def for_instrument(cls, instrument: InstrumentType) -> 'MzTolerance':
        """Create a tolerance suited to a specific instrument type.

        Args:
            instrument: Instrument type enum

        Returns:
            MzTolerance with instrument-specific defaults
        """
        if instrument in (InstrumentType.ORBITRAP, InstrumentType.ASTRAL):
            return cls(absolute=0.002, ppm=5.0)
        elif instrument == InstrumentType.TOF:
            return cls(absolute=0.005, ppm=15.0)
        else:
            raise ValueError(f"Unknown instrument type: {instrument}")

    def mz_tolerance(self, mz: float) -> float:
        """Half-width of the window around ``mz`` in Da."""
        return max(self.absolute, abs(mz) * self.ppm * PPM)

    def tolerance_range(self, mz: float) -> Tuple[float, float]:
        """Closed window ``(mz - tol, mz + tol)``."""
        tol = self.mz_tolerance(mz)
        return (mz - tol, mz + tol)

    def widen(self, mz_range: Tuple[float, float]) -> Tuple[float, float]:
        """Widen an existing m/z range by the tolerance at each end."""
        low, high = mz_range
        return (low - self.mz_tolerance(low), high + self.mz_tolerance(high))


@dataclass(frozen=True)
class RtTolerance:
    """Retention time tolerance, absolute (minutes) or relative (fraction of RT).

    Examples
    --------
    >>> RtTolerance(0.1).tolerance_range(5.0)
    (4.9, 5.1)
    >>> RtTolerance(0.02, relative=True).tolerance_range(10.0)
    (9.8, 10.2)
    """

    tolerance: float = DEFAULT_RT_TOLERANCE
    relative: bool = False

    def __post_init__(self):
        if self.tolerance < 0:
            raise ValueError(f"RT tolerance must not be negative: {self.tolerance}")

    def rt_tolerance(self, rt: float) -> float:
        if self.relative:
            return abs(rt) * self.tolerance
        return self.tolerance

    def tolerance_range(self, rt: float) -> Tuple[float, float]:
        tol = self.rt_tolerance(rt)
        return (rt - tol, rt + tol)


def range_contains(window: Tuple[float, float], value: float) -> bool:
    """Closed-window containment test."""
    return window[0] <= value <= window[1]


def range_center(window: Tuple[float, float]) -> float:
    return 0.5 * (window[0] + window[1])


def range_span(a, b):
    """Smallest window enclosing both ``a`` and ``b`` (either may be None)."""
    if a is None:
        return b
    if b is None:
        return a
    return (min(a[0], b[0]), max(a[1], b[1]))
