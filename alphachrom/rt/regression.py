"""
Linear retention time mapping between two raw files.

Gap filling with RT correction pairs the retention times of rows detected in
both of two files and fits ``y = a*x + b`` by ordinary least squares. The fit
is only trusted when at least two distinct x values were observed; otherwise
``predict`` returns ``NO_PREDICTION`` and callers skip the gap.

Example
-------
>>> info = RegressionInfo()
>>> for x, y in [(1.0, 1.1), (2.0, 2.1), (3.0, 3.1)]:
...     info.add_data(x, y)
>>> info.set_function()
>>> round(info.predict(4.0), 6)
4.1
"""

from typing import List, Optional, Tuple

import numpy as np
from numba import njit

from ..constants import NO_PREDICTION


@njit
def _linear_fit(x, y):
    """
    Ordinary least squares: y = a*x + b

    Closed-form solution. Returns NaN coefficients when all x are equal.
    """
    n = x.size
    sx = 0.0
    sy = 0.0
    sxx = 0.0
    sxy = 0.0
    for i in range(n):
        xi = x[i]
        yi = y[i]
        sx += xi
        sy += yi
        sxx += xi*xi
        sxy += xi*yi
    den = n*sxx - sx*sx
    if n < 2 or abs(den) < 1e-24:
        return np.nan, np.nan
    a = (n*sxy - sx*sy) / den
    b = (sy - a*sx) / n
    return a, b


class RegressionInfo:
    """Incrementally collected (x, y) retention time pairs and their linear fit."""

    def __init__(self):
        self._x: List[float] = []
        self._y: List[float] = []
        self._coefficients: Optional[Tuple[float, float]] = None

    def __len__(self) -> int:
        return len(self._x)

    def add_data(self, x: float, y: float) -> None:
        self._x.append(float(x))
        self._y.append(float(y))
        self._coefficients = None

    def set_function(self) -> None:
        """Fit the collected pairs. Must be called before ``predict``."""
        x = np.array(self._x, dtype=np.float64)
        y = np.array(self._y, dtype=np.float64)
        if len(np.unique(x)) < 2:
            self._coefficients = None
            return
        slope, intercept = _linear_fit(x, y)
        if not (np.isfinite(slope) and np.isfinite(intercept)):
            self._coefficients = None
            return
        self._coefficients = (float(slope), float(intercept))

    @property
    def coefficients(self) -> Optional[Tuple[float, float]]:
        """``(slope, intercept)`` of the fit, None without a valid fit."""
        return self._coefficients

    def predict(self, x: float) -> float:
        """Predicted y, or ``NO_PREDICTION`` when no valid fit or a negative time results."""
        if self._coefficients is None:
            return NO_PREDICTION
        slope, intercept = self._coefficients
        y = slope * x + intercept
        if not np.isfinite(y) or y < 0:
            return NO_PREDICTION
        return float(y)
