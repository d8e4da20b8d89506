"""Numba kernels for scan point lookup and chromatogram integration.

All kernels operate on plain float64/int64 arrays:
1. Binary search for a closed m/z window on mass-sorted points
2. Base peak (most intense point) inside an m/z window
3. Trapezoidal area over retention time in seconds
4. Longest run of file-adjacent scans above a noise floor

The scan source guarantees mass-sorted point arrays, so window lookups are
O(log n) per scan.
"""

from typing import Tuple

import numba as nb
import numpy as np


@nb.njit
def binary_search_mz_window(
    mz_array: np.ndarray,
    low_mz: float,
    high_mz: float,
) -> Tuple[int, int]:
    """Find the index range of points inside the closed window [low_mz, high_mz].

    Parameters
    ----------
    mz_array : np.ndarray
        Sorted array of m/z values
    low_mz : float
        Lower window bound (inclusive)
    high_mz : float
        Upper window bound (inclusive)

    Returns
    -------
    start_idx : int
        Start index (inclusive)
    end_idx : int
        End index (exclusive, Python convention)

    Examples
    --------
    >>> mz_array = np.array([100.0, 200.0, 200.1, 300.0])
    >>> binary_search_mz_window(mz_array, 199.9, 200.2)
    (1, 3)
    """
    n = len(mz_array)
    if n == 0 or high_mz < low_mz:
        return 0, 0

    # Binary search for lower bound
    left, right = 0, n
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] < low_mz:
            left = mid + 1
        else:
            right = mid
    start_idx = left

    # Binary search for upper bound
    left, right = start_idx, n
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] <= high_mz:
            left = mid + 1
        else:
            right = mid
    end_idx = left

    return start_idx, end_idx


@nb.njit
def find_base_peak(
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    low_mz: float,
    high_mz: float,
    min_intensity: float,
) -> int:
    """Index of the most intense point inside [low_mz, high_mz].

    Points with intensity below ``min_intensity`` are ignored. On equal
    intensities the lowest-m/z point wins.

    Returns
    -------
    int
        Index into the point arrays, or -1 if the window holds no point
    """
    start_idx, end_idx = binary_search_mz_window(mz_array, low_mz, high_mz)

    best_idx = -1
    best_intensity = -1.0
    for i in range(start_idx, end_idx):
        intensity = intensity_array[i]
        if intensity < min_intensity:
            continue
        if intensity > best_intensity:
            best_intensity = intensity
            best_idx = i

    return best_idx


@nb.njit
def trapezoid_area_seconds(rt_minutes: np.ndarray, intensities: np.ndarray) -> float:
    """Trapezoidal peak area with the time axis converted to seconds.

    Args:
        rt_minutes: Retention times (minutes), ascending
        intensities: Intensities at those times

    Returns:
        Area in intensity * seconds (0.0 for fewer than two points)
    """
    area = 0.0
    for i in range(1, len(rt_minutes)):
        rt_difference = (rt_minutes[i] - rt_minutes[i - 1]) * 60.0
        area += rt_difference * (intensities[i] + intensities[i - 1]) / 2.0
    return area


@nb.njit
def longest_contiguous_run(
    scan_positions: np.ndarray,
    intensities: np.ndarray,
    noise_level: float,
) -> int:
    """Length of the longest streak of adjacent scans above the noise floor.

    Adjacency is judged on ``scan_positions``, the index of each trace scan
    inside the raw file's own ordered scan numbering, so scans the trace does
    not cover break a streak even when the trace itself has no gap there.

    Args:
        scan_positions: Positions of the trace's scans in the file scan order,
            sorted ascending
        intensities: Intensity of the trace at each of those scans
        noise_level: A point must be strictly above this to extend a streak

    Returns:
        Longest streak length (0 when no point is above noise)

    Examples:
        >>> # Positions 5, 6, 8, 9, 10 -> best streak is 8, 9, 10
        >>> longest_contiguous_run(np.array([5, 6, 8, 9, 10]), np.ones(5), 0.0)
        3
    """
    best = 0
    current = 0
    last_position = -2
    for i in range(len(scan_positions)):
        if intensities[i] > noise_level:
            if current > 0 and scan_positions[i] == last_position + 1:
                current += 1
            else:
                current = 1
            last_position = scan_positions[i]
            if current > best:
                best = current
        else:
            current = 0
    return best
