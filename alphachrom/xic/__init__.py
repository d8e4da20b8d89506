"""Numba kernels for mass-window lookup, integration and peak shape.

Key Features
------------
- Binary search on m/z-sorted scan points for O(log n) window lookup
- Base peak extraction inside an m/z window
- Trapezoidal area over retention time in seconds
- Longest run of file-adjacent scans above a noise floor
- FWHM, tailing factor and asymmetry factor of chromatographic peaks
"""

from .extraction import (
    binary_search_mz_window,
    find_base_peak,
    trapezoid_area_seconds,
    longest_contiguous_run,
)

from .peak_shape import (
    calculate_fwhm,
    calculate_tailing_factor,
    calculate_asymmetry_factor,
    calculate_quality_parameters,
)

__all__ = [
    # Extraction
    'binary_search_mz_window',
    'find_base_peak',
    'trapezoid_area_seconds',
    'longest_contiguous_run',
    # Peak shape
    'calculate_fwhm',
    'calculate_tailing_factor',
    'calculate_asymmetry_factor',
    'calculate_quality_parameters',
]
