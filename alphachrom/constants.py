"""Constants and default settings for chromatogram building and gap filling.

Retention times are kept in minutes throughout AlphaChrom, as delivered by the
scan source. Peak areas are integrated over seconds, so every area calculation
converts with ``SECONDS_PER_MINUTE``.

Key Features
------------
- Unit conversion for area integration
- Default m/z and RT tolerances for MS1 chromatogram work
- Sentinel values shared by the numba kernels (``-1`` = not found)
"""

# =============================================================================
# Units
# =============================================================================

SECONDS_PER_MINUTE = 60.0

# Parts-per-million scale factor
PPM = 1e-6

# =============================================================================
# Sentinels
# =============================================================================

# Returned by index searches and fragment scan lookups when nothing matches
NOT_FOUND = -1

# Returned by RegressionInfo.predict() when no valid fit exists
NO_PREDICTION = -1.0

# =============================================================================
# Default Tolerance Settings
# =============================================================================

# MS1 mass tolerance
# Typical for Orbitrap at 60-120K resolution
DEFAULT_MZ_TOLERANCE_DA = 0.005  # Da (absolute floor)
DEFAULT_MZ_TOLERANCE_PPM = 10.0  # ppm

# RT tolerance for gap filling
DEFAULT_RT_TOLERANCE = 0.5  # minutes

# Intensity ratio tolerance for gap peak extension
DEFAULT_INTENSITY_TOLERANCE = 0.5  # fraction

# =============================================================================
# Chromatogram Builder Defaults
# =============================================================================

DEFAULT_MASS_LIST = "masses"
DEFAULT_MIN_SCAN_SPAN = 5
DEFAULT_START_INTENSITY = 1e4
DEFAULT_NOISE_LEVEL = 1e3

DEFAULT_CHROMATOGRAM_SUFFIX = "chromatograms"
DEFAULT_GAP_FILL_SUFFIX = "gap-filled"
