"""AlphaChrom - chromatogram building and gap filling for LC-MS data.

This library reconstructs mass traces ("chromatograms") from the centroided
scans of one raw file and recovers, by re-scanning raw data, the features a
detector missed in some files of an aligned multi-file feature list.

Hot loops (mass window search, integration, run lengths, peak shape, linear
fits) are Numba-compiled; orchestration runs as cooperative, cancellable
tasks on thread pools.
"""

__version__ = "0.1.0"

# Import main submodules for convenient access
from alphachrom import tasks
from alphachrom import tolerances
from alphachrom import xic
from alphachrom import datamodel
from alphachrom import chromatogram
from alphachrom import rt
from alphachrom import gapfill

__all__ = [
    "tasks",
    "tolerances",
    "xic",
    "datamodel",
    "chromatogram",
    "rt",
    "gapfill",
]
