"""Pytest configuration for AlphaChrom tests.

This module provides synthetic LC-MS data for all tests: scans with mass
lists, raw files with Gaussian elution profiles, detected features and
aligned multi-file feature lists. No instrument files are read.
"""

import numpy as np
import pytest

from alphachrom.datamodel import (
    FeatureIdentity,
    FeatureList,
    FeatureListRow,
    FeatureStatus,
    MassList,
    RawDataFile,
    Scan,
    build_feature,
)
from alphachrom.tasks import CancellationToken, ScanReadError


MASS_LIST = "masses"


def make_scan(
    scan_number,
    rt,
    mz,
    intensity,
    ms_level=1,
    mass_list=MASS_LIST,
    precursor_mz=0.0,
    precursor_charge=0,
):
    """Scan whose mass list holds the same points as the scan itself."""
    scan = Scan(
        scan_number=scan_number,
        retention_time=rt,
        ms_level=ms_level,
        mz=np.asarray(mz, dtype=np.float64),
        intensity=np.asarray(intensity, dtype=np.float64),
        precursor_mz=precursor_mz,
        precursor_charge=precursor_charge,
    )
    if mass_list is not None:
        scan.add_mass_list(MassList(mass_list, scan.mz.copy(), scan.intensity.copy()))
    return scan


def scan_grid(start=1.0, stop=15.0, step=0.05):
    """Retention times on a regular grid, rounded so peak apexes land exactly."""
    n = int(round((stop - start) / step)) + 1
    return np.round(start + step * np.arange(n), 4)


def make_raw_file(name, peaks, rts=None, sigma=0.1, min_intensity=1.0):
    """Raw file with one MS1 scan per retention time.

    Each peak ``(mz, apex_rt, height)`` contributes a Gaussian elution
    profile; points below ``min_intensity`` are left out.
    """
    if rts is None:
        rts = scan_grid()
    scans = []
    for number, rt in enumerate(rts):
        mz_values = []
        intensities = []
        for mz, apex_rt, height in peaks:
            intensity = height * np.exp(-0.5 * ((rt - apex_rt) / sigma) ** 2)
            if intensity >= min_intensity:
                mz_values.append(mz)
                intensities.append(intensity)
        scans.append(make_scan(number, float(rt), mz_values, intensities))
    return RawDataFile(name, scans)


def detect_feature(raw_file, mz, rt, mz_tol=0.01, rt_tol=0.3):
    """DETECTED feature from the base peaks around ``(mz, rt)``."""
    numbers, rts, mzs, intensities = [], [], [], []
    for scan in raw_file.scans(ms_level=1):
        if abs(scan.retention_time - rt) > rt_tol:
            continue
        peak = scan.base_peak((mz - mz_tol, mz + mz_tol))
        if peak is None:
            continue
        numbers.append(scan.scan_number)
        rts.append(scan.retention_time)
        mzs.append(peak[0])
        intensities.append(peak[1])
    return build_feature(
        raw_file,
        FeatureStatus.DETECTED,
        np.array(numbers),
        np.array(rts),
        np.array(mzs),
        np.array(intensities),
    )


def make_aligned_list(raw_files, rows, name="aligned"):
    """Feature list from ``rows``: a list of ``(mz, {file index: rt})``.

    Row IDs start at 1; every row carries a comment and one identity.
    """
    feature_list = FeatureList(name, raw_files)
    for row_id, (mz, cells) in enumerate(rows, start=1):
        row = FeatureListRow(row_id, comment=f"row {row_id}")
        row.add_identity(FeatureIdentity(f"compound {row_id}", {"formula": "C6H12O6"}))
        for index, rt in cells.items():
            raw_file = raw_files[index]
            row.add_feature(raw_file, detect_feature(raw_file, mz, rt))
        feature_list.add_row(row)
    return feature_list


class UnreadableScanFile(RawDataFile):
    """Raw file whose ``unreadable`` scan raises once the flag is set."""

    def __init__(self, name, scans=()):
        super().__init__(name, scans)
        self.unreadable = None

    def get_scan(self, scan_number):
        if scan_number == self.unreadable:
            raise ScanReadError(f"Scan #{scan_number} cannot be read from {self.name}")
        return super().get_scan(scan_number)


def unreadable_copy(raw_file):
    return UnreadableScanFile(raw_file.name, list(raw_file.scans()))


class CancelAfter(CancellationToken):
    """Token that cancels itself after a number of cancellation checks."""

    def __init__(self, checks):
        super().__init__()
        self._remaining = checks

    @property
    def cancelled(self):
        self._remaining -= 1
        if self._remaining <= 0:
            self.cancel()
        return super().cancelled


@pytest.fixture
def scan_factory():
    return make_scan


@pytest.fixture
def raw_file_factory():
    return make_raw_file


@pytest.fixture
def feature_factory():
    return detect_feature


@pytest.fixture
def aligned_list_factory():
    return make_aligned_list


@pytest.fixture
def unreadable_file_factory():
    return unreadable_copy


@pytest.fixture
def cancel_after():
    return CancelAfter


@pytest.fixture
def three_files():
    """Three raw files each containing the same three compounds."""
    peaks = [(300.0, 5.0, 1e5), (400.0, 8.0, 5e4), (500.0, 12.0, 2e4)]
    return [make_raw_file(f"sample_{i}.mzML", peaks) for i in range(3)]


@pytest.fixture
def gapped_list(three_files):
    """Aligned list over ``three_files`` with three empty cells.

    Row 1 is missing in file 2, row 2 in files 1 and 2, row 3 is complete.
    """
    rows = [
        (300.0, {0: 5.0, 1: 5.0}),
        (400.0, {0: 8.0}),
        (500.0, {0: 12.0, 1: 12.0, 2: 12.0}),
    ]
    return make_aligned_list(three_files, rows)


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
