"""Tests for single-gap peak recovery."""

import numpy as np
import pytest

from alphachrom.datamodel import FeatureListRow, FeatureStatus, RawDataFile
from alphachrom.gapfill import Gap, peak_bounds
from alphachrom.tolerances import MzTolerance, RtTolerance


MZ_WINDOW = MzTolerance(absolute=0.005, ppm=0.0).tolerance_range(300.0)
RT_WINDOW = RtTolerance(0.1).tolerance_range(5.0)


def make_gap(raw_file, noise_level=None, intensity_tolerance=0.5):
    return Gap(FeatureListRow(1), raw_file, MZ_WINDOW, RT_WINDOW, intensity_tolerance, noise_level)


def feed(gap, raw_file):
    for scan in raw_file.scans(ms_level=1):
        gap.offer_next_scan(scan)
    return gap.no_more_offers()


@pytest.fixture
def apex_file(scan_factory):
    """Signal at m/z 300.002 with its apex (200) at 4.95 min."""
    rts = [4.80, 4.86, 4.92, 4.95, 4.98, 5.04, 5.08, 5.20]
    intensities = [500.0, 20.0, 80.0, 200.0, 120.0, 40.0, 10.0, 500.0]
    scans = [
        scan_factory(n, rt, [299.9, 300.002, 300.1], [1e4, i, 1e4])
        for n, (rt, i) in enumerate(zip(rts, intensities))
    ]
    return RawDataFile("B.mzML", scans)


class TestRecovery:
    """Test recovering a missed peak."""

    def test_apex_height(self, apex_file):
        """Test that the recovered feature has the apex intensity."""
        feature = feed(make_gap(apex_file), apex_file)

        assert feature is not None
        assert feature.height == 200.0
        assert feature.rt == 4.95
        assert feature.status == FeatureStatus.ESTIMATED
        assert feature.mz == pytest.approx(300.002)

    def test_time_span_inside_window(self, apex_file):
        """Test that scans outside the RT window never enter the feature."""
        gap = make_gap(apex_file)
        feature = feed(gap, apex_file)

        assert len(gap.data_points) == 5
        assert RT_WINDOW[0] <= feature.rt_range[0]
        assert feature.rt_range[1] <= RT_WINDOW[1]
        assert 500.0 not in feature.intensities

    def test_neighbouring_masses_ignored(self, apex_file):
        """Test that intense points just outside the m/z window are ignored."""
        feature = feed(make_gap(apex_file), apex_file)

        assert feature.intensity_range[1] == 200.0
        assert MZ_WINDOW[0] <= feature.mz_range[0] <= feature.mz_range[1] <= MZ_WINDOW[1]

    def test_area_positive(self, apex_file):
        """Test that the recovered feature has a positive area."""
        feature = feed(make_gap(apex_file), apex_file)

        assert feature.area > 0


class TestNoFeature:
    """Test that empty cells stay empty."""

    def test_baseline_noise_only(self, scan_factory):
        """Test that noise below the noise level yields no feature."""
        scans = [
            scan_factory(n, rt, [300.001], [5.0 + n])
            for n, rt in enumerate([4.92, 4.95, 4.98, 5.01])
        ]
        raw_file = RawDataFile("noise.mzML", scans)

        assert feed(make_gap(raw_file, noise_level=100.0), raw_file) is None

    def test_nothing_in_window(self, scan_factory):
        """Test that zero-intensity placeholders alone yield no feature."""
        scans = [scan_factory(n, rt, [310.0], [1e5]) for n, rt in enumerate([4.95, 5.0])]
        raw_file = RawDataFile("empty.mzML", scans)
        gap = make_gap(raw_file)

        assert feed(gap, raw_file) is None
        assert [p.intensity for p in gap.data_points] == [0.0, 0.0]
        assert gap.data_points[0].mz == pytest.approx(300.0)

    def test_no_scans_offered(self):
        """Test finalizing a gap that never saw a scan."""
        gap = make_gap(RawDataFile("none.mzML"))

        assert gap.no_more_offers() is None

    def test_isolated_point_between_zeros(self, scan_factory):
        """Test that zero neighbours bound a peak with positive area."""
        scans = [
            scan_factory(0, 4.95, [300.0], [0.0]),
            scan_factory(1, 5.00, [300.0], [1000.0]),
            scan_factory(2, 5.05, [300.0], [0.0]),
        ]
        raw_file = RawDataFile("spike.mzML", scans)
        feature = feed(make_gap(raw_file, intensity_tolerance=0.0), raw_file)

        assert feature is not None
        assert feature.area > 0
        assert len(feature.scan_numbers) == 3

    def test_single_point_has_zero_area(self, scan_factory):
        """Test that a single-scan profile gives zero area and no feature."""
        raw_file = RawDataFile("single.mzML", [scan_factory(0, 5.00, [300.0], [1000.0])])

        assert feed(make_gap(raw_file), raw_file) is None


class TestPeakBounds:
    """Test apex extension with the intensity tolerance."""

    def test_extends_to_zero(self):
        """Test that extension includes and stops at zero points."""
        intensities = np.array([0.0, 10.0, 50.0, 100.0, 60.0, 0.0, 80.0])

        assert peak_bounds(intensities, 0.2) == (0, 5)

    def test_stops_at_rise(self):
        """Test that a rise beyond the tolerance ends the peak."""
        intensities = np.array([90.0, 20.0, 50.0, 100.0, 40.0, 60.0, 10.0])

        assert peak_bounds(intensities, 0.2) == (1, 4)

    def test_tolerated_rise(self):
        """Test that a small rise is tolerated."""
        intensities = np.array([10.0, 50.0, 100.0, 40.0, 44.0, 10.0])

        assert peak_bounds(intensities, 0.2) == (0, 5)

    def test_first_maximum_is_apex(self):
        """Test that the first of equal maxima anchors the peak."""
        intensities = np.array([100.0, 0.0, 100.0])

        assert peak_bounds(intensities, 0.5) == (0, 1)
