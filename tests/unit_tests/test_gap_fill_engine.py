"""Tests for the gap filling engine (serial, parallel and RT-corrected modes)."""

import logging
import random

import pytest

from alphachrom.datamodel import FeatureStatus
from alphachrom.gapfill import GapFillParams, GapFillTask
from alphachrom.tasks import TaskStatus
from alphachrom.tolerances import InstrumentType, MzTolerance, RtTolerance


GAPPED_ROWS = [
    (300.0, {0: 5.0, 1: 5.0}),
    (400.0, {0: 8.0}),
    (500.0, {0: 12.0, 1: 12.0, 2: 12.0}),
]

# (mz, base RT, height); every compound is missing from exactly one file's row
COMPOUNDS = [
    (300.0, 5.0, 1e5),
    (400.0, 8.0, 5e4),
    (500.0, 12.0, 2e4),
    (600.0, 10.0, 8e4),
    (700.0, 3.0, 6e4),
]
PRESENT_IN = [(0, 1), (1, 2), (0, 2), (0, 1, 2), (0, 1, 2)]
RT_SHIFTS = [0.0, 0.5, 1.0]


def cells(feature_list):
    """``{(row_id, file index): (status, height, rt, area)}`` of a list."""
    found = {}
    for row in feature_list.rows:
        for raw_file, feature in row.items():
            index = feature_list.raw_file_index(raw_file)
            found[(row.row_id, index)] = (feature.status, feature.height, feature.rt, feature.area)
    return found


def run_gap_fill(feature_list, **kwargs):
    kwargs.setdefault("rt_tolerance", RtTolerance(0.3))
    task = GapFillTask(feature_list, GapFillParams(**kwargs))
    status = task.run()
    assert status == TaskStatus.FINISHED, task.error_message
    return task.result


def seed_for_master(index, n_files):
    """First random seed whose RT correction master is file ``index``."""
    return next(s for s in range(100) if random.Random(s).randrange(n_files) == index)


@pytest.fixture
def shifted_files(raw_file_factory):
    """Three files with the same compounds, eluting later in each file."""
    return [
        raw_file_factory(
            f"shifted_{i}.mzML",
            [(mz, rt + shift, height) for mz, rt, height in COMPOUNDS],
        )
        for i, shift in enumerate(RT_SHIFTS)
    ]


@pytest.fixture
def shifted_list(shifted_files, aligned_list_factory):
    rows = [
        (mz, {i: rt + RT_SHIFTS[i] for i in files})
        for (mz, rt, _), files in zip(COMPOUNDS, PRESENT_IN)
    ]
    return aligned_list_factory(shifted_files, rows)


@pytest.fixture
def unreadable_list(three_files, unreadable_file_factory, aligned_list_factory):
    """``gapped_list`` layout whose third file fails on scan #100."""
    files = [three_files[0], three_files[1], unreadable_file_factory(three_files[2])]
    feature_list = aligned_list_factory(files, GAPPED_ROWS)
    files[2].unreadable = 100
    return feature_list


class TestSerialGapFill:
    """Test serial gap filling."""

    def test_all_cells_filled(self, gapped_list):
        """Test that every missing cell is recovered."""
        filled = run_gap_fill(gapped_list)

        for row in filled.rows:
            assert len(row) == 3

    def test_recovered_features(self, gapped_list, three_files):
        """Test the recovered features against the simulated peaks."""
        filled = run_gap_fill(gapped_list)

        feature = filled.find_row_by_id(1).get_feature(three_files[2])
        assert feature.status == FeatureStatus.ESTIMATED
        assert feature.height == pytest.approx(1e5)
        assert feature.rt == pytest.approx(5.0)
        assert feature.mz == pytest.approx(300.0)
        assert feature.raw_file is three_files[2]

        feature = filled.find_row_by_id(2).get_feature(three_files[1])
        assert feature.height == pytest.approx(5e4)
        assert feature.rt == pytest.approx(8.0)

    def test_existing_features_carried(self, gapped_list, three_files):
        """Test that detected features keep their values and status."""
        filled = run_gap_fill(gapped_list)

        for source_row, row in zip(gapped_list.rows, filled.rows):
            for raw_file, source in source_row.items():
                feature = row.get_feature(raw_file)
                assert feature.status == FeatureStatus.DETECTED
                assert feature.height == source.height
                assert feature.area == source.area
                assert feature.fwhm is not None

    def test_rows_conserved(self, gapped_list):
        """Test that row IDs, comments and identities survive."""
        filled = run_gap_fill(gapped_list)

        assert [r.row_id for r in filled.rows] == [1, 2, 3]
        assert [r.comment for r in filled.rows] == ["row 1", "row 2", "row 3"]
        for source_row, row in zip(gapped_list.rows, filled.rows):
            assert row.identities == source_row.identities
            assert row.preferred_identity is source_row.preferred_identity

    def test_source_untouched(self, gapped_list, three_files):
        """Test that the source list is never modified."""
        before = cells(gapped_list)
        run_gap_fill(gapped_list)

        assert cells(gapped_list) == before
        assert not gapped_list.find_row_by_id(1).has_feature(three_files[2])

    def test_result_list(self, gapped_list):
        """Test naming and history of the result list."""
        filled = run_gap_fill(gapped_list, suffix="filled")

        assert filled.name == "aligned filled"
        assert filled.raw_files == gapped_list.raw_files
        assert filled is not gapped_list
        assert filled.applied_methods[-1].description == "Gap filling"
        assert filled.applied_methods[-1].parameters.suffix == "filled"

    def test_publish_and_progress(self, gapped_list):
        """Test that a finished task publishes its list once."""
        published = []
        task = GapFillTask(gapped_list, GapFillParams(), publish=published.append)

        assert task.run() == TaskStatus.FINISHED
        assert published == [task.result]
        assert task.progress == 1.0

    def test_noise_level(self, gapped_list, three_files):
        """Test that points below the noise level are not recovered."""
        filled = run_gap_fill(gapped_list, noise_level=6e4)

        assert filled.find_row_by_id(1).get_feature(three_files[2]).height == pytest.approx(1e5)
        assert not filled.find_row_by_id(2).has_feature(three_files[1])
        assert not filled.find_row_by_id(2).has_feature(three_files[2])

    def test_no_signal_leaves_gap(self, raw_file_factory, aligned_list_factory):
        """Test that a file without the compound keeps its cell empty."""
        files = [
            raw_file_factory("with.mzML", [(300.0, 5.0, 1e5)]),
            raw_file_factory("without.mzML", [(400.0, 8.0, 5e4)]),
        ]
        feature_list = aligned_list_factory(files, [(300.0, {0: 5.0})])

        filled = run_gap_fill(feature_list)

        assert not filled.find_row_by_id(1).has_feature(files[1])
        assert len(filled.find_row_by_id(1)) == 1


class TestParallelGapFill:
    """Test file-parallel gap filling."""

    def test_same_as_serial(self, gapped_list):
        """Test that parallel and serial runs produce identical cells."""
        serial = run_gap_fill(gapped_list)
        parallel = run_gap_fill(gapped_list, parallel=True, max_workers=2)

        assert cells(parallel) == cells(serial)

    def test_single_worker(self, gapped_list):
        """Test parallel mode with one worker."""
        serial = run_gap_fill(gapped_list)
        parallel = run_gap_fill(gapped_list, parallel=True, max_workers=1)

        assert cells(parallel) == cells(serial)


class TestRtCorrectedGapFill:
    """Test two-pass gap filling with RT correction."""

    @pytest.mark.parametrize("seed", [0, 1, 2, 5, 11])
    def test_all_cells_at_shifted_times(self, shifted_list, shifted_files, seed):
        """Test that every gap is recovered at its file's own elution time."""
        filled = run_gap_fill(shifted_list, rt_correction=True, random_seed=seed)

        for (mz, rt, height), files, row in zip(COMPOUNDS, PRESENT_IN, filled.rows):
            assert len(row) == 3
            for i, raw_file in enumerate(shifted_files):
                feature = row.get_feature(raw_file)
                expected = FeatureStatus.DETECTED if i in files else FeatureStatus.ESTIMATED
                assert feature.status == expected
                assert feature.rt == pytest.approx(rt + RT_SHIFTS[i])
                assert feature.height == pytest.approx(height)

    def test_master_file_logged(self, shifted_list, caplog):
        """Test that the seeded master file choice is reported."""
        master_index = random.Random(3).randrange(3)
        with caplog.at_level(logging.INFO, logger="alphachrom"):
            run_gap_fill(shifted_list, rt_correction=True, random_seed=3)

        assert f"RT correction master file: shifted_{master_index}.mzML" in caplog.text

    def test_uncorrected_misses_shifted_peak(self, shifted_list, shifted_files):
        """Test that without correction the average RT misses a shifted apex."""
        filled = run_gap_fill(shifted_list)

        # Row 1 is detected at 5.0 and 5.5, file 2 elutes it at 6.0
        feature = filled.find_row_by_id(1).get_feature(shifted_files[2])
        assert feature is None or feature.height < 1e3

    def test_parallel_flag_ignored(self, shifted_list, caplog):
        """Test that RT correction runs serially even when parallel is set."""
        with caplog.at_level(logging.INFO, logger="alphachrom"):
            corrected = run_gap_fill(shifted_list, rt_correction=True, parallel=True, random_seed=4)
        reference = run_gap_fill(shifted_list, rt_correction=True, random_seed=4)

        assert "parallel flag ignored" in caplog.text
        assert cells(corrected) == cells(reference)

    def test_master_peak_time_without_fit(self, three_files, aligned_list_factory):
        """Test that non-master gaps are searched at the master peak time when no fit exists."""
        rows = [(300.0, {0: 5.0, 1: 5.0}), (400.0, {0: 8.0})]
        feature_list = aligned_list_factory(three_files, rows)
        seed = seed_for_master(0, len(three_files))

        filled = run_gap_fill(feature_list, rt_correction=True, random_seed=seed)

        # One shared row with file 1 and none with file 2: no regression to either
        for raw_file in three_files[1:]:
            feature = filled.find_row_by_id(2).get_feature(raw_file)
            assert feature.status == FeatureStatus.ESTIMATED
            assert feature.rt == pytest.approx(8.0)
            assert feature.height == pytest.approx(5e4)
        feature = filled.find_row_by_id(1).get_feature(three_files[2])
        assert feature.status == FeatureStatus.ESTIMATED
        assert feature.rt == pytest.approx(5.0)

    def test_master_gap_needs_fit(self, three_files, aligned_list_factory):
        """Test that master gaps stay empty without a regression to master time."""
        rows = [(300.0, {1: 5.0, 2: 5.0}), (400.0, {0: 8.0, 1: 8.0, 2: 8.0})]
        feature_list = aligned_list_factory(three_files, rows)
        seed = seed_for_master(0, len(three_files))

        filled = run_gap_fill(feature_list, rt_correction=True, random_seed=seed)

        assert not filled.find_row_by_id(1).has_feature(three_files[0])
        assert len(filled.find_row_by_id(2)) == 3


class TestReadErrors:
    """Test that an unreadable file does not fail the whole run."""

    def test_file_skipped(self, unreadable_list, caplog):
        """Test that the failing file recovers nothing but keeps its features."""
        broken = unreadable_list.raw_files[2]
        with caplog.at_level(logging.WARNING, logger="alphachrom"):
            filled = run_gap_fill(unreadable_list)

        assert "Gap filling of sample_2.mzML aborted" in caplog.text
        assert not filled.find_row_by_id(1).has_feature(broken)
        assert not filled.find_row_by_id(2).has_feature(broken)
        assert filled.find_row_by_id(3).get_feature(broken).status == FeatureStatus.DETECTED

    def test_other_files_filled(self, unreadable_list):
        """Test that files before and after the failure are still filled."""
        filled = run_gap_fill(unreadable_list, parallel=True, max_workers=3)

        assert filled.find_row_by_id(2).get_feature(unreadable_list.raw_files[1]).status == (
            FeatureStatus.ESTIMATED
        )


class TestCancellation:
    """Test cancellation of gap filling."""

    def test_cancel_before_run(self, gapped_list):
        """Test that a cancelled task publishes nothing."""
        published = []
        task = GapFillTask(gapped_list, GapFillParams(), publish=published.append)
        task.cancel()

        assert task.run() == TaskStatus.CANCELED
        assert task.result is None
        assert task.error_message is None
        assert published == []

    @pytest.mark.parametrize("mode", [{}, {"parallel": True, "max_workers": 2}, {"rt_correction": True}])
    def test_cancel_mid_run(self, gapped_list, cancel_after, mode):
        """Test that cancellation is observed while scans are streamed."""
        published = []
        task = GapFillTask(gapped_list, GapFillParams(**mode), token=cancel_after(5),
                           publish=published.append)

        assert task.run() == TaskStatus.CANCELED
        assert published == []


class TestGapFillParams:
    """Test parameter validation."""

    def test_defaults(self):
        """Test default gap filling settings."""
        params = GapFillParams()

        assert params.intensity_tolerance == 0.5
        assert not params.rt_correction
        assert not params.parallel
        assert params.suffix == "gap-filled"

    @pytest.mark.parametrize(
        "kwargs",
        [{"intensity_tolerance": -0.1}, {"noise_level": -1.0}, {"max_workers": 0}],
    )
    def test_invalid(self, kwargs):
        """Test that invalid settings are rejected."""
        with pytest.raises(ValueError):
            GapFillParams(**kwargs)

    def test_for_instrument(self):
        """Test instrument presets with extra settings."""
        params = GapFillParams.for_instrument(InstrumentType.TOF, rt_correction=True)

        assert params.mz_tolerance == MzTolerance(absolute=0.005, ppm=15.0)
        assert params.rt_correction
