"""Gap filling: recover missing (row, raw file) cells of a feature list.

For every raw file, one ``Gap`` is created per row that has no feature in
that file. The file's MS1 scans are then streamed once, in order, into all of
its gaps, and every gap is finalized. Rows that already have a feature for a
file carry it unchanged into the new list.

Modes
-----
- serial: files one after another
- parallel: files on a thread pool, each with local results; results are
  collected under a lock and merged in file order once all files finish
- RT correction: a random master file is chosen. Non-master files are
  searched around the master's peak time, refined through a per-file linear
  RT regression when one can be fitted. The master is then searched around
  each other file's peak time mapped back to master time.

The source feature list is never modified; results go to a new list built by
``FeatureList.empty_copy``.
"""

import concurrent.futures
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..constants import DEFAULT_GAP_FILL_SUFFIX, DEFAULT_INTENSITY_TOLERANCE, NO_PREDICTION
from ..datamodel.feature import Feature
from ..datamodel.feature_list import AppliedMethod, FeatureList, FeatureListRow
from ..rt.regression import RegressionInfo
from ..tasks import ScanReadError, Task
from ..tolerances import InstrumentType, MzTolerance, RtTolerance
from ..xic.peak_shape import calculate_quality_parameters
from .gap import Gap

logger = logging.getLogger(__name__)

# (destination row, feature) pairs produced for one raw file
FileResults = List[Tuple[FeatureListRow, Feature]]


@dataclass
class GapFillParams:
    """Parameters for gap filling.

    Attributes
    ----------
    mz_tolerance : MzTolerance
        m/z window around the row's average m/z
    rt_tolerance : RtTolerance
        RT window around the row's average (or predicted) RT
    intensity_tolerance : float
        Relative rise allowed while extending a gap peak from its apex
    noise_level : float, optional
        Scan points below this intensity are ignored by gaps
    rt_correction : bool
        Two-pass RT-corrected mode around a random master file
    parallel : bool
        Process files on a thread pool (ignored with ``rt_correction``)
    max_workers : int, optional
        Thread pool size (None = executor default)
    suffix : str
        Appended to the source list name to name the result
    random_seed : int, optional
        Seed for the master file choice
    """

    mz_tolerance: MzTolerance = field(default_factory=MzTolerance)
    rt_tolerance: RtTolerance = field(default_factory=RtTolerance)
    intensity_tolerance: float = DEFAULT_INTENSITY_TOLERANCE
    noise_level: Optional[float] = None
    rt_correction: bool = False
    parallel: bool = False
    max_workers: Optional[int] = None
    suffix: str = DEFAULT_GAP_FILL_SUFFIX
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.intensity_tolerance < 0:
            raise ValueError(
                f"intensity_tolerance must not be negative, got {self.intensity_tolerance}"
            )
        if self.noise_level is not None and self.noise_level < 0:
            raise ValueError(f"noise_level must not be negative, got {self.noise_level}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def for_instrument(cls, instrument: InstrumentType, **kwargs) -> 'GapFillParams':
        return cls(mz_tolerance=MzTolerance.for_instrument(instrument), **kwargs)


def write_results(raw_file, results: FileResults) -> None:
    for row, feature in results:
        row.add_feature(raw_file, feature)


class GapFillerBase(Task):
    """Per-file gap filling logic shared by the engine and its worker sub tasks.

    Parameters
    ----------
    feature_list : FeatureList
        Source list; read only
    params : GapFillParams
        Gap filling settings
    token, publish
        See ``Task``
    """

    def __init__(self, feature_list: FeatureList, params: GapFillParams, token=None, publish=None):
        super().__init__(token=token, publish=publish)
        self.feature_list = feature_list
        self.params = params
        self._total_scans = 0
        self._processed_scans = 0
        self._count_lock = threading.Lock()

    def _count_scans(self, raw_files: Sequence) -> None:
        self._total_scans = sum(raw_file.num_scans(ms_level=1) for raw_file in raw_files)

    def _scans_processed(self, n: int) -> None:
        with self._count_lock:
            self._processed_scans += n
            if self._total_scans > 0:
                self.set_progress(self._processed_scans / self._total_scans)

    def make_gap(self, row: FeatureListRow, raw_file, mz: float, rt: float) -> Gap:
        return Gap(
            row,
            raw_file,
            self.params.mz_tolerance.tolerance_range(mz),
            self.params.rt_tolerance.tolerance_range(rt),
            self.params.intensity_tolerance,
            self.params.noise_level,
        )

    def collect_gaps(self, destination: FeatureList, raw_file) -> Tuple[FileResults, List[Gap]]:
        """Split rows into carried features and gaps around the row averages."""
        carried = []
        gaps = []
        for source_row, row in zip(self.feature_list.rows, destination.rows):
            self.check_canceled()
            feature = source_row.get_feature(raw_file)
            if feature is None:
                gaps.append(self.make_gap(row, raw_file, source_row.average_mz, source_row.average_rt))
            else:
                carried.append((row, feature))
        return carried, gaps

    def stream_scans(self, raw_file, gaps: List[Gap]) -> FileResults:
        """Feed every MS1 scan of ``raw_file`` to ``gaps`` and finalize them.

        Results are in gap order.
        """
        scan_numbers = raw_file.scan_numbers(ms_level=1)
        if not gaps:
            self._scans_processed(len(scan_numbers))
            return []

        for scan_number in scan_numbers:
            self.check_canceled()
            scan = raw_file.get_scan(scan_number)
            for gap in gaps:
                gap.offer_next_scan(scan)
            self._scans_processed(1)

        filled = []
        for gap in gaps:
            feature = gap.no_more_offers()
            if feature is not None:
                filled.append((gap.row, feature))
        return filled

    def fill_file(self, destination: FeatureList, raw_file, skip_unreadable: bool = True) -> FileResults:
        """Carried and recovered features of one file.

        A ``ScanReadError`` drops the recovered part of this file only, unless
        ``skip_unreadable`` is False.
        """
        carried, gaps = self.collect_gaps(destination, raw_file)
        if skip_unreadable:
            return carried + self.stream_tolerant(raw_file, gaps)
        return carried + self.stream_scans(raw_file, gaps)

    def stream_tolerant(self, raw_file, gaps: List[Gap]) -> FileResults:
        """``stream_scans``, logging a read error and recovering nothing for the file."""
        try:
            return self.stream_scans(raw_file, gaps)
        except ScanReadError as e:
            logger.warning(f"Gap filling of {raw_file} aborted: {e}")
            return []

    def finish_list(self, destination: FeatureList) -> FeatureList:
        calculate_quality_parameters(destination)
        destination.add_applied_method(AppliedMethod("Gap filling", self.params))
        return destination


class GapFillTask(GapFillerBase):
    """Fill the gaps of a multi-file feature list into a new feature list.

    Examples
    --------
    >>> task = GapFillTask(aligned, GapFillParams(rt_tolerance=RtTolerance(0.1)))
    >>> task.run()
    <TaskStatus.FINISHED: 'finished'>
    >>> filled = task.result
    """

    @property
    def description(self) -> str:
        return f"Gap filling {self.feature_list}"

    def _run(self) -> FeatureList:
        logger.info(f"Running gap filler on {self.feature_list}")
        params = self.params
        raw_files = self.feature_list.raw_files
        destination = self.feature_list.empty_copy(f"{self.feature_list} {params.suffix}")
        self._count_scans(raw_files)

        if params.rt_correction:
            if params.parallel:
                logger.info("RT correction runs its two passes serially; parallel flag ignored")
            self._fill_with_rt_correction(destination)
        elif params.parallel:
            self._fill_parallel(destination)
        else:
            for raw_file in raw_files:
                self.check_canceled()
                write_results(raw_file, self.fill_file(destination, raw_file))

        self.check_canceled()
        self.finish_list(destination)
        logger.info(f"Finished gap filling on {self.feature_list}")
        return destination

    def _fill_parallel(self, destination: FeatureList) -> None:
        raw_files = self.feature_list.raw_files
        collected = {}
        lock = threading.Lock()

        def fill_one(index, raw_file):
            results = self.fill_file(destination, raw_file)
            with lock:
                collected[index] = results

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.params.max_workers) as executor:
            futures = [executor.submit(fill_one, i, f) for i, f in enumerate(raw_files)]
            try:
                for future in concurrent.futures.as_completed(futures):
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        for index in sorted(collected):
            write_results(raw_files[index], collected[index])

    def _regression(self, x_file, y_file) -> RegressionInfo:
        """Fit y_file RT against x_file RT over rows with features in both."""
        info = RegressionInfo()
        for row in self.feature_list.rows:
            x_feature = row.get_feature(x_file)
            y_feature = row.get_feature(y_file)
            if x_feature is not None and y_feature is not None:
                info.add_data(x_feature.rt, y_feature.rt)
        info.set_function()
        return info

    def _carried(self, destination: FeatureList, raw_file) -> FileResults:
        return [
            (row, source_row.get_feature(raw_file))
            for source_row, row in zip(self.feature_list.rows, destination.rows)
            if source_row.has_feature(raw_file)
        ]

    def _predicted_gaps(
        self,
        destination: FeatureList,
        raw_file,
        reference_file,
        fallback_to_reference: bool = False,
    ) -> List[Gap]:
        """Gaps of ``raw_file`` around RTs predicted from ``reference_file`` peaks.

        Without a usable regression the gap is skipped, or, with
        ``fallback_to_reference``, centred on the reference peak RT itself.
        """
        info = self._regression(reference_file, raw_file)
        gaps = []
        for source_row, row in zip(self.feature_list.rows, destination.rows):
            self.check_canceled()
            if source_row.has_feature(raw_file):
                continue
            reference = source_row.get_feature(reference_file)
            if reference is None:
                continue
            rt = info.predict(reference.rt)
            if rt == NO_PREDICTION:
                if not fallback_to_reference:
                    continue
                rt = reference.rt
            gaps.append(self.make_gap(row, raw_file, source_row.average_mz, rt))
        return gaps

    def _fill_with_rt_correction(self, destination: FeatureList) -> None:
        raw_files = self.feature_list.raw_files
        rng = random.Random(self.params.random_seed)
        master_index = rng.randrange(len(raw_files))
        master = raw_files[master_index]
        logger.info(f"RT correction master file: {master}")

        # Pass 1: every other file, around master peak times (mapped through
        # the master to file regression when one can be fitted)
        for i, raw_file in enumerate(raw_files):
            if i == master_index:
                continue
            self.check_canceled()
            write_results(raw_file, self._carried(destination, raw_file))
            gaps = self._predicted_gaps(
                destination, raw_file, master, fallback_to_reference=True
            )
            write_results(raw_file, self.stream_tolerant(raw_file, gaps))

        # Pass 2: the master, around each other file's peak times. All gaps
        # share one stream of the master; per row the first file in file
        # order that yields a feature wins.
        write_results(master, self._carried(destination, master))
        gaps = []
        for i, raw_file in enumerate(raw_files):
            if i == master_index:
                continue
            self.check_canceled()
            gaps.extend(self._predicted_gaps(destination, master, raw_file))

        filled_rows = set()
        for row, feature in self.stream_tolerant(master, gaps):
            if row.row_id in filled_rows:
                continue
            filled_rows.add(row.row_id)
            row.add_feature(master, feature)
