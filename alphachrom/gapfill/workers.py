"""Multithreaded gap filling: raw files split across worker sub tasks.

The coordinator pre-builds the destination feature list, splits the raw file
indices into contiguous ranges and runs one ``GapFillSubTask`` per range on a
thread pool. Each sub task runs the same per-file logic as ``GapFillTask``
and publishes its per-file results to a ``SubTaskFinishListener``, which
merges them into the destination and publishes the finished list once every
sub task has reported.

All sub tasks share one cancellation token chained to the coordinator's. A
sub task ending CANCELED or ERROR cancels that token, so its siblings stop at
their next cancellation check. Nothing is retried.
"""

import concurrent.futures
import logging
import os
import threading
from typing import Callable, List, Optional, Tuple

from ..datamodel.feature_list import FeatureList
from ..tasks import CancellationToken, TaskCancelled, TaskError, TaskStatus
from .engine import FileResults, GapFillerBase, GapFillParams, write_results

logger = logging.getLogger(__name__)


def split_file_ranges(n_files: int, n_workers: int) -> List[Tuple[int, int]]:
    """Contiguous ``[start, end)`` file index ranges, one per worker.

    The number of workers is capped by the number of files. The remainder of
    the division goes, one file each, to the first workers.

    Examples
    --------
    >>> split_file_ranges(10, 3)
    [(0, 4), (4, 7), (7, 10)]
    >>> split_file_ranges(2, 8)
    [(0, 1), (1, 2)]
    """
    if n_files <= 0:
        return []
    n_workers = max(1, min(n_workers, n_files))
    per_worker, rest = divmod(n_files, n_workers)

    ranges = []
    for i in range(n_workers):
        start = per_worker * i
        end = per_worker * (i + 1)
        if rest > 0:
            start += min(i, rest)
            end += min(i + 1, rest)
        if i == n_workers - 1:
            end = n_files
        ranges.append((start, end))
    return ranges


class SubTaskFinishListener:
    """Merge sub task results into the destination and publish once all are in.

    Parameters
    ----------
    destination : FeatureList
        Pre-built destination shared by all sub tasks
    n_tasks : int
        Number of sub tasks to wait for
    finish : callable
        Applied to the destination before publication
    publish : callable, optional
        Receives the finished destination
    """

    def __init__(
        self,
        destination: FeatureList,
        n_tasks: int,
        finish: Callable[[FeatureList], FeatureList],
        publish: Optional[Callable[[FeatureList], None]] = None,
    ):
        self.destination = destination
        self.n_tasks = n_tasks
        self._finish = finish
        self._publish = publish
        self._finished = 0
        self._lock = threading.Lock()
        self.published = False

    @property
    def finished_count(self) -> int:
        return self._finished

    def accept(self, results: List[Tuple[object, FileResults]]) -> None:
        with self._lock:
            for raw_file, file_results in results:
                write_results(raw_file, file_results)
            self._finished += 1
            if self._finished < self.n_tasks:
                return
            self._finish(self.destination)
            self.published = True

        logger.info(f"All {self.n_tasks} gap filling sub tasks finished")
        if self._publish is not None:
            self._publish(self.destination)


class GapFillSubTask(GapFillerBase):
    """Gap filling of raw files ``[start, end)`` of the source list.

    A scan read error fails this sub task (and through the shared token, its
    siblings).
    """

    def __init__(
        self,
        feature_list: FeatureList,
        destination: FeatureList,
        params: GapFillParams,
        start: int,
        end: int,
        task_index: int = 0,
        token=None,
        publish=None,
    ):
        super().__init__(feature_list, params, token=token, publish=publish)
        self.destination = destination
        self.start = start
        self.end = end
        self.task_index = task_index

    @property
    def description(self) -> str:
        return (
            f"Sub task {self.task_index}: Gap filling on raw files "
            f"{self.start + 1}-{self.end} of {self.feature_list}"
        )

    def _run(self) -> List[Tuple[object, FileResults]]:
        logger.info(f"Running {self.description}")
        raw_files = self.feature_list.raw_files[self.start:self.end]
        self._count_scans(raw_files)

        results = []
        for raw_file in raw_files:
            self.check_canceled()
            results.append((raw_file, self.fill_file(self.destination, raw_file, skip_unreadable=False)))

        logger.info(f"Finished {self.description}")
        return results


class MultiThreadGapFillTask(GapFillerBase):
    """Coordinator splitting gap filling over worker sub tasks.

    The finished list is published by the finish listener once every sub task
    has reported; ``result`` holds the same list.
    """

    def __init__(self, feature_list: FeatureList, params: GapFillParams, token=None, publish=None):
        super().__init__(feature_list, params, token=token)
        self._publish_result = publish
        self.sub_tasks: List[GapFillSubTask] = []
        self.listener: Optional[SubTaskFinishListener] = None

    @property
    def description(self) -> str:
        return f"Main task: Gap filling {self.feature_list}"

    @property
    def progress(self) -> float:
        if not self.sub_tasks:
            return self._progress
        return sum(t.progress for t in self.sub_tasks) / len(self.sub_tasks)

    def _max_workers(self) -> int:
        if self.params.max_workers is not None:
            return self.params.max_workers
        return os.cpu_count() or 1

    @staticmethod
    def _run_sub_task(sub_task: GapFillSubTask, siblings: CancellationToken) -> TaskStatus:
        status = sub_task.run()
        if status in (TaskStatus.CANCELED, TaskStatus.ERROR):
            siblings.cancel()
        return status

    def _run(self) -> FeatureList:
        logger.info(f"Running multithreaded gap filler on {self.feature_list}")
        destination = self.feature_list.empty_copy(f"{self.feature_list} {self.params.suffix}")

        ranges = split_file_ranges(len(self.feature_list.raw_files), self._max_workers())
        siblings = CancellationToken(parent=self.token)
        self.listener = SubTaskFinishListener(
            destination, len(ranges), self.finish_list, self._publish_result
        )
        self.sub_tasks = [
            GapFillSubTask(
                self.feature_list,
                destination,
                self.params,
                start,
                end,
                task_index=i,
                token=siblings,
                publish=self.listener.accept,
            )
            for i, (start, end) in enumerate(ranges)
        ]

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(self.sub_tasks)) as executor:
            futures = [executor.submit(self._run_sub_task, t, siblings) for t in self.sub_tasks]
            for future in concurrent.futures.as_completed(futures):
                future.result()

        self.check_canceled()
        for sub_task in self.sub_tasks:
            if sub_task.status == TaskStatus.ERROR:
                raise TaskError(f"{sub_task.description} failed: {sub_task.error_message}")
        if not self.listener.published:
            raise TaskCancelled()

        logger.info(f"Finished multithreaded gap filling on {self.feature_list}")
        return destination
