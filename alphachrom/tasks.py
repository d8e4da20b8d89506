"""Cooperative task units: status, progress, cancellation, and error capture.

Every processing step (chromatogram building, gap filling, worker sub tasks)
is a ``Task``. A task runs on a thread it does not own, exposes only a
progress value and a cancellation check, and reports its outcome through
``status`` and ``error_message``:

- ``FINISHED``  the result is available in ``task.result`` and was published
- ``CANCELED``  cancellation was observed, nothing was published, no message
- ``ERROR``     the run failed, ``error_message`` holds the failure-site text

Cancellation is cooperative only. Work loops call ``check_canceled()``, which
raises ``TaskCancelled`` once the token has been cancelled.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    FINISHED = "finished"
    CANCELED = "canceled"
    ERROR = "error"


class TaskError(Exception):
    """Input-validation failure that aborts a whole unit of work."""


class ChromatogramBuildError(TaskError):
    """Scans cannot be turned into chromatograms (RT order, missing mass list)."""


class ScanReadError(TaskError):
    """A scan of a raw data file could not be read."""


class RangeInvariantError(RuntimeError):
    """The disjoint m/z range registry would end up with an invalid interval."""


class TaskCancelled(Exception):
    """Raised inside a task once its cancellation token has been set."""


class CancellationToken:
    """Thread-safe cancellation flag, optionally chained to a parent token.

    A child token reports cancelled when either it or any ancestor has been
    cancelled. Cancelling a child never touches the parent.
    """

    def __init__(self, parent: Optional['CancellationToken'] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TaskCancelled()


class Task:
    """Base class for cooperative units of work.

    Subclasses implement ``_run()`` and return the unit's result. ``run()``
    translates the outcome into a status. ``publish`` is called with the
    result only when the task finishes successfully.

    Parameters
    ----------
    token : CancellationToken, optional
        Shared cancellation token. A private one is created when omitted.
    publish : callable, optional
        Receives the result of a successful run (e.g. adds a feature list to
        a project held by the caller).
    """

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        publish: Optional[Callable[[Any], None]] = None,
    ):
        self.token = token if token is not None else CancellationToken()
        self.publish = publish
        self.status = TaskStatus.WAITING
        self.error_message: Optional[str] = None
        self.result: Any = None
        self._progress = 0.0
        self._lock = threading.Lock()

    @property
    def description(self) -> str:
        return self.__class__.__name__

    @property
    def progress(self) -> float:
        """Finished fraction in [0, 1]."""
        return self._progress

    def set_progress(self, value: float) -> None:
        self._progress = min(1.0, max(0.0, value))

    def cancel(self) -> None:
        self.token.cancel()

    def is_canceled(self) -> bool:
        return self.token.cancelled

    def check_canceled(self) -> None:
        self.token.raise_if_cancelled()

    def _run(self) -> Any:
        raise NotImplementedError

    def run(self) -> TaskStatus:
        with self._lock:
            if self.status != TaskStatus.WAITING:
                raise RuntimeError(f"{self.description} has already been started")
            self.status = TaskStatus.PROCESSING

        try:
            self.check_canceled()
            result = self._run()
            if self.publish is not None:
                self.publish(result)
        except TaskCancelled:
            logger.info(f"Canceled: {self.description}")
            self.status = TaskStatus.CANCELED
            return self.status
        except TaskError as e:
            logger.error(f"{self.description} failed: {e}")
            self.error_message = str(e)
            self.status = TaskStatus.ERROR
            return self.status
        except Exception as e:
            logger.exception(f"{self.description} failed unexpectedly")
            self.error_message = f"{type(e).__name__}: {e}"
            self.status = TaskStatus.ERROR
            return self.status

        self.result = result
        self.set_progress(1.0)
        self.status = TaskStatus.FINISHED
        return self.status
