"""Scans, mass lists and raw data files.

The scan source is external: a reader fills ``RawDataFile`` objects with
``Scan`` instances in acquisition order. Everything downstream treats scans as
read-only.

Design principles:
1. Point arrays are float64, sorted by m/z (enforced at construction)
2. Window lookups go through numba binary search kernels
3. Raw files hash by identity so they can key per-file feature maps
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..constants import NOT_FOUND
from ..tasks import ScanReadError
from ..xic.extraction import binary_search_mz_window, find_base_peak


def _as_sorted_points(mz, intensity) -> Tuple[np.ndarray, np.ndarray]:
    mz = np.ascontiguousarray(mz, dtype=np.float64)
    intensity = np.ascontiguousarray(intensity, dtype=np.float64)
    if mz.shape != intensity.shape or mz.ndim != 1:
        raise ValueError(
            f"m/z and intensity arrays must be 1-D and of equal length "
            f"(got {mz.shape} and {intensity.shape})"
        )
    if len(mz) > 1 and np.any(np.diff(mz) < 0):
        order = np.argsort(mz, kind="stable")
        mz = mz[order]
        intensity = intensity[order]
    return mz, intensity


@dataclass(eq=False)
class MassList:
    """Named centroided point list derived from a scan (e.g. by mass detection)."""

    name: str
    mz: np.ndarray
    intensity: np.ndarray

    def __post_init__(self):
        self.mz, self.intensity = _as_sorted_points(self.mz, self.intensity)

    def __len__(self) -> int:
        return len(self.mz)


@dataclass(eq=False)
class Scan:
    """One acquired spectrum.

    Attributes
    ----------
    scan_number : int
        Scan number inside its raw file
    retention_time : float
        Retention time in minutes
    ms_level : int
        1 for survey scans, 2 for fragment scans
    mz, intensity : np.ndarray
        Full point list, sorted by m/z
    precursor_mz : float
        Precursor m/z of an MS2 scan (0.0 when not applicable)
    precursor_charge : int
        Precursor charge of an MS2 scan (0 when unknown)
    tic : float
        Total ion current; defaults to the intensity sum
    mass_lists : dict
        Derived centroided point lists by name
    """

    scan_number: int
    retention_time: float
    ms_level: int
    mz: np.ndarray
    intensity: np.ndarray
    precursor_mz: float = 0.0
    precursor_charge: int = 0
    tic: Optional[float] = None
    mass_lists: Dict[str, MassList] = field(default_factory=dict)

    def __post_init__(self):
        self.mz, self.intensity = _as_sorted_points(self.mz, self.intensity)
        if self.tic is None:
            self.tic = float(np.sum(self.intensity))

    def __len__(self) -> int:
        return len(self.mz)

    def add_mass_list(self, mass_list: MassList) -> None:
        self.mass_lists[mass_list.name] = mass_list

    def get_mass_list(self, name: str) -> Optional[MassList]:
        return self.mass_lists.get(name)

    def data_points_by_mass(self, mz_range: Tuple[float, float]) -> Tuple[np.ndarray, np.ndarray]:
        """Points inside the closed window ``mz_range``."""
        start, end = binary_search_mz_window(self.mz, mz_range[0], mz_range[1])
        return self.mz[start:end], self.intensity[start:end]

    def base_peak(
        self,
        mz_range: Tuple[float, float],
        min_intensity: float = 0.0,
    ) -> Optional[Tuple[float, float]]:
        """Most intense ``(mz, intensity)`` inside ``mz_range``, or None."""
        idx = find_base_peak(self.mz, self.intensity, mz_range[0], mz_range[1], min_intensity)
        if idx == NOT_FOUND:
            return None
        return float(self.mz[idx]), float(self.intensity[idx])


class RawDataFile:
    """Ordered scan container for one acquisition.

    Scans are kept in acquisition order; scan numbers must be unique.

    Parameters
    ----------
    name : str
        Display name (usually the file name)
    scans : sequence of Scan
        Scans in acquisition order

    Examples
    --------
    >>> raw = RawDataFile("sample_01.mzML", scans)
    >>> ms1 = raw.scan_numbers(ms_level=1)
    >>> scan = raw.get_scan(ms1[0])
    """

    def __init__(self, name: str, scans: Sequence[Scan] = ()):
        self.name = name
        self._scans: Dict[int, Scan] = {}
        self._order: List[int] = []
        for scan in scans:
            self.add_scan(scan)

    def __repr__(self) -> str:
        return f"RawDataFile({self.name!r}, {len(self._order)} scans)"

    def __str__(self) -> str:
        return self.name

    def add_scan(self, scan: Scan) -> None:
        if scan.scan_number in self._scans:
            raise ValueError(f"Duplicate scan number {scan.scan_number} in {self.name}")
        self._scans[scan.scan_number] = scan
        self._order.append(scan.scan_number)

    def get_scan(self, scan_number: int) -> Scan:
        try:
            return self._scans[scan_number]
        except KeyError:
            raise ScanReadError(f"Scan #{scan_number} cannot be read from {self.name}") from None

    def scans(self, ms_level: Optional[int] = None) -> Iterator[Scan]:
        for number in self.scan_numbers(ms_level):
            yield self.get_scan(number)

    def scan_numbers(
        self,
        ms_level: Optional[int] = None,
        rt_range: Optional[Tuple[float, float]] = None,
    ) -> List[int]:
        """Scan numbers in acquisition order, optionally filtered by level and RT."""
        numbers = []
        for number in self._order:
            scan = self._scans[number]
            if ms_level is not None and scan.ms_level != ms_level:
                continue
            if rt_range is not None and not (rt_range[0] <= scan.retention_time <= rt_range[1]):
                continue
            numbers.append(number)
        return numbers

    def num_scans(self, ms_level: Optional[int] = None) -> int:
        if ms_level is None:
            return len(self._order)
        return len(self.scan_numbers(ms_level))

    def data_rt_range(self, ms_level: Optional[int] = None) -> Optional[Tuple[float, float]]:
        rts = [self._scans[n].retention_time for n in self.scan_numbers(ms_level)]
        if not rts:
            return None
        return (min(rts), max(rts))

    def fragment_scans(
        self,
        rt_range: Tuple[float, float],
        mz_range: Tuple[float, float],
    ) -> List[int]:
        """All MS2 scans inside ``rt_range`` whose precursor m/z lies in ``mz_range``."""
        return [
            number
            for number in self.scan_numbers(ms_level=2, rt_range=rt_range)
            if mz_range[0] <= self._scans[number].precursor_mz <= mz_range[1]
        ]

    def best_fragment_scan(
        self,
        rt_range: Tuple[float, float],
        mz_range: Tuple[float, float],
    ) -> int:
        """MS2 scan with the highest TIC among ``fragment_scans``; -1 if none."""
        best = NOT_FOUND
        best_tic = 0.0
        for number in self.fragment_scans(rt_range, mz_range):
            tic = self._scans[number].tic
            if best == NOT_FOUND or tic > best_tic:
                best = number
                best_tic = tic
        return best


@dataclass(frozen=True)
class ScanSelection:
    """Filter selecting the scans a processing step works on.

    Attributes
    ----------
    ms_level : int, optional
        Only scans of this MS level (None = all levels)
    rt_range : tuple, optional
        Closed retention time window in minutes
    scan_number_range : tuple, optional
        Closed scan number window
    """

    ms_level: Optional[int] = 1
    rt_range: Optional[Tuple[float, float]] = None
    scan_number_range: Optional[Tuple[int, int]] = None

    def matching_scan_numbers(self, raw_file: RawDataFile) -> List[int]:
        numbers = raw_file.scan_numbers(self.ms_level, self.rt_range)
        if self.scan_number_range is not None:
            low, high = self.scan_number_range
            numbers = [n for n in numbers if low <= n <= high]
        return numbers

    def matching_scans(self, raw_file: RawDataFile) -> List[Scan]:
        return [raw_file.get_scan(n) for n in self.matching_scan_numbers(raw_file)]


def scan_position_index(ordered_scan_numbers: Sequence[int]) -> Dict[int, int]:
    """Map each scan number to its position inside ``ordered_scan_numbers``."""
    return {number: i for i, number in enumerate(ordered_scan_numbers)}


def scan_positions(position_index: Dict[int, int], scan_numbers: Sequence[int]) -> np.ndarray:
    """Positions of ``scan_numbers`` looked up in ``position_index``.

    Unknown numbers map to -1.
    """
    return np.array([position_index.get(n, NOT_FOUND) for n in scan_numbers], dtype=np.int64)
