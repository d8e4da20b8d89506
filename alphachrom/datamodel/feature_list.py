"""Feature lists: the cross-file correspondence table.

A ``FeatureList`` holds an ordered set of raw files and an ordered list of
rows. Each ``FeatureListRow`` aggregates at most one ``Feature`` per raw file.
Workers filling different files of the same row write concurrently, so the
per-file map is guarded by a lock.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .feature import Feature


@dataclass
class FeatureIdentity:
    """Annotation attached to a row (compound name plus free-form properties)."""

    name: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppliedMethod:
    """One processing step recorded on a feature list."""

    description: str
    parameters: Any = None


class FeatureListRow:
    """Row of a feature list: one chemical signal across raw files.

    Parameters
    ----------
    row_id : int
        Stable row identifier, preserved by every processing step
    comment : str, optional
        Free-text comment
    """

    def __init__(self, row_id: int, comment: str = ""):
        self.row_id = row_id
        self.comment = comment
        self._features: Dict[Any, Feature] = {}
        self._identities: List[FeatureIdentity] = []
        self._preferred_identity: Optional[FeatureIdentity] = None
        self._lock = threading.Lock()
        self.feature_list: Optional['FeatureList'] = None

    def __repr__(self) -> str:
        return f"FeatureListRow(#{self.row_id}, {len(self._features)} features)"

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def add_feature(self, raw_file, feature: Feature) -> None:
        """Store ``feature`` for ``raw_file``, replacing any previous one."""
        if feature.raw_file is not raw_file:
            raise ValueError(
                f"Feature of {feature.raw_file} cannot be stored under {raw_file}"
            )
        if self.feature_list is not None and not self.feature_list.has_raw_file(raw_file):
            raise ValueError(
                f"{raw_file} is not part of feature list {self.feature_list.name}"
            )
        with self._lock:
            self._features[raw_file] = feature

    def remove_feature(self, raw_file) -> None:
        with self._lock:
            self._features.pop(raw_file, None)

    def get_feature(self, raw_file) -> Optional[Feature]:
        with self._lock:
            return self._features.get(raw_file)

    def has_feature(self, raw_file) -> bool:
        return self.get_feature(raw_file) is not None

    def items(self) -> List[Tuple[Any, Feature]]:
        """Snapshot of ``(raw_file, feature)`` pairs."""
        with self._lock:
            return list(self._features.items())

    @property
    def features(self) -> List[Feature]:
        return [feature for _, feature in self.items()]

    @property
    def raw_files(self) -> list:
        return [raw_file for raw_file, _ in self.items()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._features)

    # ------------------------------------------------------------------
    # Averages
    # ------------------------------------------------------------------

    def _average(self, attribute: str) -> float:
        values = [getattr(f, attribute) for f in self.features]
        if not values:
            return 0.0
        return float(np.mean(values))

    @property
    def average_mz(self) -> float:
        return self._average("mz")

    @property
    def average_rt(self) -> float:
        return self._average("rt")

    @property
    def average_height(self) -> float:
        return self._average("height")

    @property
    def average_area(self) -> float:
        return self._average("area")

    @property
    def row_charge(self) -> int:
        """Charge shared by every feature with a known charge, 0 if they disagree."""
        charges = {f.charge for f in self.features if f.charge > 0}
        if len(charges) == 1:
            return charges.pop()
        return 0

    @property
    def max_data_point_intensity(self) -> float:
        heights = [f.intensity_range[1] for f in self.features if f.intensity_range is not None]
        return max(heights, default=0.0)

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    @property
    def identities(self) -> List[FeatureIdentity]:
        return list(self._identities)

    @property
    def preferred_identity(self) -> Optional[FeatureIdentity]:
        return self._preferred_identity

    def add_identity(self, identity: FeatureIdentity, preferred: bool = False) -> None:
        """Attach an identity; a second identity with the same name is ignored."""
        if any(existing.name == identity.name for existing in self._identities):
            return
        self._identities.append(identity)
        if preferred or self._preferred_identity is None:
            self._preferred_identity = identity

    def set_preferred_identity(self, identity: FeatureIdentity) -> None:
        if identity not in self._identities:
            self.add_identity(identity)
        self._preferred_identity = identity

    def copy_header(self) -> 'FeatureListRow':
        """Empty row with the same ID, comment and identities."""
        row = FeatureListRow(self.row_id, self.comment)
        row._identities = list(self._identities)
        row._preferred_identity = self._preferred_identity
        return row


class FeatureList:
    """Ordered rows over an ordered set of raw files.

    Parameters
    ----------
    name : str
        Display name
    raw_files : sequence of RawDataFile
        Files the list covers; every feature must belong to one of them

    Examples
    --------
    >>> flist = FeatureList("sample chromatograms", [raw])
    >>> row = FeatureListRow(1)
    >>> flist.add_row(row)
    >>> row.add_feature(raw, feature)
    """

    def __init__(self, name: str, raw_files: Sequence):
        if len(raw_files) == 0:
            raise ValueError("A feature list needs at least one raw data file")
        self.name = name
        self.raw_files = list(raw_files)
        self._rows: List[FeatureListRow] = []
        self._applied_methods: List[AppliedMethod] = []

    def __repr__(self) -> str:
        return f"FeatureList({self.name!r}, {len(self.raw_files)} files, {len(self._rows)} rows)"

    def __str__(self) -> str:
        return self.name

    def __len__(self) -> int:
        return len(self._rows)

    def has_raw_file(self, raw_file) -> bool:
        return any(raw_file is f for f in self.raw_files)

    def raw_file_index(self, raw_file) -> int:
        for i, f in enumerate(self.raw_files):
            if f is raw_file:
                return i
        raise ValueError(f"{raw_file} is not part of feature list {self.name}")

    @property
    def rows(self) -> List[FeatureListRow]:
        return list(self._rows)

    def add_row(self, row: FeatureListRow) -> None:
        for raw_file in row.raw_files:
            if not self.has_raw_file(raw_file):
                raise ValueError(
                    f"Row #{row.row_id} references {raw_file}, "
                    f"which is not part of feature list {self.name}"
                )
        row.feature_list = self
        self._rows.append(row)

    def get_row(self, index: int) -> FeatureListRow:
        return self._rows[index]

    def find_row_by_id(self, row_id: int) -> Optional[FeatureListRow]:
        for row in self._rows:
            if row.row_id == row_id:
                return row
        return None

    def features(self, raw_file) -> List[Feature]:
        """Features of ``raw_file`` in row order."""
        found = []
        for row in self._rows:
            feature = row.get_feature(raw_file)
            if feature is not None:
                found.append(feature)
        return found

    def rows_inside(
        self,
        mz_range: Tuple[float, float],
        rt_range: Tuple[float, float],
    ) -> List[FeatureListRow]:
        """Rows whose average m/z and RT fall inside the closed windows."""
        return [
            row for row in self._rows
            if mz_range[0] <= row.average_mz <= mz_range[1]
            and rt_range[0] <= row.average_rt <= rt_range[1]
        ]

    @property
    def applied_methods(self) -> List[AppliedMethod]:
        return list(self._applied_methods)

    def add_applied_method(self, method: AppliedMethod) -> None:
        self._applied_methods.append(method)

    def empty_copy(self, name: str) -> 'FeatureList':
        """New list over the same files with header-only copies of every row.

        The applied-method history is carried over.
        """
        copy = FeatureList(name, self.raw_files)
        for row in self._rows:
            copy.add_row(row.copy_header())
        copy._applied_methods = list(self._applied_methods)
        return copy
