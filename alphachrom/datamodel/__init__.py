"""Scans, raw data files, features and feature lists."""

from .scan import (
    MassList,
    Scan,
    RawDataFile,
    ScanSelection,
    scan_position_index,
    scan_positions,
)

from .feature import (
    Feature,
    FeatureStatus,
    ShapeModel,
    build_feature,
)

from .feature_list import (
    AppliedMethod,
    FeatureIdentity,
    FeatureList,
    FeatureListRow,
)

__all__ = [
    'MassList',
    'Scan',
    'RawDataFile',
    'ScanSelection',
    'scan_position_index',
    'scan_positions',
    'Feature',
    'FeatureStatus',
    'ShapeModel',
    'build_feature',
    'AppliedMethod',
    'FeatureIdentity',
    'FeatureList',
    'FeatureListRow',
]
