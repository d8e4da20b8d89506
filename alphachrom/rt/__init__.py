"""Retention time mapping between raw files."""

from .regression import RegressionInfo

__all__ = [
    'RegressionInfo',
]
