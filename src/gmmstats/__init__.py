from . import datasets, utils
from ._sklearn_interface import model_from_sklearn
from .core import (
    accumulate_statistics,
    centered_scaled_stats,
    centered_stats,
    compute_statistics,
    reduce_dataset,
    reduce_statistics,
)
from .exceptions import DimensionMismatch, GMMStatsError, UnsupportedKind
from .state import (
    CenteredScaledStatistics,
    CenteredStatistics,
    CovarianceKind,
    GaussianMixtureModel,
    RawStatistics,
    StatsConfig,
)
from .transforms import to_centered, to_centered_scaled

__all__ = [
    "accumulate_statistics",
    "centered_scaled_stats",
    "centered_stats",
    "compute_statistics",
    "reduce_dataset",
    "reduce_statistics",
    "to_centered",
    "to_centered_scaled",
    "model_from_sklearn",
    "CovarianceKind",
    "GaussianMixtureModel",
    "RawStatistics",
    "CenteredStatistics",
    "CenteredScaledStatistics",
    "StatsConfig",
    "DimensionMismatch",
    "GMMStatsError",
    "UnsupportedKind",
    "datasets",
    "utils",
]
