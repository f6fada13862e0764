"""Exceptions raised by gmmstats."""


class GMMStatsError(Exception):
    """Base class for all gmmstats errors."""


class DimensionMismatch(GMMStatsError, ValueError):
    """The feature dimension of the data does not match the model dimension."""


class UnsupportedKind(GMMStatsError, ValueError):
    """The covariance kind of a model is not supported by an operation."""
