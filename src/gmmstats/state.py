"""
Containers for GMM statistics computations.

This module holds the structured values that flow through the engine: the
immutable configuration (memory budget, workers), the read-only mixture model,
and the statistics produced per block. Statistics are plain values with an
explicit ``merge`` and ``zeros``, so that block and dataset reductions fold them
the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import numpy as np
import psutil
import torch
from numpy.typing import NDArray

from gmmstats._batching import default_memory_budget
from gmmstats.exceptions import UnsupportedKind


class CovarianceKind(str, Enum):
    """Covariance structure of a Gaussian mixture."""

    DIAGONAL = "diag"
    FULL = "full"


def _default_workers() -> int:
    return psutil.cpu_count(logical=True) or 1


@dataclass(slots=True, frozen=True)
class StatsConfig:
    """Immutable configuration for statistics accumulation.

    The memory budget is process-wide configuration, but it is always passed
    explicitly to the splitting logic instead of being read from global state.
    """

    # Working memory available to a single block, in bytes
    memory_budget: float = field(default_factory=default_memory_budget)

    # Execution
    n_workers: int = field(default_factory=_default_workers)
    backend: Literal["thread", "process"] = "thread"

    # Numeric
    dtype: torch.dtype = torch.float64

    def __post_init__(self):
        if self.memory_budget <= 0:
            raise ValueError(
                f"memory_budget must be positive. Got {self.memory_budget}."
            )
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be at least 1. Got {self.n_workers}.")
        if self.backend not in ("thread", "process"):
            raise ValueError(
                f"backend must be 'thread' or 'process'. Got {self.backend!r}."
            )

    @classmethod
    def from_gigabytes(cls, gigabytes: float, **kwargs) -> StatsConfig:
        """Create a config whose memory budget is given in GiB."""
        return cls(memory_budget=gigabytes * 1024**3, **kwargs)


@dataclass(slots=True, frozen=True, repr=False)
class GaussianMixtureModel:
    """Read-only parameters of a Gaussian mixture.

    Shapes:
    - weights:     (n,)        mixture weights, nonnegative and summing to 1
    - means:       (n, d)      component means
    - covariances: (n, d)      per-dimension variances when ``kind`` is ``"diag"``
                   (n, d, d)   covariance matrices when ``kind`` is ``"full"``

    Arrays are stored as float64 tensors. numpy inputs are converted on creation.
    """

    weights: torch.Tensor
    means: torch.Tensor
    covariances: torch.Tensor
    kind: CovarianceKind = CovarianceKind.DIAGONAL

    def __post_init__(self):
        try:
            kind = CovarianceKind(self.kind)
        except ValueError:
            raise UnsupportedKind(
                f"Unknown covariance kind {self.kind!r}. "
                f"Expected one of {[k.value for k in CovarianceKind]}."
            ) from None
        weights = torch.as_tensor(self.weights, dtype=torch.float64)
        means = torch.as_tensor(self.means, dtype=torch.float64)
        covariances = torch.as_tensor(self.covariances, dtype=torch.float64)

        if weights.ndim != 1:
            raise ValueError(f"weights must be 1D, got {weights.ndim}D")
        if means.ndim != 2 or means.shape[0] != weights.shape[0]:
            raise ValueError(
                f"means shape {tuple(means.shape)} != (n_components, n_features) "
                f"with n_components={weights.shape[0]}"
            )
        n, d = means.shape
        want = (n, d) if kind is CovarianceKind.DIAGONAL else (n, d, d)
        if tuple(covariances.shape) != want:
            raise ValueError(
                f"covariances shape {tuple(covariances.shape)} != {want} "
                f"for kind={kind.value!r}"
            )
        if torch.any(weights < 0):
            raise ValueError("weights must be nonnegative.")
        if abs(weights.sum().item() - 1.0) > 1e-6:
            raise ValueError(f"weights must sum to 1, got {weights.sum().item()}")
        if kind is CovarianceKind.DIAGONAL and torch.any(covariances <= 0):
            raise ValueError("variances must be strictly positive.")

        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "means", means)
        object.__setattr__(self, "covariances", covariances)

    @property
    def n(self) -> int:
        """Number of mixture components."""
        return self.means.shape[0]

    @property
    def d(self) -> int:
        """Feature dimension."""
        return self.means.shape[1]

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, "
            f"n={self.n}, d={self.d})"
        )


@dataclass(slots=True, frozen=True, repr=False)
class RawStatistics:
    """Uncentered Baum-Welch statistics of a block of frames.

    Shapes:
    - count:  number of frames that contributed
    - loglik: total log-likelihood of those frames
    - N:      (n,)        zeroth order, occupancy per component
    - F:      (n, d)      first order, responsibility-weighted sum of frames
    - S:      (n, d)      second order for diagonal models (per dimension)
              (n, d, d)   second order for full models (outer products)
              None        for first-order statistics
    """

    count: int
    loglik: float
    N: torch.Tensor
    F: torch.Tensor
    S: torch.Tensor | None = None

    @property
    def order(self) -> int:
        return 1 if self.S is None else 2

    @classmethod
    def zeros(
        cls,
        n: int,
        d: int,
        *,
        kind: CovarianceKind = CovarianceKind.DIAGONAL,
        order: int = 2,
        dtype: torch.dtype = torch.float64,
    ) -> RawStatistics:
        """Return the identity element of :meth:`merge` for the given shapes."""
        kind = CovarianceKind(kind)
        if order not in (1, 2):
            raise ValueError(f"order must be 1 or 2. Got {order}.")
        S = None
        if order == 2:
            shape = (n, d) if kind is CovarianceKind.DIAGONAL else (n, d, d)
            S = torch.zeros(shape, dtype=dtype)
        return cls(
            count=0,
            loglik=0.0,
            N=torch.zeros(n, dtype=dtype),
            F=torch.zeros((n, d), dtype=dtype),
            S=S,
        )

    def merge(self, other: RawStatistics) -> RawStatistics:
        """Return the elementwise sum of two sets of statistics.

        The operation is associative and commutative, so blocks can be merged in
        any order (up to floating point rounding).
        """
        if self.order != other.order:
            raise ValueError(
                f"Cannot merge statistics of order {self.order} and {other.order}."
            )
        if self.F.shape != other.F.shape or (
            self.S is not None and self.S.shape != other.S.shape
        ):
            raise ValueError(
                f"Cannot merge statistics of shape {tuple(self.F.shape)} "
                f"and {tuple(other.F.shape)}."
            )
        return RawStatistics(
            count=self.count + other.count,
            loglik=self.loglik + other.loglik,
            N=self.N + other.N,
            F=self.F + other.F,
            S=None if self.S is None else self.S + other.S,
        )

    def astuple(self) -> tuple:
        """Return ``(count, loglik, N, F)`` or ``(count, loglik, N, F, S)``."""
        out = (self.count, self.loglik, self.N, self.F)
        return out if self.S is None else out + (self.S,)

    def to_numpy(self) -> dict[str, NDArray | float | int | None]:
        """Return the statistics as a dict of numpy arrays."""
        return {
            "count": self.count,
            "loglik": self.loglik,
            "N": self.N.cpu().numpy(),
            "F": self.F.cpu().numpy(),
            "S": None if self.S is None else self.S.cpu().numpy(),
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(count={self.count}, loglik={self.loglik:.6g}, "
            f"n_components={self.N.shape[0]}, n_features={self.F.shape[1]}, "
            f"order={self.order})"
        )


@dataclass(slots=True, frozen=True)
class CenteredStatistics:
    """Statistics centered around the component means of a (UBM) model.

    - N: (n,)
    - F: (n, d)            sum of gamma * (x - mu)
    - S: (n, d) or (n, d, d) second moment about each component mean
    """

    N: torch.Tensor
    F: torch.Tensor
    S: torch.Tensor

    def to_numpy(self) -> dict[str, np.ndarray]:
        return {"N": self.N.cpu().numpy(), "F": self.F.cpu().numpy(),
                "S": self.S.cpu().numpy()}


@dataclass(slots=True, frozen=True)
class CenteredScaledStatistics:
    """Centered statistics divided by the diagonal covariance of the model.

    ``s`` is None when only first order statistics were computed.
    """

    N: torch.Tensor
    f: torch.Tensor
    s: torch.Tensor | None = None

    def to_numpy(self) -> dict[str, np.ndarray | None]:
        return {
            "N": self.N.cpu().numpy(),
            "f": self.f.cpu().numpy(),
            "s": None if self.s is None else self.s.cpu().numpy(),
        }


__all__ = [
    "CovarianceKind",
    "StatsConfig",
    "GaussianMixtureModel",
    "RawStatistics",
    "CenteredStatistics",
    "CenteredScaledStatistics",
]
