from dataclasses import FrozenInstanceError

import numpy as np
import pytest
import torch
from numpy.testing import assert_allclose

from gmmstats import (
    CovarianceKind,
    GaussianMixtureModel,
    RawStatistics,
    StatsConfig,
    UnsupportedKind,
    compute_statistics,
)


def test_model_validation():
    model = GaussianMixtureModel(
        weights=np.array([0.5, 0.5]),
        means=np.zeros((2, 3)),
        covariances=np.ones((2, 3)),
    )
    assert model.kind is CovarianceKind.DIAGONAL
    assert (model.n, model.d) == (2, 3)
    assert model.means.dtype == torch.float64
    assert repr(model) == "GaussianMixtureModel(kind='diag', n=2, d=3)"

    with pytest.raises(ValueError, match="sum to 1"):
        GaussianMixtureModel(weights=[0.5, 0.6], means=np.zeros((2, 3)),
                             covariances=np.ones((2, 3)))
    with pytest.raises(ValueError, match="nonnegative"):
        GaussianMixtureModel(weights=[1.5, -0.5], means=np.zeros((2, 3)),
                             covariances=np.ones((2, 3)))
    with pytest.raises(ValueError, match="strictly positive"):
        GaussianMixtureModel(weights=[0.5, 0.5], means=np.zeros((2, 3)),
                             covariances=np.zeros((2, 3)))
    with pytest.raises(ValueError, match="covariances shape"):
        GaussianMixtureModel(weights=[0.5, 0.5], means=np.zeros((2, 3)),
                             covariances=np.ones((2, 3)), kind="full")
    with pytest.raises(ValueError, match="means shape"):
        GaussianMixtureModel(weights=[1.0], means=np.zeros((2, 3)),
                             covariances=np.ones((2, 3)))
    with pytest.raises(UnsupportedKind, match="tied"):
        GaussianMixtureModel(weights=[1.0], means=np.zeros((1, 3)),
                             covariances=np.eye(3), kind="tied")


def test_model_is_frozen(diag_model):
    with pytest.raises(FrozenInstanceError):
        diag_model.kind = "full"


@pytest.mark.parametrize("kind, S_shape", [("diag", (4, 3)), ("full", (4, 3, 3))])
def test_zeros(kind, S_shape):
    zero = RawStatistics.zeros(4, 3, kind=kind, order=2)
    assert zero.count == 0 and zero.loglik == 0.0
    assert tuple(zero.S.shape) == S_shape
    assert RawStatistics.zeros(4, 3, kind=kind, order=1).S is None
    with pytest.raises(ValueError, match="order must be 1 or 2"):
        RawStatistics.zeros(4, 3, kind=kind, order=3)


def test_merge(diag_model, frames):
    a = compute_statistics(diag_model, frames[:300], 2)
    b = compute_statistics(diag_model, frames[300:], 2)
    zero = RawStatistics.zeros(4, 3, order=2)

    # zero is the identity
    same = zero.merge(a)
    assert same.count == a.count
    assert torch.equal(same.S, a.S)

    ab, ba = a.merge(b), b.merge(a)
    assert ab.count == ba.count == 1000
    assert_allclose(ab.loglik, a.loglik + b.loglik)
    assert_allclose(ab.F, ba.F)
    assert_allclose(ab.S, compute_statistics(diag_model, frames, 2).S, rtol=1e-10)

    out = ab.to_numpy()
    assert isinstance(out["N"], np.ndarray)
    assert out["count"] == 1000
    assert "order=2" in repr(ab)


def test_merge_mismatch(diag_model, full_model, frames):
    second = compute_statistics(diag_model, frames, 2)
    with pytest.raises(ValueError, match="order 2 and 1"):
        second.merge(compute_statistics(diag_model, frames, 1))
    with pytest.raises(ValueError, match="Cannot merge statistics of shape"):
        second.merge(RawStatistics.zeros(2, 3, order=2))
    with pytest.raises(ValueError, match="Cannot merge statistics of shape"):
        second.merge(compute_statistics(full_model, frames, 2))


def test_stats_config():
    config = StatsConfig.from_gigabytes(0.5, n_workers=2)
    assert config.memory_budget == 0.5 * 1024**3
    assert config.n_workers == 2
    assert config.backend == "thread"
    assert 0 < StatsConfig().memory_budget <= 2 * 1024**3
    assert StatsConfig().n_workers >= 1

    with pytest.raises(ValueError, match="memory_budget must be positive"):
        StatsConfig(memory_budget=0)
    with pytest.raises(ValueError, match="n_workers"):
        StatsConfig(n_workers=0)
    with pytest.raises(ValueError, match="backend"):
        StatsConfig(backend="mpi")
    with pytest.raises(FrozenInstanceError):
        config.n_workers = 4
