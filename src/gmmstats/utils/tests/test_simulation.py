import numpy as np
from numpy.testing import assert_allclose

from gmmstats import GaussianMixtureModel
from gmmstats.utils import generate_gmm_data


def test_generate_gmm_data_diag():
    model = GaussianMixtureModel(
        weights=[0.25, 0.75],
        means=[[-3.0, 0.0], [3.0, 1.0]],
        covariances=[[1.0, 4.0], [0.25, 1.0]],
        kind="diag",
    )
    X, labels = generate_gmm_data(model, n_samples=20_000, seed=1, return_labels=True)
    assert X.shape == (20_000, 2)
    assert_allclose(np.bincount(labels) / 20_000, [0.25, 0.75], atol=0.02)
    for k in range(2):
        assert_allclose(X[labels == k].mean(axis=0), model.means[k], atol=0.1)
        assert_allclose(X[labels == k].var(axis=0), model.covariances[k], rtol=0.1)


def test_generate_gmm_data_full_is_reproducible():
    cov = np.array([[[2.0, 0.8], [0.8, 1.0]]])
    model = GaussianMixtureModel(
        weights=[1.0], means=[[1.0, -1.0]], covariances=cov, kind="full"
    )
    X = generate_gmm_data(model, n_samples=20_000, seed=3)
    assert_allclose(np.cov(X.T), cov[0], atol=0.1)
    assert np.array_equal(X, generate_gmm_data(model, n_samples=20_000, seed=3))
