"""Utility functions for simulating data."""
import numpy as np


def generate_gmm_data(model, n_samples=1000, seed=None, return_labels=False):
    """
    Draw frames from a Gaussian mixture.

    Parameters
    ----------
    model : GaussianMixtureModel
        Diagonal or full covariance model to sample from.
    n_samples : int, optional
        The number of frames to generate. Default is 1000.
    seed : int, optional
        Seed for :func:`numpy.random.default_rng`.
    return_labels : bool, optional
        If True, also return the index of the component each frame was drawn from.

    Returns
    -------
    X : ndarray, shape (n_samples, n_features)
        The generated frames.
    labels : ndarray, shape (n_samples,)
        Component index per frame. Only returned if ``return_labels`` is True.
    """
    rng = np.random.default_rng(seed)
    weights = model.weights.cpu().numpy()
    means = model.means.cpu().numpy()
    cov = model.covariances.cpu().numpy()
    kind = getattr(model.kind, "value", model.kind)

    labels = rng.choice(len(weights), size=n_samples, p=weights)
    noise = rng.standard_normal((n_samples, means.shape[1]))
    if kind == "diag":
        X = means[labels] + noise * np.sqrt(cov[labels])
    else:
        chol = np.linalg.cholesky(cov)
        X = means[labels] + np.einsum("nij,nj->ni", chol[labels], noise)
    if return_labels:
        return X, labels
    return X
