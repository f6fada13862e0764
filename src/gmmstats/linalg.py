"""Per-component Gaussian log-densities and posteriors for any covariance kind."""

import math
from typing import Tuple

import torch

from gmmstats._types import CovarianceTensor, FeatureTensor2D, PosteriorTensor
from gmmstats.exceptions import UnsupportedKind
from gmmstats.utils._logging import logger

LOG_2PI = math.log(2 * math.pi)


def cholesky_factors(covariances: CovarianceTensor) -> CovarianceTensor:
    """Lower Cholesky factors of a stack of covariance matrices, shape (n, d, d)."""
    try:
        return torch.linalg.cholesky(covariances)
    except RuntimeError as e:
        # torch reports the offending batch element in its message
        logger.error("Covariance matrices must be symmetric positive definite.")
        raise e


def compute_component_loglikelihoods(*, model, X: FeatureTensor2D) -> PosteriorTensor:
    """Compute log N(x_i | mu_k, Sigma_k) for every frame and component.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model whose components are evaluated. Not modified.
    X : Tensor, shape (n_frames, n_features)
        Block of frames. Not modified.

    Returns
    -------
    loglik : Tensor, shape (n_frames, n_components)
        Log-densities, excluding the mixture weights.
    """
    assert X.ndim == 2, f"X must be 2D, got {X.ndim}D"
    d = model.d
    means = model.means.to(X.dtype)
    cov = model.covariances.to(X.dtype)
    kind = getattr(model.kind, "value", model.kind)
    if kind == "diag":
        # (n_frames, n_components, n_features)
        diff = X[:, None, :] - means[None, :, :]
        maha = (diff.square_() / cov[None, :, :]).sum(dim=-1)
        logdet = torch.log(cov).sum(dim=-1)
    elif kind == "full":
        L = cholesky_factors(cov)
        # (n_components, n_features, n_frames)
        diff = (X[None, :, :] - means[:, None, :]).transpose(1, 2)
        z = torch.linalg.solve_triangular(L, diff, upper=False)
        maha = z.square_().sum(dim=1).T
        logdet = 2.0 * torch.log(torch.diagonal(L, dim1=-2, dim2=-1)).sum(dim=-1)
    else:
        raise UnsupportedKind(f"Unknown covariance kind {model.kind!r}.")
    return -0.5 * (maha + logdet[None, :] + d * LOG_2PI)


def compute_posteriors(*, model, X: FeatureTensor2D) -> Tuple[PosteriorTensor, PosteriorTensor]:
    """Compute per-frame component responsibilities and log-likelihoods.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model to align the frames to. Not modified.
    X : Tensor, shape (n_frames, n_features)
        Block of frames. Not modified.

    Returns
    -------
    gamma : Tensor, shape (n_frames, n_components)
        Posterior responsibilities. Rows sum to 1, except for frames whose total
        likelihood is zero, whose row is all zeros.
    loglik : Tensor, shape (n_frames, n_components)
        Per-component log-densities, excluding the mixture weights.

    Notes
    -----
    The normalization is done in the log domain with a log-sum-exp over
    ``loglik + log(weights)``, so that responsibilities stay finite where the
    densities themselves underflow.
    """
    loglik = compute_component_loglikelihoods(model=model, X=X)
    log_joint = loglik + torch.log(model.weights.to(X.dtype))[None, :]
    log_total = torch.logsumexp(log_joint, dim=1, keepdim=True)
    dead = torch.isneginf(log_total)
    gamma = torch.exp(log_joint - torch.where(dead, 0.0, log_total))
    gamma.masked_fill_(dead, 0.0)
    return gamma, loglik
