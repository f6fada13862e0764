import torch

from gmmstats._types import FeatureTensor2D, PosteriorTensor, SamplesVector
from gmmstats.linalg import LOG_2PI, compute_posteriors
from gmmstats.state import RawStatistics
from gmmstats.utils._logging import logger


def _sum_frame_loglik(
        *,
        frame_loglik: SamplesVector,
        dead_frames: torch.Tensor,
) -> float:
    """Sum per-frame log-likelihoods, leaving out frames with zero likelihood.

    A frame whose total likelihood underflows to zero has no responsibilities and
    contributes 0 to the sum instead of ``-inf``.
    """
    n_dead = int(dead_frames.sum())
    if n_dead:
        logger.warning(
            f"{n_dead} of {dead_frames.numel()} frames have zero total likelihood; "
            "they are excluded from the statistics and the log-likelihood."
        )
        frame_loglik = frame_loglik[~dead_frames]
    return frame_loglik.sum().item()


def compute_diag_stats(
        *,
        model,
        X: FeatureTensor2D,
        order: int = 2,
) -> RawStatistics:
    """Compute zero, first and second order statistics for a diagonal GMM.

    Parameters
    ----------
    model : GaussianMixtureModel
        Diagonal covariance model, ``covariances`` has shape (n_components,
        n_features). Not modified.
    X : Tensor, shape (n_frames, n_features)
        Block of frames. Not modified.
    order : {1, 2}
        If 2, second order statistics (per dimension) are also computed.

    Returns
    -------
    stats : RawStatistics
        ``N`` (n_components,), ``F`` (n_components, n_features) and, for order 2,
        ``S`` (n_components, n_features). Statistics are uncentered.

    Notes
    -----
    The weighted log-density of frame i under component k is rewritten as

        x_i . mp_k - 0.5 (x_i * x_i) . prec_k + log(a_k) - 0.5 sm2p_k

    with ``prec = 1 / var``, ``mp = mu * prec``, ``sm2p_k = sum_j mu_kj^2 prec_kj``
    and ``a_k = w_k / ((2 pi)^(d/2) sqrt(prod var_k))``, so that the whole
    (n_frames, n_components) score matrix comes out of two matrix products.
    Scores are exponentiated directly (no log-sum-exp), which is fast but lets
    the total likelihood of far away frames underflow to zero. Those frames get
    zero responsibilities.

    Peak memory is about ``(2d + 2) n + (d + n + 1) nx`` elements.
    """
    assert X.ndim == 2, f"X must be 2D, got {X.ndim}D"
    assert X.shape[1] == model.d, f"X n_features {X.shape[1]} != model d {model.d}"
    n_features = X.shape[1]
    var = model.covariances.to(X.dtype)            # (n_components, n_features)
    means = model.means.to(X.dtype)                # (n_components, n_features)
    weights = model.weights.to(X.dtype)            # (n_components,)

    prec = torch.reciprocal(var)
    mp = means * prec                              # mean * precision
    # log(a) taken in the log domain, prod(var) over-/underflows for large d
    log_a = torch.log(weights) - 0.5 * (n_features * LOG_2PI + torch.log(var).sum(dim=1))
    sm2p = (mp * means).sum(dim=1)                 # sum over d of mean^2 * precision
    xx = X * X                                     # (n_frames, n_features)

    # Likelihood per frame per component, (n_frames, n_components)
    gamma: PosteriorTensor = X @ mp.T
    gamma.addmm_(xx, prec.T, alpha=-0.5)
    gamma += (log_a - 0.5 * sm2p)[None, :]
    gamma.exp_()

    lpf = gamma.sum(dim=1)                         # likelihood per frame
    dead = lpf == 0
    # posterior per frame per component, rows of dead frames stay zero
    gamma /= (lpf + dead)[:, None]

    N = gamma.sum(dim=0)
    F = gamma.T @ X
    loglik = _sum_frame_loglik(frame_loglik=torch.log(lpf), dead_frames=dead)
    S = gamma.T @ xx if order == 2 else None
    return RawStatistics(count=X.shape[0], loglik=loglik, N=N, F=F, S=S)


def compute_full_stats(
        *,
        model,
        X: FeatureTensor2D,
        order: int = 2,
) -> RawStatistics:
    """Compute zero, first and second order statistics for a full covariance GMM.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model of any covariance kind. Not modified.
    X : Tensor, shape (n_frames, n_features)
        Block of frames. Not modified.
    order : {1, 2}
        If 2, second order statistics (outer products) are also computed.

    Returns
    -------
    stats : RawStatistics
        ``N`` (n_components,), ``F`` (n_components, n_features) and, for order 2,
        ``S`` (n_components, n_features, n_features) with
        ``S[k] = sum_i gamma_ik x_i^T x_i``.

    Notes
    -----
    This is the generic, slower route: posteriors come from
    :func:`gmmstats.linalg.compute_posteriors` and each component costs one
    (n_features, n_frames) x (n_frames, n_features) product for ``S``.
    """
    assert X.ndim == 2, f"X must be 2D, got {X.ndim}D"
    assert X.shape[1] == model.d, f"X n_features {X.shape[1]} != model d {model.d}"
    n_frames, n_features = X.shape
    n_components = model.n

    gamma, component_loglik = compute_posteriors(model=model, X=X)
    log_weights = torch.log(model.weights.to(X.dtype))
    frame_loglik = torch.logsumexp(component_loglik + log_weights[None, :], dim=1)
    loglik = _sum_frame_loglik(
        frame_loglik=frame_loglik, dead_frames=torch.isneginf(frame_loglik)
    )

    N = gamma.sum(dim=0)
    F = gamma.T @ X
    if order == 1:
        return RawStatistics(count=n_frames, loglik=loglik, N=N, F=F)

    # S_k = sum_i gamma_ik x_i' x_i
    S = torch.empty((n_components, n_features, n_features), dtype=X.dtype)
    gx = torch.empty_like(X)
    for k in range(n_components):
        torch.mul(gamma[:, k, None], X, out=gx)
        S[k] = X.T @ gx
    return RawStatistics(count=n_frames, loglik=loglik, N=N, F=F, S=S)
