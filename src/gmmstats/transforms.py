"""Center raw statistics around a (UBM) model, and scale them by its covariance.

Both transforms work on already accumulated statistics, they never take a second
pass over the data.
"""
import torch

from gmmstats.exceptions import UnsupportedKind
from gmmstats.state import (
    CenteredScaledStatistics,
    CenteredStatistics,
    CovarianceKind,
    RawStatistics,
)


def _kind(model) -> CovarianceKind:
    try:
        return CovarianceKind(model.kind)
    except ValueError:
        raise UnsupportedKind(f"Unknown covariance kind {model.kind!r}.") from None


def _check_shapes(model, raw: RawStatistics) -> None:
    if tuple(raw.F.shape) != (model.n, model.d):
        raise ValueError(
            f"Statistics of shape {tuple(raw.F.shape)} do not match a model with "
            f"n={model.n} components and d={model.d} features."
        )


def _center_first_order(model, raw: RawStatistics):
    """Return ``N * mu`` and ``F - N * mu``."""
    means = model.means.to(raw.F.dtype)
    n_mu = raw.N[:, None] * means
    return n_mu, raw.F - n_mu


def _center_second_order(model, raw: RawStatistics, n_mu) -> torch.Tensor:
    """Second moment about each component mean, from the uncentered one."""
    means = model.means.to(raw.F.dtype)
    kind = _kind(model)
    if kind is CovarianceKind.DIAGONAL:
        # sum gamma (x - mu)^2 = S - 2 F mu + N mu^2
        return raw.S + (n_mu - 2 * raw.F) * means
    elif kind is CovarianceKind.FULL:
        # S_k + N_k mu_k mu_k' - F_k mu_k' - mu_k F_k'
        f_mu = raw.F[:, :, None] * means[:, None, :]
        return (
            raw.S
            + raw.N[:, None, None] * means[:, :, None] * means[:, None, :]
            - f_mu
            - f_mu.transpose(1, 2)
        )
    raise UnsupportedKind(f"Unknown covariance kind {model.kind!r}.")  # pragma: no cover


def to_centered(model, raw: RawStatistics) -> CenteredStatistics:
    """Center second order statistics around the means of ``model``.

    Parameters
    ----------
    model : GaussianMixtureModel
        Diagonal or full covariance model the statistics were computed with.
    raw : RawStatistics
        Second order (uncentered) statistics.

    Returns
    -------
    CenteredStatistics
        ``N``, ``F - N * mu`` and the second moment about each mean: shape
        (n, d) for diagonal models and (n, d, d) for full models.
    """
    _kind(model)
    _check_shapes(model, raw)
    if raw.S is None:
        raise ValueError("Centered statistics need second order statistics (order=2).")
    n_mu, F = _center_first_order(model, raw)
    S = _center_second_order(model, raw, n_mu)
    return CenteredStatistics(N=raw.N, F=F, S=S)


def to_centered_scaled(model, raw: RawStatistics) -> CenteredScaledStatistics:
    """Center statistics around the means of ``model`` and scale by its variances.

    Only defined for diagonal covariance models. First order ``raw`` statistics
    give a result with ``s=None``.

    Raises
    ------
    UnsupportedKind
        If ``model`` does not have diagonal covariance.
    """
    if _kind(model) is not CovarianceKind.DIAGONAL:
        raise UnsupportedKind(
            "Centered and scaled statistics need a diagonal covariance model, "
            f"got kind={CovarianceKind(model.kind).value!r}."
        )
    _check_shapes(model, raw)
    var = model.covariances.to(raw.F.dtype)
    n_mu, F = _center_first_order(model, raw)
    f = F / var
    if raw.S is None:
        return CenteredScaledStatistics(N=raw.N, f=f)
    s = _center_second_order(model, raw, n_mu) / var
    return CenteredScaledStatistics(N=raw.N, f=f, s=s)
