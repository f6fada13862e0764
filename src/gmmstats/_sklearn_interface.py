"""Interoperability with scikit-learn Gaussian mixtures."""
from sklearn.mixture import GaussianMixture
from sklearn.utils.validation import check_is_fitted

from .exceptions import UnsupportedKind
from .state import CovarianceKind, GaussianMixtureModel

# scikit-learn covariance_type -> covariance kind
SKLEARN_KINDS = {
    "diag": CovarianceKind.DIAGONAL,
    "full": CovarianceKind.FULL,
}


def model_from_sklearn(estimator: GaussianMixture) -> GaussianMixtureModel:
    """Build a :class:`GaussianMixtureModel` from a fitted scikit-learn mixture.

    Parameters
    ----------
    estimator : sklearn.mixture.GaussianMixture
        Fitted estimator with ``covariance_type`` ``"diag"`` or ``"full"``.

    Returns
    -------
    model : GaussianMixtureModel
        Model sharing the weights, means and covariances of ``estimator``.

    Raises
    ------
    UnsupportedKind
        If ``covariance_type`` is ``"spherical"`` or ``"tied"``. Converting between
        covariance kinds is left to the caller.

    Examples
    --------
    >>> import numpy as np
    >>> from sklearn.mixture import GaussianMixture
    >>> from gmmstats import model_from_sklearn, compute_statistics
    >>> X = np.random.default_rng(0).standard_normal((500, 3))
    >>> gm = GaussianMixture(4, covariance_type="diag", random_state=0).fit(X)
    >>> stats = compute_statistics(model_from_sklearn(gm), X)
    >>> stats.count
    500
    """
    check_is_fitted(estimator, ["weights_", "means_", "covariances_"])
    try:
        kind = SKLEARN_KINDS[estimator.covariance_type]
    except KeyError:
        raise UnsupportedKind(
            f"covariance_type={estimator.covariance_type!r} is not supported. "
            f"Use one of {sorted(SKLEARN_KINDS)}."
        ) from None
    # sklearn normalizes weights_, but only up to float rounding
    weights = estimator.weights_ / estimator.weights_.sum()
    return GaussianMixtureModel(
        weights=weights,
        means=estimator.means_,
        covariances=estimator.covariances_,
        kind=kind,
    )
