"""Dispatch, split and reduce Baum-Welch statistics of a GMM."""
from __future__ import annotations

from functools import partial

import numpy as np
import torch
from sklearn.utils import check_array

from gmmstats._batching import (
    FootprintEstimator,
    estimate_bytes,
    plan_blocks,
    split_blocks,
)
from gmmstats._parallel import map_unordered
from gmmstats._types import FeatureBlock, FeatureTensor2D
from gmmstats.datasets import NpyDataset, is_dataset
from gmmstats.exceptions import DimensionMismatch, UnsupportedKind
from gmmstats.kernels import compute_diag_stats, compute_full_stats
from gmmstats.state import (
    CenteredScaledStatistics,
    CenteredStatistics,
    CovarianceKind,
    RawStatistics,
    StatsConfig,
)
from gmmstats.transforms import to_centered, to_centered_scaled
from gmmstats.utils._logging import log, logger

CHECK_ARRAY_KWARGS = {
    "dtype": [np.float64, np.float32],
    "ensure_2d": True,
    "ensure_min_samples": 0,  # an empty block is valid and gives zero statistics
}

# One statistics kernel per covariance kind
_KERNELS = {
    CovarianceKind.DIAGONAL: compute_diag_stats,
    CovarianceKind.FULL: compute_full_stats,
}


def _model_kind(model) -> CovarianceKind:
    try:
        return CovarianceKind(model.kind)
    except ValueError:
        raise UnsupportedKind(
            f"Unknown covariance kind {model.kind!r}. "
            f"Expected one of {[k.value for k in CovarianceKind]}."
        ) from None


def _check_order(order: int) -> None:
    if order not in (1, 2):
        raise ValueError(f"order must be 1 or 2. Got {order}.")


def _as_feature_tensor(
        X: FeatureBlock,
        *,
        n_features: int,
        dtype: torch.dtype = torch.float64,
) -> FeatureTensor2D:
    """Validate a block of frames and return it as a 2D Tensor of ``dtype``."""
    if isinstance(X, torch.Tensor):
        if X.ndim != 2:
            raise ValueError(f"Expected a 2D Tensor, got {X.ndim}D")
        X_t = X.to(dtype)
        if not torch.isfinite(X_t).all():
            raise ValueError("Input contains NaN or infinity.")
    else:
        X = check_array(X, **CHECK_ARRAY_KWARGS)
        if not X.flags.writeable:
            # read-only memmaps cannot back a Tensor
            X = np.array(X)
        X_t = torch.as_tensor(X, dtype=dtype)
    if X_t.shape[1] != n_features:
        raise DimensionMismatch(
            f"Data has {X_t.shape[1]} features but the model has dimension {n_features}."
        )
    return X_t


def compute_statistics(
        model,
        X: FeatureBlock,
        order: int = 2,
        *,
        dtype: torch.dtype = torch.float64,
) -> RawStatistics:
    """Compute statistics of one in-memory block of frames.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model to align the frames to. Not modified.
    X : array-like or Tensor, shape (n_frames, n_features)
        Block of frames. Not modified.
    order : {1, 2}, default=2
        1 for zero and first order statistics, 2 to also get second order.
    dtype : torch.dtype, default=torch.float64
        Precision of the computation.

    Returns
    -------
    stats : RawStatistics

    Raises
    ------
    DimensionMismatch
        If ``X`` does not have ``model.d`` columns.
    UnsupportedKind
        If the model covariance kind is neither diagonal nor full.
    """
    _check_order(order)
    X = _as_feature_tensor(X, n_features=model.d, dtype=dtype)
    kernel = _KERNELS[_model_kind(model)]
    return kernel(model=model, X=X, order=order)


def _fold(results, zero: RawStatistics) -> RawStatistics:
    total = zero
    for stats in results:
        total = total.merge(stats)
    return total


def _zero_statistics(model, order: int, dtype: torch.dtype) -> RawStatistics:
    return RawStatistics.zeros(
        model.n, model.d, kind=_model_kind(model), order=order, dtype=dtype
    )


def reduce_statistics(
        model,
        blocks,
        order: int = 2,
        *,
        parallel: bool = False,
        config: StatsConfig | None = None,
) -> RawStatistics:
    """Compute statistics for each block and merge them.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model to align the frames to. Not modified.
    blocks : sequence of array-like
        Blocks of frames, each of shape (n_frames_b, n_features).
    order : {1, 2}, default=2
        Order of the statistics.
    parallel : bool, default=False
        If True and ``config.n_workers > 1``, blocks are processed on a worker
        pool. The first failing block aborts the whole reduction.
    config : StatsConfig, optional
        Execution settings. Defaults to ``StatsConfig()``.

    Returns
    -------
    stats : RawStatistics
        Merged statistics. Zero statistics if ``blocks`` is empty.
    """
    _check_order(order)
    config = StatsConfig() if config is None else config
    blocks = list(blocks)
    zero = _zero_statistics(model, order, config.dtype)
    parallel = parallel and config.n_workers > 1 and len(blocks) > 1

    if parallel:
        n_workers = min(config.n_workers, len(blocks))
        logger.debug(
            f"Reducing {len(blocks)} blocks on {n_workers} {config.backend} workers"
        )
        results = map_unordered(
            partial(compute_statistics, model, order=order, dtype=config.dtype),
            blocks,
            n_workers=n_workers,
            backend=config.backend,
        )
        return _fold(results, zero)

    logger.debug(f"Reducing {len(blocks)} blocks sequentially")
    return _fold(
        (compute_statistics(model, blk, order, dtype=config.dtype) for blk in blocks),
        zero,
    )


def accumulate_statistics(
        model,
        data,
        order: int = 2,
        *,
        parallel: bool = False,
        config: StatsConfig | None = None,
        estimator: FootprintEstimator = estimate_bytes,
) -> RawStatistics:
    """Compute statistics of a feature matrix (or dataset) within a memory budget.

    A single matrix is split by rows into as many blocks as needed to keep the
    estimated footprint of each block under ``config.memory_budget``. In parallel
    mode there are at least ``config.n_workers`` blocks (but never more blocks
    than frames). A dataset is handed to :func:`reduce_dataset`.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model to align the frames to. Not modified.
    data : array-like, Tensor, or dataset
        Matrix of shape (n_frames, n_features), or a collection of such matrices
        supporting ``len()`` and integer indexing.
    order : {1, 2}, default=2
        Order of the statistics.
    parallel : bool, default=False
        Process blocks (or dataset elements) on ``config.n_workers`` workers.
    config : StatsConfig, optional
        Memory budget and execution settings. Defaults to ``StatsConfig()``.
    estimator : callable, optional
        Footprint estimator ``(kind, n_components, n_features, n_frames, dtype)
        -> bytes``, by default :func:`gmmstats._batching.estimate_bytes`.

    Returns
    -------
    stats : RawStatistics
    """
    config = StatsConfig() if config is None else config
    if is_dataset(data):
        return reduce_dataset(
            model, data, order, parallel=parallel, config=config, estimator=estimator
        )
    _check_order(order)
    kind = _model_kind(model)
    X = _as_feature_tensor(data, n_features=model.d, dtype=config.dtype)
    n_frames = X.shape[0]
    parallel = parallel and config.n_workers > 1

    nbytes = estimator(kind.value, model.n, model.d, n_frames, config.dtype)
    n_blocks = plan_blocks(
        nbytes,
        config.memory_budget,
        n_frames,
        n_workers=config.n_workers if parallel else None,
    )
    logger.debug(
        f"Estimated {nbytes / 1024**2:.1f} MiB for {n_frames} frames; "
        f"budget {config.memory_budget / 1024**2:.1f} MiB -> {n_blocks} blocks"
    )
    if n_blocks > 1 and n_frames // n_blocks < model.n:
        logger.warning(
            f"To stay within the memory budget, blocks hold {n_frames // n_blocks} "
            f"frames, fewer than the {model.n} mixture components."
        )
    return reduce_statistics(
        model, split_blocks(X, n_blocks), order, parallel=parallel, config=config
    )


def _element_statistics(
        index: int,
        *,
        model,
        dataset,
        order: int,
        config: StatsConfig,
        estimator: FootprintEstimator,
) -> RawStatistics:
    return accumulate_statistics(
        model,
        dataset[index],
        order,
        parallel=False,
        config=config,
        estimator=estimator,
    )


def reduce_dataset(
        model,
        dataset,
        order: int = 2,
        *,
        parallel: bool = False,
        config: StatsConfig | None = None,
        estimator: FootprintEstimator = estimate_bytes,
) -> RawStatistics:
    """Compute statistics over every matrix of a dataset and merge them.

    Each element is processed with :func:`accumulate_statistics` (memory-bounded,
    never parallel within the element). In parallel mode whole elements are
    distributed over the workers. With ``backend="process"`` each element is
    pickled once and sent to its worker; an :class:`NpyDataset` is sent as a
    list of paths and each worker loads its own elements.

    Parameters
    ----------
    model : GaussianMixtureModel
        Model to align the frames to. Not modified.
    dataset : sequence of array-like
        Collection supporting ``len()`` and integer indexing, each element of
        shape (n_frames_i, n_features).
    order : {1, 2}, default=2
        Order of the statistics.
    parallel : bool, default=False
        Distribute elements over ``config.n_workers`` workers.
    config : StatsConfig, optional
        Memory budget and execution settings. Defaults to ``StatsConfig()``.
    estimator : callable, optional
        Footprint estimator used for each element.

    Returns
    -------
    stats : RawStatistics
    """
    _check_order(order)
    config = StatsConfig() if config is None else config
    n_elements = len(dataset)
    zero = _zero_statistics(model, order, config.dtype)
    parallel = parallel and config.n_workers > 1 and n_elements > 1
    task = partial(
        _element_statistics,
        model=model,
        dataset=dataset,
        order=order,
        config=config,
        estimator=estimator,
    )

    if parallel:
        n_workers = min(config.n_workers, n_elements)
        logger.info(
            f"Reducing {n_elements} dataset elements on {n_workers} "
            f"{config.backend} workers"
        )
        items = range(n_elements)
        if config.backend == "process" and not isinstance(dataset, NpyDataset):
            # Each task pickles its arguments, so send one element per task
            # rather than the whole dataset. NpyDataset only pickles its paths.
            task = partial(
                accumulate_statistics,
                model,
                order=order,
                parallel=False,
                config=config,
                estimator=estimator,
            )
            items = (dataset[i] for i in range(n_elements))
        total = _fold(
            map_unordered(task, items, n_workers=n_workers, backend=config.backend),
            zero,
        )
    else:
        logger.info(f"Reducing {n_elements} dataset elements sequentially")
        total = _fold((task(i) for i in range(n_elements)), zero)
    log(
        f"Reduced {n_elements} elements, {total.count} frames, "
        f"log-likelihood {total.loglik:.6g}",
        level="info",
        color="green",
    )
    return total


def centered_stats(
        model,
        data,
        *,
        parallel: bool = False,
        config: StatsConfig | None = None,
) -> CenteredStatistics:
    """Compute statistics centered around the means of ``model``.

    Accepts a matrix or a dataset, like :func:`accumulate_statistics`.
    """
    raw = accumulate_statistics(model, data, 2, parallel=parallel, config=config)
    return to_centered(model, raw)


def centered_scaled_stats(
        model,
        data,
        order: int = 2,
        *,
        parallel: bool = False,
        config: StatsConfig | None = None,
) -> CenteredScaledStatistics:
    """Compute statistics centered and scaled by a diagonal ``model``.

    With ``order=1`` only ``N`` and ``f`` are computed (``s`` is None).

    Raises
    ------
    UnsupportedKind
        If ``model`` does not have diagonal covariance. Raised before any data is
        processed.
    """
    if _model_kind(model) is not CovarianceKind.DIAGONAL:
        raise UnsupportedKind(
            "Centered and scaled statistics need a diagonal covariance model, "
            f"got kind={_model_kind(model).value!r}."
        )
    raw = accumulate_statistics(model, data, order, parallel=parallel, config=config)
    return to_centered_scaled(model, raw)
