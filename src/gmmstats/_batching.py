from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from typing import Union

import numpy as np
import psutil
import torch

ArrayLike2D = Union[np.ndarray, torch.Tensor]

# Estimates peak bytes for (kind, n_components, n_features, n_frames, dtype)
FootprintEstimator = Callable[[str, int, int, int, "np.dtype | torch.dtype"], int]


def _itemsize(dtype) -> int:
    if isinstance(dtype, torch.dtype):
        return torch.empty((), dtype=dtype).element_size()
    return np.dtype(dtype).itemsize


def estimate_bytes(
        kind: str,
        n_components: int,
        n_features: int,
        n_frames: int,
        dtype: np.dtype | torch.dtype = np.float64,
        ) -> int:
    """Estimate peak working memory of the statistics kernels for one block.

    Parameters
    ----------
    kind : {"diag", "full"}
        Covariance kind of the model.
    n_components : int
        Number of mixture components (n).
    n_features : int
        Feature dimension (d).
    n_frames : int
        Number of frames in the block (nx).
    dtype : np.dtype or torch.dtype, optional
        Data type of the computation, by default float64.

    Returns
    -------
    int
        Estimated number of bytes.

    Notes
    -----
    The estimate counts the dominant buffers of each kernel and is a heuristic,
    not a guarantee:

    - diag: precisions, mean*precision, constants and results scale with
      ``(2d + 2) n``; the squared frames, the (nx, n) likelihood matrix and the
      per-frame totals scale with ``(d + n + 1) nx``.
    - full: per-component means, covariances and second moments scale with
      ``(d + d^2) n``; the posterior and log-likelihood matrices plus the
      temporaries of the posterior computation scale with ``(5 + d) nx n``, and
      the weighted frame buffer with ``(2d + 2) nx``.
    """
    d, n, nx = n_features, n_components, n_frames
    if kind == "diag":
        n_elements = (2 * d + 2) * n + (d + n + 1) * nx
    elif kind == "full":
        n_elements = (d + d**2 + 5 * nx + nx * d) * n + (2 * d + 2) * nx
    else:
        raise ValueError(f"Cannot estimate memory for covariance kind {kind!r}.")
    return int(_itemsize(dtype) * n_elements)


def default_memory_budget(
        memory_fraction: float = 0.25,      # use up to 25% of available memory
        memory_cap: float = 2 * 1024**3,    # 2 GiB absolute ceiling
        ) -> float:
    """Pick a working memory budget in bytes from the memory available right now.

    Falls back to ``memory_cap`` if the available memory cannot be queried.
    """
    try:
        avail_mem = psutil.virtual_memory().available
        return float(min(avail_mem * memory_fraction, memory_cap))
    except Exception:
        return float(memory_cap)


def plan_blocks(
        nbytes: int,
        memory_budget: float,
        n_frames: int,
        n_workers: int | None = None,
        ) -> int:
    """Decide how many blocks to split ``n_frames`` frames into.

    Parameters
    ----------
    nbytes : int
        Estimated footprint of processing all frames at once.
    memory_budget : float
        Bytes allowed for a single block.
    n_frames : int
        Number of frames available for splitting.
    n_workers : int, optional
        If given (parallel execution), use at least this many blocks so each
        worker gets one.

    Returns
    -------
    int
        Number of blocks, between 1 and ``max(1, n_frames)``.
    """
    if memory_budget <= 0:
        raise ValueError(f"memory_budget must be positive. Got {memory_budget}.")
    blocks = math.ceil(nbytes / memory_budget)
    if n_workers is not None:
        blocks = max(blocks, n_workers)
    # A block must hold at least one frame
    return max(1, min(blocks, n_frames))


class BlockLoader:
    """Split an array into contiguous, near-equal row blocks.

    Block ``i`` starts at row ``(i * n_frames) // n_blocks``, so block lengths
    differ by at most one row. Blocks are views of the input (no copy).

    Example:
        X: (n_frames, n_features)
        loader = BlockLoader(X, n_blocks=4)
        for X_blk, sl in loader:
            # X_blk is X[sl, :] where sl is slice(start, end)
            ...
    """

    def __init__(self, X: ArrayLike2D, n_blocks: int = 1):
        cls_name = self.__class__.__name__
        if X.ndim != 2:
            raise ValueError(
                f"{cls_name} expects a 2D array, got {X.ndim}D"
            )  # pragma: no cover
        if n_blocks < 1:
            raise ValueError(f"n_blocks must be positive. Got {n_blocks}.")
        n = X.shape[0]
        if n_blocks > max(n, 1):
            raise ValueError(
                f"n_blocks {n_blocks} exceeds the number of frames {n}."
            )
        self.X = X
        self.n_blocks = int(n_blocks)
        self.block_size = n // self.n_blocks

    def _slice(self, idx: int) -> slice:
        n = self.X.shape[0]
        return slice((idx * n) // self.n_blocks, ((idx + 1) * n) // self.n_blocks)

    def __getitem__(self, idx: int) -> ArrayLike2D:
        if not (-self.n_blocks <= idx < self.n_blocks):
            raise IndexError(f"block index {idx} out of range [0, {self.n_blocks})")
        return self.X[self._slice(idx % self.n_blocks)]

    def __iter__(self) -> Iterator[tuple[ArrayLike2D, slice]]:
        for i in range(self.n_blocks):
            sl = self._slice(i)
            yield self.X[sl], sl

    def __len__(self) -> int:
        return self.n_blocks

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(Data shape: {tuple(self.X.shape)}, "
            f"block_size: {self.block_size}, n_blocks: {len(self)})"
        )


def split_blocks(X: ArrayLike2D, n_blocks: int) -> list[ArrayLike2D]:
    """Return ``X`` split by rows into ``n_blocks`` blocks.

    With ``n_blocks <= 1`` the input is returned unsplit as a single block.
    """
    if n_blocks <= 1:
        return [X]
    return [blk for blk, _ in BlockLoader(X, n_blocks=n_blocks)]
