"""Collections of feature matrices that are reduced one element at a time."""
from collections.abc import Sequence
from os import PathLike
from pathlib import Path

import numpy as np
import torch


def is_dataset(data) -> bool:
    """Return True if ``data`` is a collection of matrices rather than one matrix."""
    if isinstance(data, (np.ndarray, torch.Tensor)):
        return False
    if not (hasattr(data, "__len__") and hasattr(data, "__getitem__")):
        return False
    # A nested list of numbers is one matrix, a list of matrices is a dataset
    return len(data) == 0 or np.ndim(data[0]) == 2


class NpyDataset(Sequence):
    """Lazy dataset of feature matrices stored as ``.npy`` files.

    Nothing is read until an element is accessed, so datasets larger than memory
    can be reduced element by element.

    Parameters
    ----------
    paths : sequence of path-like
        One ``.npy`` file per element, each holding an array of shape
        (n_frames, n_features).
    mmap : bool, default=True
        If True, elements are memory-mapped read-only instead of loaded.
    """

    def __init__(self, paths: Sequence[str | PathLike], mmap: bool = True):
        self.paths = [Path(p) for p in paths]
        self.mmap = mmap

    def __getitem__(self, idx: int) -> np.ndarray:
        return np.load(self.paths[idx], mmap_mode="r" if self.mmap else None)

    def __len__(self) -> int:
        return len(self.paths)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_elements: {len(self)}, mmap: {self.mmap})"
