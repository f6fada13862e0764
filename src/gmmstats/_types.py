"""Type hints for GMM statistics arrays."""
from typing import Annotated, TypeAlias, Union

import numpy as np
import numpy.typing as npt
import torch

FeatureArray2D: TypeAlias = Annotated[npt.NDArray[np.floating], "(n_frames, n_features)"]
"""Alias for a 2D array of feature vectors with shape (n_frames, n_features)."""

FeatureTensor2D: TypeAlias = Annotated[torch.Tensor, "(n_frames, n_features)", 2]
"""Alias for a 2D Tensor of feature vectors with shape (n_frames, n_features)."""

FeatureBlock: TypeAlias = Union[FeatureArray2D, FeatureTensor2D]
"""Alias for a block of frames, either as a numpy array or as a Tensor."""

CovarianceTensor: TypeAlias = Annotated[
    torch.Tensor, "(n_components, n_features, n_features)", 3
]
"""Alias for a stack of full covariance (or second moment) matrices."""

PosteriorTensor: TypeAlias = Annotated[torch.Tensor, "(n_frames, n_components)", 2]
"""Alias for a 2D Tensor of per-frame, per-component values."""

SamplesVector: TypeAlias = Annotated[torch.Tensor, "(n_frames,)", 1]
"""Alias for a 1D Tensor with shape (n_frames,)."""
