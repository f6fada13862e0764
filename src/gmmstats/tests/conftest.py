import numpy as np
import pytest
import torch

from gmmstats import GaussianMixtureModel
from gmmstats.utils import generate_gmm_data, logger

torch.set_default_dtype(torch.float64)

WEIGHTS = [0.1, 0.2, 0.3, 0.4]
MEANS = [[-2.0, 0.0, 1.0], [2.0, 1.0, -1.0], [0.0, -2.0, 0.0], [1.0, 1.0, 1.0]]
VARIANCES = [[1.0, 0.5, 2.0], [0.8, 1.2, 1.0], [1.5, 1.0, 0.7], [0.6, 0.9, 1.1]]


@pytest.fixture(scope="session")
def diag_model():
    return GaussianMixtureModel(
        weights=WEIGHTS, means=MEANS, covariances=VARIANCES, kind="diag"
    )


@pytest.fixture(scope="session")
def full_model():
    rng = np.random.default_rng(42)
    A = rng.standard_normal((4, 3, 3))
    cov = A @ A.transpose(0, 2, 1) + 0.5 * np.eye(3)
    return GaussianMixtureModel(weights=WEIGHTS, means=MEANS, covariances=cov, kind="full")


@pytest.fixture(scope="session")
def frames(diag_model):
    return generate_gmm_data(diag_model, n_samples=1000, seed=0)


@pytest.fixture
def log_messages():
    """Collect the messages logged while the test runs."""
    messages = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)
