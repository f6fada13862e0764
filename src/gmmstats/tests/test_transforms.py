import pytest
import torch
from numpy.testing import assert_allclose

from gmmstats import UnsupportedKind, compute_statistics
from gmmstats.linalg import compute_posteriors
from gmmstats.transforms import to_centered, to_centered_scaled


@pytest.mark.parametrize("kind", ["diag", "full"])
def test_centered_matches_direct(diag_model, full_model, frames, kind):
    """Centering accumulated statistics equals accumulating centered frames."""
    model = diag_model if kind == "diag" else full_model
    X = torch.as_tensor(frames)
    raw = compute_statistics(model, X, 2)
    centered = to_centered(model, raw)

    gamma, _ = compute_posteriors(model=model, X=X)
    # (n_frames, n_components, n_features)
    diff = X[:, None, :] - model.means[None, :, :]
    want_F = torch.einsum("ik,ikj->kj", gamma, diff)
    if kind == "diag":
        want_S = torch.einsum("ik,ikj->kj", gamma, diff * diff)
    else:
        want_S = torch.einsum("ik,ikj,ikl->kjl", gamma, diff, diff)

    assert_allclose(centered.N, raw.N)
    assert_allclose(centered.F, want_F, rtol=1e-8, atol=1e-8)
    assert_allclose(centered.S, want_S, rtol=1e-8, atol=1e-8)


def test_centered_first_order_exact(diag_model, frames):
    raw = compute_statistics(diag_model, frames, 2)
    centered = to_centered(diag_model, raw)
    assert torch.equal(centered.F, raw.F - raw.N[:, None] * diag_model.means)


def test_centered_scaled(diag_model, frames):
    raw = compute_statistics(diag_model, frames, 2)
    centered = to_centered(diag_model, raw)
    scaled = to_centered_scaled(diag_model, raw)
    assert_allclose(scaled.N, raw.N)
    assert_allclose(scaled.f, centered.F / diag_model.covariances)
    assert_allclose(scaled.s, centered.S / diag_model.covariances)

    first = to_centered_scaled(diag_model, compute_statistics(diag_model, frames, 1))
    assert first.s is None
    assert_allclose(first.f, scaled.f)
    assert set(first.to_numpy()) == {"N", "f", "s"}


def test_centered_scaled_needs_diagonal(full_model, frames):
    raw = compute_statistics(full_model, frames, 2)
    with pytest.raises(UnsupportedKind, match="diagonal"):
        to_centered_scaled(full_model, raw)


def test_centered_needs_second_order(diag_model, frames):
    raw = compute_statistics(diag_model, frames, 1)
    with pytest.raises(ValueError, match="order=2"):
        to_centered(diag_model, raw)


def test_shape_mismatch(diag_model, full_model, frames):
    from gmmstats import GaussianMixtureModel

    other = GaussianMixtureModel(
        weights=[1.0], means=[[0.0, 0.0, 0.0]], covariances=[[1.0, 1.0, 1.0]]
    )
    raw = compute_statistics(other, frames, 2)
    with pytest.raises(ValueError, match="do not match"):
        to_centered(diag_model, raw)
