import numpy as np
import pytest

from infocausal.errors import ConfigurationError, DimensionMismatch
from infocausal.estimators import VejmelkaPalus
from infocausal.measures import CMIShannon, EmbeddingTE, TEShannon
from infocausal.transfer_entropy import te_embed, transfer_entropy


def _driven_pair(n: int = 2000, seed: int = 7):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=n)
    y = np.zeros(n)
    y[1:] = 0.8 * x[:-1] + 0.6 * rng.normal(size=n - 1)
    return x, y


def test_te_embed_alignment():
    s = np.arange(100.0)
    t = 1000.0 + np.arange(100.0)
    future, src, tgt, cond = te_embed(s, t, embedding=EmbeddingTE(d_target=2, d_source=3, tau=1, horizon=1))
    assert cond is None
    assert len(future) == len(src) == len(tgt) == 97
    assert future[0, 0] == 1003.0
    assert np.array_equal(src[0], [2.0, 1.0, 0.0])
    assert np.array_equal(tgt[0], [1002.0, 1001.0])


def test_te_embed_with_multivariate_condition():
    s = np.arange(50.0)
    c = np.column_stack([np.arange(50.0), -np.arange(50.0)])
    _, _, _, cond = te_embed(s, s, c, EmbeddingTE(d_cond=2))
    assert cond.dim == 4


def test_te_embed_rejects_bad_input():
    with pytest.raises(DimensionMismatch):
        te_embed(np.zeros((10, 2)), np.zeros(10))
    with pytest.raises(DimensionMismatch):
        te_embed(np.zeros(10), np.zeros(12))
    with pytest.raises(DimensionMismatch):
        te_embed(np.zeros(3), np.zeros(3), embedding=EmbeddingTE(d_target=3))


def test_transfer_entropy_direction():
    x, y = _driven_pair()
    est = VejmelkaPalus(k=4)
    forward = transfer_entropy(TEShannon(), est, x, y)
    backward = transfer_entropy(TEShannon(), est, y, x)
    assert forward > 0.3
    assert backward < 0.1


def test_conditional_transfer_entropy_is_finite():
    x, y = _driven_pair(500)
    c = np.random.default_rng(3).normal(size=500)
    assert np.isfinite(transfer_entropy(TEShannon(), VejmelkaPalus(), x, y, c))


def test_transfer_entropy_needs_te_measure():
    x, y = _driven_pair(100)
    with pytest.raises(ConfigurationError):
        transfer_entropy(CMIShannon(), VejmelkaPalus(), x, y)
