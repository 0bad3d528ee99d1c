import dataclasses
import math

import numpy as np
import pytest

from infocausal.errors import ComputationError, ConfigurationError, ResampleFailure
from infocausal.estimators import KSG1, GaussianCMI, MesnerShalizi
from infocausal.independence import LocalPermutationTest, SurrogateTest, independence, pvalue
from infocausal.measures import CMIShannon, MIShannon


class _FailsAfter:
    """Returns 1.0 for the first ``ok_calls`` calls, then raises."""

    def __init__(self, ok_calls: int) -> None:
        self.ok_calls = ok_calls
        self.calls = 0

    def estimate(self, measure, x, y, z=None):
        self.calls += 1
        if self.calls > self.ok_calls:
            raise ComputationError("boom")
        return 1.0


def _dependent(n: int = 500, seed: int = 7):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=n)
    return x, x + 0.3 * rng.normal(size=n)


def test_pvalue_is_never_zero():
    assert pvalue(1.0, np.array([])) == 1.0
    assert pvalue(5.0, np.zeros(99)) == pytest.approx(0.01)
    assert pvalue(0.0, np.ones(9)) == 1.0


def test_surrogate_test_detects_dependence():
    x, y = _dependent()
    res = independence(SurrogateTest(MIShannon(), KSG1(), nshuffles=19, seed=1), x, y)
    assert res.pvalue == pytest.approx(1 / 20)
    assert res.is_dependent(0.1)
    assert res.surrogates.shape == (19,)
    assert set(res.to_dict()) == {"observed", "pvalue", "nshuffles", "surrogates"}


def test_zero_resamples_give_pvalue_one():
    x, y = _dependent(200)
    res = independence(SurrogateTest(MIShannon(), KSG1(), nshuffles=0), x, y)
    assert res.pvalue == 1.0
    assert not res.is_dependent(0.05)


def test_false_positive_rate_under_independence():
    rejections = 0
    for trial in range(20):
        rng = np.random.default_rng(100 + trial)
        x, y = rng.uniform(size=(2, 1000))
        test = SurrogateTest(MIShannon(), KSG1(k=3), nshuffles=49, seed=trial)
        if independence(test, x, y).is_dependent(0.05):
            rejections += 1
    assert rejections <= 5


def test_surrogate_kinds_run():
    x, y = _dependent(300)
    for kind in ("permutation", "shift", "phase"):
        res = independence(SurrogateTest(MIShannon(), GaussianCMI(), nshuffles=9, surrogate=kind, seed=2), x, y)
        assert 0.0 < res.pvalue <= 1.0


def test_seeded_tests_are_reproducible():
    x, y = _dependent(300)
    test = SurrogateTest(MIShannon(), KSG1(), nshuffles=9, seed=5)
    a = independence(test, x, y)
    b = independence(test, x, y)
    assert np.array_equal(a.surrogates, b.surrogates)


def test_local_permutation_detects_conditional_dependence():
    rng = np.random.default_rng(7)
    z, a, b = rng.normal(size=(3, 800))
    x = z + a
    y = x + 0.5 * b
    test = LocalPermutationTest(CMIShannon(), MesnerShalizi(k=4), nshuffles=19, kperm=5, seed=3)
    res = independence(test, x, y, z)
    assert res.pvalue == pytest.approx(1 / 20)


def test_local_permutation_requires_z():
    x, y = _dependent(100)
    with pytest.raises(ConfigurationError):
        independence(LocalPermutationTest(CMIShannon(), GaussianCMI(), nshuffles=3), x, y)


def test_resample_error_is_fatal():
    x, y = _dependent(100)
    test = SurrogateTest(MIShannon(), _FailsAfter(1), nshuffles=5, seed=1)
    with pytest.raises(ResampleFailure) as info:
        independence(test, x, y)
    assert isinstance(info.value.__cause__, ComputationError)


def test_tests_are_immutable_and_validated():
    test = SurrogateTest()
    with pytest.raises(dataclasses.FrozenInstanceError):
        test.nshuffles = 3
    with pytest.raises(ConfigurationError):
        SurrogateTest(nshuffles=-1)
    with pytest.raises(ConfigurationError):
        SurrogateTest(surrogate="bootstrap")
    with pytest.raises(ConfigurationError):
        LocalPermutationTest(kperm=0)


def test_estimate_in_measure_base():
    x, y = _dependent(300)
    bits = independence(SurrogateTest(MIShannon(base=2), GaussianCMI(), nshuffles=0), x, y).observed
    nats = independence(SurrogateTest(MIShannon(base=math.e), GaussianCMI(), nshuffles=0), x, y).observed
    assert bits == pytest.approx(nats / math.log(2.0))
