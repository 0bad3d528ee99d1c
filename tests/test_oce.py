import numpy as np
import pandas as pd
import pytest

from infocausal.errors import ComputationError, ConfigurationError, OCECancelled, ResampleFailure
from infocausal.estimators import KSG2, GaussianCMI, MesnerShalizi
from infocausal.independence import LocalPermutationTest, SurrogateTest
from infocausal.measures import CMIShannon, MIShannon
from infocausal.observers import RecordingObserver
from infocausal.oce import (
    OCE,
    LaggedVariable,
    OCEResult,
    OCESelectedParents,
    ParentSet,
    candidate_pool,
    infer_graph,
    load_json,
    save_json,
    select_parents,
)


def _make_chain(n: int = 1000, seed: int = 7) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    x = rng.normal(size=n)
    y = np.zeros(n)
    z = np.zeros(n)
    y[1:] = x[:-1] + 0.5 * rng.normal(size=n - 1)
    z[1:] = y[:-1] + 0.5 * rng.normal(size=n - 1)
    return pd.DataFrame({"x": x, "y": y, "z": z})


def _gaussian_oce(alpha: float = 0.05, tau_max: int = 1) -> OCE:
    return OCE(
        utest=SurrogateTest(MIShannon(), GaussianCMI(), nshuffles=99, seed=1),
        ctest=LocalPermutationTest(CMIShannon(), GaussianCMI(), nshuffles=99, kperm=5, seed=2),
        tau_max=tau_max,
        alpha=alpha,
    )


class _FailsAfter:
    def __init__(self, ok_calls: int) -> None:
        self.ok_calls = ok_calls
        self.calls = 0

    def estimate(self, measure, x, y, z=None):
        self.calls += 1
        if self.calls > self.ok_calls:
            raise ComputationError("boom")
        return 1.0


def test_default_configuration():
    alg = OCE()
    assert alg.tau_max == 1 and alg.alpha == 0.05
    assert alg.utest.est == KSG2(k=3, w=3)
    assert alg.ctest.est == MesnerShalizi(k=3, w=3)
    with pytest.raises(ConfigurationError):
        OCE(tau_max=0)
    with pytest.raises(ConfigurationError):
        OCE(alpha=1.0)


def test_candidate_pool_order_and_alignment():
    v = [np.arange(10.0), 100.0 + np.arange(10.0)]
    pool = candidate_pool(v, 2)
    assert [p for p, _ in pool] == [LaggedVariable(0, 1), LaggedVariable(0, 2), LaggedVariable(1, 1), LaggedVariable(1, 2)]
    # Target x_i(0) = x_i[2:]; x_0(-1) at t=2 is x_0[1].
    assert pool[0][1][0] == 1.0
    assert pool[1][1][0] == 0.0
    assert all(len(s) == 8 for _, s in pool)


def test_accumulator_freeze_and_conditioning():
    acc = OCESelectedParents(2)
    assert acc.conditioning() is None
    acc.add(LaggedVariable(0, 1), np.zeros(5))
    acc.add(LaggedVariable(1, 1), np.ones(5))
    assert acc.conditioning().dim == 2
    assert acc.conditioning(exclude=0).dim == 1
    frozen = acc.freeze()
    assert frozen == ParentSet(2, (LaggedVariable(0, 1), LaggedVariable(1, 1)))
    acc.remove(0)
    assert len(frozen) == 2 and len(acc) == 1


def test_chain_recovered_with_knn_estimators():
    df = _make_chain()
    alg = OCE(
        utest=SurrogateTest(MIShannon(), KSG2(k=4), nshuffles=199, seed=1),
        ctest=LocalPermutationTest(CMIShannon(), MesnerShalizi(k=4), nshuffles=199, seed=2),
        tau_max=1,
        alpha=0.01,
    )
    result = infer_graph(alg, df)
    parents = result.parent_labels()
    assert "x(-1)" in parents["y"]
    assert "y(-1)" in parents["z"]
    assert "x(-1)" not in parents["z"]
    assert (0, 2) not in {(s, t) for s, t, _ in result.edges()}


def test_selected_candidates_passed_their_test():
    obs = RecordingObserver()
    alg = _gaussian_oce(tau_max=2)
    infer_graph(alg, _make_chain(500), observer=obs)
    selected = [p for e, p in obs.events if e == "candidate_selected"]
    assert selected
    assert all(p["pvalue"] < alg.alpha for p in selected)
    assert all(p["pvalue"] >= alg.alpha for e, p in obs.events if e == "parent_eliminated")


def test_results_do_not_depend_on_n_jobs():
    df = _make_chain(400)
    alg = _gaussian_oce(tau_max=2)
    serial = infer_graph(alg, df, n_jobs=1, seed=11)
    threaded = infer_graph(alg, df, n_jobs=3, seed=11)
    assert serial.to_dict() == threaded.to_dict()


def test_raw_measure_failure_skips_candidate_only():
    df = _make_chain(400)
    df["flat"] = 1.0
    result = infer_graph(_gaussian_oce(), df)
    labels = result.parent_labels()
    assert labels["flat"] == []
    assert "x(-1)" in labels["y"]
    assert all(p.index != 3 for ps in result.parents for p in ps.parents)


def test_significance_failure_propagates():
    rng = np.random.default_rng(7)
    alg = OCE(utest=SurrogateTest(MIShannon(), _FailsAfter(2), nshuffles=5, seed=1), tau_max=1)
    with pytest.raises(ResampleFailure):
        select_parents(alg, [rng.normal(size=100)], 0)


def test_cancellation():
    with pytest.raises(OCECancelled):
        infer_graph(_gaussian_oce(), _make_chain(200), should_stop=lambda: True)


def test_result_graph_views_and_json_round_trip(tmp_path):
    result = OCEResult(
        parents=(
            ParentSet(0, (LaggedVariable(0, 1),)),
            ParentSet(1, (LaggedVariable(0, 1), LaggedVariable(2, 2))),
            ParentSet(2, ()),
        ),
        names=("a", "b", "c"),
    )
    assert result.edges() == [(0, 1, 1), (2, 1, 2)]
    assert result.adjacency() == {0: [1], 1: [], 2: [1]}
    assert result.adjacency_matrix().tolist() == [[0, 1, 0], [0, 0, 0], [0, 1, 0]]
    frame = result.to_frame()
    assert list(frame.columns) == ["source", "target", "lag", "source_name", "target_name"]
    assert frame["source_name"].tolist() == ["a", "c"]

    out = tmp_path / "graph.json"
    save_json(result, out)
    assert load_json(out) == result
    assert OCEResult.from_dict(result.to_dict()) == result


def test_select_parents_rejects_bad_target():
    with pytest.raises(ConfigurationError):
        select_parents(_gaussian_oce(), _make_chain(100), 5)


class _ScriptedEstimator:
    """Scores candidates by which lagged variable they are.

    Shuffled targets and permuted candidates score 0, so a positive score on
    the real data is always significant. ``weak`` scores 0 once it is
    conditioned on ``weak_after`` other variables.
    """

    def __init__(self, target, scores, weak=None, weak_after=2):
        self.target = np.asarray(target, dtype=float)
        self.scores = [(np.asarray(s, dtype=float), v) for s, v in scores]
        self.weak = weak
        self.weak_after = weak_after

    def estimate(self, measure, x, y, z=None):
        if not np.array_equal(x.to_numpy()[:, 0], self.target):
            return 0.0
        for k, (sample, value) in enumerate(self.scores):
            if np.array_equal(y.to_numpy()[:, 0], sample):
                if k == self.weak and z is not None and z.dim >= self.weak_after:
                    return 0.0
                return value
        return 0.0


def _scripted_oce(est) -> OCE:
    return OCE(
        utest=SurrogateTest(MIShannon(), est, nshuffles=39, seed=1),
        ctest=LocalPermutationTest(CMIShannon(), est, nshuffles=39, kperm=3, seed=2),
        tau_max=1,
        alpha=0.05,
    )


def test_backward_elimination_removes_redundant_parent():
    df = _make_chain(200)
    variables = [df[c].to_numpy(dtype=float) for c in df.columns]
    pool = candidate_pool(variables, 1)
    target = variables[0][1:]
    # Selected in order x(-1), y(-1), z(-1); x(-1) loses its score given both others.
    est = _ScriptedEstimator(target, [(pool[0][1], 3.0), (pool[1][1], 2.0), (pool[2][1], 1.0)], weak=0)
    obs = RecordingObserver()
    parents = select_parents(_scripted_oce(est), df, 0, observer=obs)

    assert parents == ParentSet(0, (LaggedVariable(1, 1), LaggedVariable(2, 1)))
    names = obs.names()
    assert names.count("candidate_selected") == 3
    assert names[names.index("no_candidate") + 1 :] == ["parent_eliminated", "parent_kept", "parent_kept"]
    eliminated = dict(obs.events)["parent_eliminated"]
    assert (eliminated["source"], eliminated["lag"]) == (0, 1)
    assert eliminated["pvalue"] >= 0.05


def test_backward_elimination_keeps_parents_that_stay_significant():
    df = _make_chain(200)
    variables = [df[c].to_numpy(dtype=float) for c in df.columns]
    pool = candidate_pool(variables, 1)
    est = _ScriptedEstimator(variables[0][1:], [(pool[0][1], 3.0), (pool[1][1], 2.0), (pool[2][1], 1.0)])
    obs = RecordingObserver()
    parents = select_parents(_scripted_oce(est), df, 0, observer=obs)

    assert len(parents) == 3
    assert "parent_eliminated" not in obs.names()
    assert obs.names().count("parent_kept") == 3


def test_ties_are_broken_by_pool_order():
    df = _make_chain(200)
    variables = [df[c].to_numpy(dtype=float) for c in df.columns]
    pool = candidate_pool(variables, 2)
    # Every candidate scores the same on the real data.
    est = _ScriptedEstimator(variables[1][2:], [(s, 1.0) for _, s in pool])
    alg = OCE(
        utest=SurrogateTest(MIShannon(), est, nshuffles=39, seed=1),
        ctest=LocalPermutationTest(CMIShannon(), est, nshuffles=39, kperm=3, seed=2),
        tau_max=2,
        alpha=0.05,
    )
    obs = RecordingObserver()
    select_parents(alg, df, 1, observer=obs)

    first = next(p for e, p in obs.events if e == "candidate_selected")
    assert (first["source"], first["lag"]) == (0, 1)
    selected = [(p["source"], p["lag"]) for e, p in obs.events if e == "candidate_selected"]
    assert selected == [(v.index, v.lag) for v, _ in pool]
