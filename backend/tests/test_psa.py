"""Tests for the PSA engine and run aggregation."""
import math

import pytest

from markov_cea.exceptions import InvalidDistributionParameters, InvalidProbability, UnknownParameter
from markov_cea.models.results import SimulationResult
from markov_cea.models.simulation import SimulationConfig, TransitionMethod
from markov_cea.simulation.formulas import depends_on
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.psa import PSADraw, PSAEngine, PSARun, wtp_grid
from markov_cea.simulation.samplers import Gamma, Normal
from markov_cea.simulation.strategy import State, Strategy
from markov_cea.simulation.transitions import TransitionMatrixSpec

_MEAN_COST = 4925.76


def _make_strategy(name="base", cost="c", p_death=0.0) -> Strategy:
    matrix = TransitionMatrixSpec(["alive", "dead"], [["C", p_death], [0, 1]])
    return Strategy(name, matrix, [
        State.define("alive", cost=cost, effect=1.0),
        State.define("dead"),
    ])


def _make_engine(cycles=1) -> PSAEngine:
    config = SimulationConfig(cycles=cycles, method=TransitionMethod.end)
    return PSAEngine(config, {"alive": 1.0})


def _gamma_engine() -> PSAEngine:
    return _make_engine().define({"c": Gamma(mean=_MEAN_COST, sd=math.sqrt(_MEAN_COST))})


def _result(name: str, cost: float, effect: float) -> SimulationResult:
    return SimulationResult(
        strategy=name,
        method=TransitionMethod.end,
        states=("alive",),
        counts=({"alive": 1.0},),
        values=(),
        total_cost=cost,
        total_effect=effect,
    )


def _handmade_run() -> PSARun:
    draws = [
        PSADraw(index=0, parameters={}, results={"A": _result("A", 0, 1), "B": _result("B", 100, 2)}),
        PSADraw(index=1, parameters={}, results={"A": _result("A", 0, 1), "B": _result("B", 100, 1.5)}),
    ]
    return PSARun(["A", "B"], draws, n_requested=2, seed=0)


# --- Engine ---


class TestPSAEngine:
    def test_gamma_cost_distribution(self):
        run = _gamma_engine().run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 200, seed=42)
        costs = run.costs("base")
        assert run.n_completed == 200
        assert (costs > 0).all()
        assert costs.mean() == pytest.approx(_MEAN_COST, rel=0.01)

    def test_same_seed_is_bit_reproducible(self):
        params = ParameterSet({"c": _MEAN_COST})
        first = _gamma_engine().run([_make_strategy()], params, 50, seed=11)
        second = _gamma_engine().run([_make_strategy()], params, 50, seed=11)
        assert first.costs("base").tolist() == second.costs("base").tolist()

    def test_different_seeds_differ(self):
        params = ParameterSet({"c": _MEAN_COST})
        first = _gamma_engine().run([_make_strategy()], params, 20, seed=1)
        second = _gamma_engine().run([_make_strategy()], params, 20, seed=2)
        assert first.costs("base").tolist() != second.costs("base").tolist()

    def test_results_independent_of_worker_count(self):
        params = ParameterSet({"c": _MEAN_COST})
        serial = _gamma_engine().run([_make_strategy()], params, 60, seed=5, max_workers=1)
        threaded = _gamma_engine().run([_make_strategy()], params, 60, seed=5, max_workers=4)
        assert [d.index for d in threaded.draws] == list(range(60))
        assert serial.costs("base").tolist() == threaded.costs("base").tolist()

    def test_strategies_share_each_draw(self):
        strategies = [_make_strategy("A", cost="c"), _make_strategy("B", cost="c + 10")]
        run = _gamma_engine().run(strategies, ParameterSet({"c": _MEAN_COST}), 30, seed=3)
        diffs = run.costs("B") - run.costs("A")
        assert diffs.tolist() == pytest.approx([10.0] * 30)

    def test_sampled_parameters_recorded(self):
        run = _gamma_engine().run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 5, seed=9)
        for draw in run.draws:
            assert draw.results["base"].total_cost == pytest.approx(draw.parameters["c"])

    def test_unseeded_run_records_seed(self):
        run = _gamma_engine().run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 3)
        assert isinstance(run.seed, int)
        again = _gamma_engine().run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 3, seed=run.seed)
        assert again.costs("base").tolist() == run.costs("base").tolist()

    def test_invalid_draw_aborts_when_fail_fast(self):
        engine = _make_engine().define({"p": Normal(mean=0.5, sd=2.0)})
        strategy = _make_strategy(cost=1.0, p_death="p")
        with pytest.raises(InvalidProbability):
            engine.run([strategy], ParameterSet({"p": 0.5}), 50, seed=1)

    def test_invalid_draws_recorded_without_fail_fast(self):
        engine = _make_engine().define({"p": Normal(mean=0.5, sd=2.0)})
        strategy = _make_strategy(cost=1.0, p_death="p")
        run = engine.run([strategy], ParameterSet({"p": 0.5}), 50, seed=1, fail_fast=False)
        assert run.n_failed > 0
        assert run.n_completed > 0
        assert run.n_completed + run.n_failed == 50
        assert len(run.costs("base")) == run.n_completed
        assert all(d.error for d in run.draws if d.failed)

    def test_math_error_in_draw_recorded_without_fail_fast(self):
        engine = _make_engine().define({"x": Normal(mean=0.5, sd=2.0)})
        strategy = _make_strategy(cost="sqrt(x) / 10")
        run = engine.run([strategy], ParameterSet({"x": 0.5}), 50, seed=1, fail_fast=False)
        assert run.n_failed > 0
        assert run.n_completed > 0
        assert run.n_completed + run.n_failed == 50
        assert all(d.parameters["x"] < 0 for d in run.draws if d.failed)

    def test_stop_discards_remaining_draws(self):
        engine = _make_engine()
        calls = []

        @depends_on()
        def cost(values):
            calls.append(1)
            if len(calls) == 3:
                engine.stop()
            return 1.0

        run = engine.run([_make_strategy(cost=cost)], ParameterSet(), 10, seed=0)
        assert run.stopped
        assert run.n_completed == 3
        assert [d.index for d in run.draws] == [0, 1, 2]

    def test_next_run_clears_stop(self):
        engine = _gamma_engine()
        engine.stop()
        run = engine.run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 4, seed=0)
        assert not run.stopped
        assert run.n_completed == 4

    def test_define_rejects_bad_distribution(self):
        engine = _make_engine()
        with pytest.raises(InvalidDistributionParameters):
            engine.define({"c": {"family": "gamma", "mean": -1.0, "sd": 1.0}})
        with pytest.raises(InvalidDistributionParameters, match="no family"):
            engine.define({"c": {"mean": 1.0}})
        with pytest.raises(InvalidDistributionParameters):
            engine.define({"c": 3.0})

    def test_define_from_mapping(self):
        engine = _make_engine().define({"c": {"family": "lognormal", "mean": 10.0, "sd": 1.0}})
        assert engine.distributions["c"].mean == 10.0

    def test_sampled_name_must_be_a_parameter(self):
        engine = _make_engine().define({"missing": Gamma(mean=1.0, sd=1.0)})
        with pytest.raises(UnknownParameter):
            engine.run([_make_strategy(cost=1.0)], ParameterSet(), 5, seed=0)

    def test_invalid_run_arguments(self):
        engine = _gamma_engine()
        params = ParameterSet({"c": _MEAN_COST})
        with pytest.raises(ValueError):
            engine.run([_make_strategy()], params, 0, seed=1)
        with pytest.raises(ValueError):
            engine.run([_make_strategy()], params, 5, seed=-1)
        with pytest.raises(ValueError):
            engine.run([], params, 5, seed=1)


# --- Aggregation ---


class TestPSARun:
    def test_icer_uses_mean_increments(self):
        assert _handmade_run().icer("B", "A") == pytest.approx(100 / 0.75)

    def test_icer_none_for_equal_effects(self):
        draws = [PSADraw(index=0, parameters={}, results={"A": _result("A", 0, 1), "B": _result("B", 5, 1)})]
        assert PSARun(["A", "B"], draws, 1, 0).icer("B", "A") is None

    def test_icer_none_for_near_equal_effects(self):
        draws = [PSADraw(index=0, parameters={}, results={
            "A": _result("A", 0, 1.0), "B": _result("B", 5, 1.0 + 1e-15),
        })]
        assert PSARun(["A", "B"], draws, 1, 0).icer("B", "A") is None

    def test_acceptability_curve(self):
        points = _handmade_run().acceptability_curve([0, 150, 1000])
        shares = {(p.wtp, p.strategy): p.probability for p in points}
        assert shares[(0.0, "A")] == 1.0
        assert shares[(150.0, "A")] == 0.5
        assert shares[(150.0, "B")] == 0.5
        assert shares[(1000.0, "B")] == 1.0

    def test_acceptability_sums_to_one(self):
        points = _handmade_run().acceptability_curve([50, 120, 300])
        for wtp in (50.0, 120.0, 300.0):
            assert sum(p.probability for p in points if p.wtp == wtp) == pytest.approx(1.0)

    def test_evpi(self):
        evpi = {p.wtp: p.evpi for p in _handmade_run().evpi([0, 150, 1000])}
        assert evpi[0.0] == 0.0
        assert evpi[150.0] == pytest.approx(12.5)
        assert evpi[1000.0] == 0.0

    def test_summary(self):
        summary = {s.strategy: s for s in _handmade_run().summary()}
        assert summary["B"].mean_cost == 100.0
        assert summary["B"].sd_cost == 0.0
        assert summary["B"].mean_effect == pytest.approx(1.75)
        assert summary["B"].effect_percentiles["p50"] == pytest.approx(1.75)

    def test_failed_draws_excluded(self):
        draws = [
            PSADraw(index=0, parameters={}, results={"A": _result("A", 10, 1)}),
            PSADraw(index=1, parameters={}, error="bad draw"),
        ]
        run = PSARun(["A"], draws, 2, 0)
        assert run.n_completed == 1
        assert run.n_failed == 1
        assert run.pairs("A") == [(10.0, 1.0)]

    def test_draws_sorted_by_index(self):
        draws = [
            PSADraw(index=1, parameters={}, results={"A": _result("A", 2, 1)}),
            PSADraw(index=0, parameters={}, results={"A": _result("A", 1, 1)}),
        ]
        assert PSARun(["A"], draws, 2, 0).costs("A").tolist() == [1.0, 2.0]

    def test_unknown_strategy(self):
        with pytest.raises(KeyError):
            _handmade_run().costs("C")

    def test_to_frame(self):
        run = _gamma_engine().run([_make_strategy()], ParameterSet({"c": _MEAN_COST}), 4, seed=2)
        frame = run.to_frame()
        assert list(frame.columns) == ["draw", "strategy", "cost", "effect", "c"]
        assert len(frame) == 4


def test_wtp_grid_linear():
    assert wtp_grid(0, 100, 3) == [0.0, 50.0, 100.0]


def test_wtp_grid_log():
    assert wtp_grid(1, 100, 3, scale="log") == pytest.approx([1.0, 10.0, 100.0])


def test_wtp_grid_invalid():
    with pytest.raises(ValueError):
        wtp_grid(0, 100, 3, scale="log")
    with pytest.raises(ValueError):
        wtp_grid(0, 100, 3, scale="cubic")
    with pytest.raises(ValueError):
        wtp_grid(0, 100, 0)
