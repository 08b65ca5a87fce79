"""Tests for the cohort simulator: propagation, methods, discounting, errors."""
import pytest

from markov_cea.exceptions import InvalidInitialPopulation, StateNotInMatrix, UnknownParameter
from markov_cea.models.simulation import SimulationConfig, TransitionMethod
from markov_cea.simulation.cohort import simulate
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.strategy import State, Strategy
from markov_cea.simulation.transitions import TransitionMatrixSpec


def _make_two_state(p_death=0.1, cost_alive=100.0, effect_alive=1.0) -> Strategy:
    matrix = TransitionMatrixSpec(["alive", "dead"], [["C", p_death], [0, 1]])
    return Strategy("base", matrix, [
        State.define("alive", cost=cost_alive, effect=effect_alive),
        State.define("dead"),
    ])


def _config(**overrides) -> SimulationConfig:
    defaults = dict(cycles=3, discount_rate=0.0, method=TransitionMethod.end)
    defaults.update(overrides)
    return SimulationConfig(**defaults)


# --- Propagation ---


def test_two_state_counts():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000, "dead": 0}, _config())
    expected = [
        {"alive": 1000.0, "dead": 0.0},
        {"alive": 900.0, "dead": 100.0},
        {"alive": 810.0, "dead": 190.0},
        {"alive": 729.0, "dead": 271.0},
    ]
    assert len(result.counts) == 4
    for got, want in zip(result.counts, expected):
        assert got == pytest.approx(want)


def test_values_per_cycle_end_method():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, _config(cycles=2))
    assert [v.cycle for v in result.values] == [0, 1]
    assert result.values[0].cost == pytest.approx(100_000.0)
    assert result.values[1].cost == pytest.approx(90_000.0)
    assert result.total_cost == pytest.approx(190_000.0)
    assert result.total_effect == pytest.approx(1900.0)


def test_values_per_cycle_beginning_method():
    config = _config(cycles=2, method=TransitionMethod.beginning)
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, config)
    assert result.values[0].cost == pytest.approx(90_000.0)
    assert result.values[1].cost == pytest.approx(81_000.0)
    assert result.method == TransitionMethod.beginning


def test_end_method_discounting_starts_at_cycle_one():
    config = _config(cycles=2, discount_rate=0.05)
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, config)
    assert result.values[0].cost == pytest.approx(100_000.0)
    assert result.values[1].cost == pytest.approx(90_000.0 / 1.05)


def test_beginning_method_discounts_from_first_cycle():
    config = _config(cycles=2, discount_rate=0.05, method=TransitionMethod.beginning)
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, config)
    assert result.values[0].cost == pytest.approx(90_000.0 / 1.05)
    assert result.values[1].cost == pytest.approx(81_000.0 / 1.05 ** 2)


def test_separate_effect_discount_rate():
    config = _config(cycles=2, discount_rate=0.05, effect_discount_rate=0.0)
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, config)
    assert result.values[1].effect == pytest.approx(900.0)
    assert result.values[1].cost == pytest.approx(90_000.0 / 1.05)


def test_parameterized_state_values():
    params = ParameterSet({"c_drug": 250, "qol": 0.8, "cost_alive": "c_drug if cycle < 1 else 0"})
    strategy = _make_two_state(cost_alive="cost_alive", effect_alive="qol")
    result = simulate(strategy, params, {"alive": 10}, _config(cycles=2))
    assert result.values[0].cost == pytest.approx(2500.0)
    assert result.values[1].cost == 0.0
    assert result.values[1].effect == pytest.approx(9 * 0.8)


def test_missing_initial_states_default_to_zero():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 50}, _config(cycles=1))
    assert result.counts[0] == {"alive": 50.0, "dead": 0.0}


def test_run_does_not_require_absorption():
    result = simulate(_make_two_state(p_death=0.0), ParameterSet(), {"alive": 10}, _config(cycles=5))
    assert result.counts[-1]["alive"] == 10.0


# --- Errors ---


def test_negative_initial_population_rejected():
    with pytest.raises(InvalidInitialPopulation, match="alive"):
        simulate(_make_two_state(), ParameterSet(), {"alive": -1, "dead": 0}, _config())


def test_initial_population_unknown_state():
    with pytest.raises(StateNotInMatrix, match="zombie"):
        simulate(_make_two_state(), ParameterSet(), {"alive": 1, "zombie": 2}, _config())


def test_state_without_matrix_row_rejected():
    matrix = TransitionMatrixSpec(["alive", "dead"], [["C", 0.1], [0, 1]])
    with pytest.raises(StateNotInMatrix, match="sick"):
        Strategy("bad", matrix, [State.define("alive"), State.define("dead"), State.define("sick")])


def test_matrix_state_without_definition_rejected():
    matrix = TransitionMatrixSpec(["alive", "dead"], [["C", 0.1], [0, 1]])
    with pytest.raises(StateNotInMatrix, match="dead"):
        Strategy("bad", matrix, [State.define("alive")])


def test_undefined_parameter_fails_before_first_cycle():
    strategy = _make_two_state(p_death="p_missing")
    with pytest.raises(UnknownParameter, match="p_missing"):
        simulate(strategy, ParameterSet(), {"alive": 1}, _config())


# --- Result object ---


def test_result_is_immutable():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, _config())
    with pytest.raises(Exception):
        result.total_cost = 0.0
    with pytest.raises(TypeError):
        result.counts[0]["alive"] = -5.0
    assert result.counts[0]["alive"] == 1000.0


def test_result_counts_serialize_as_plain_dicts():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, _config(cycles=1))
    dumped = result.model_dump()
    assert dumped["counts"] == [{"alive": 1000.0, "dead": 0.0}, {"alive": 900.0, "dead": 100.0}]
    assert type(dumped["counts"][0]) is dict


def test_counts_frame_tagged_with_run_id():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, _config())
    frame = result.counts_frame("pop-1")
    assert list(frame.columns) == ["run_id", "strategy", "cycle", "alive", "dead"]
    assert len(frame) == 4
    assert (frame["run_id"] == "pop-1").all()
    assert frame["dead"].iloc[3] == pytest.approx(271.0)


def test_values_frame():
    result = simulate(_make_two_state(), ParameterSet(), {"alive": 1000}, _config())
    frame = result.values_frame()
    assert list(frame.columns) == ["strategy", "cycle", "cost", "effect"]
    assert frame["cost"].sum() == pytest.approx(result.total_cost)
