"""
Test the random-extinction robustness simulation.
"""
import logging
import sys
import tracemalloc
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.analysis.robustness import (
    _removal_steps_incremental,
    _removal_steps_vectorized,
    sample_robustness,
    simulate_webs,
    single_trial,
    summarize_robustness,
)
from src.utils.errors import InvalidInput, SimulationCancelled
from src.webs.binary_matrix import BinaryMatrix


@pytest.fixture
def chain_web():
    """Two traits sharing the middle species: t0={0,1}, t1={1,2}."""
    return BinaryMatrix(np.array([[1, 1, 0], [0, 1, 1]]))


@pytest.fixture
def random_web():
    rng = np.random.default_rng(3)
    m = (rng.random((9, 25)) < 0.3).astype(int)
    m[0, :] = 1
    return BinaryMatrix(m)


class TestRemovalSteps:
    """Tests for the two trial engines on fixed orders."""

    def test_incremental_chain(self, chain_web):
        # removing species 1 first leaves both traits alive
        assert _removal_steps_incremental(chain_web.values, np.array([1, 0, 2])) == 2
        assert _removal_steps_incremental(chain_web.values, np.array([0, 2, 1])) == 3

    def test_vectorized_matches_incremental_on_all_orders(self, chain_web):
        orders = np.array([[0, 1, 2], [0, 2, 1], [1, 0, 2], [1, 2, 0], [2, 0, 1], [2, 1, 0]])
        expected = [_removal_steps_incremental(chain_web.values, o) for o in orders]
        assert _removal_steps_vectorized(chain_web.values, orders).tolist() == expected

    def test_empty_trait_stops_immediately(self):
        values = np.array([[1, 1], [0, 0]], dtype=np.int8)
        assert _removal_steps_incremental(values, np.array([0, 1])) == 0
        assert _removal_steps_vectorized(values, np.array([[0, 1]])).tolist() == [0]


class TestSampleRobustness:
    """Tests for sample_robustness."""

    def test_all_ones_survives_until_last_species(self):
        m = BinaryMatrix(np.ones((3, 4), dtype=int))
        for method in ("vectorized", "incremental"):
            samples = sample_robustness(m, 50, seed=0, method=method)
            assert np.all(samples == 1.0)

    def test_diagonal_loses_trait_on_first_removal(self):
        samples = sample_robustness(BinaryMatrix(np.eye(3, dtype=int)), 100, seed=0)
        assert np.allclose(samples, 1 / 3)

    def test_values_in_unit_interval(self, random_web):
        samples = sample_robustness(random_web, 500, seed=1)
        assert samples.shape == (500,)
        assert samples.min() >= 0.0
        assert samples.max() <= 1.0

    def test_single_link_trait_takes_grid_values(self):
        samples = sample_robustness(BinaryMatrix(np.array([[0, 0, 1, 0]])), 200, seed=2)
        assert set(np.unique(samples)) <= {0.25, 0.5, 0.75, 1.0}

    def test_mean_converges_to_exact_expectation(self, chain_web):
        # enumerating the 6 orders gives E[nn] = 14/6, so E[R] = 14/18
        samples = sample_robustness(chain_web, 20000, seed=5)
        assert samples.mean() == pytest.approx(14 / 18, abs=0.01)

    def test_same_seed_same_sequence(self, random_web):
        a = sample_robustness(random_web, 300, seed=42)
        b = sample_robustness(random_web, 300, seed=42)
        assert np.array_equal(a, b)

    def test_injected_generator(self, random_web):
        a = sample_robustness(random_web, 100, rng=np.random.default_rng(9))
        b = sample_robustness(random_web, 100, rng=np.random.default_rng(9))
        assert np.array_equal(a, b)

    def test_engines_agree_for_same_seed(self, random_web):
        fast = sample_robustness(random_web, 300, seed=8, method="vectorized", batch_size=64)
        slow = sample_robustness(random_web, 300, seed=8, method="incremental")
        assert np.array_equal(fast, slow)

    def test_batch_size_does_not_change_samples(self, random_web):
        a = sample_robustness(random_web, 300, seed=8, batch_size=300)
        b = sample_robustness(random_web, 300, seed=8, batch_size=7)
        assert np.array_equal(a, b)

    def test_single_trial_consistent_with_sampler(self, random_web):
        value = single_trial(random_web, np.random.default_rng(4))
        first = sample_robustness(random_web, 1, rng=np.random.default_rng(4))[0]
        assert value == first

    def test_invalid_inputs(self, random_web):
        with pytest.raises(InvalidInput):
            sample_robustness(random_web, 0)
        with pytest.raises(InvalidInput):
            sample_robustness(np.array([[0, 2]]), 10)
        with pytest.raises(ValueError):
            sample_robustness(random_web, 10, method="bogus")


class TestMemoryBudget:
    """The vectorized engine keeps its working array under the memory budget."""

    @pytest.fixture
    def large_web(self):
        rng = np.random.default_rng(1)
        m = (rng.random((500, 800)) < 0.05).astype(int)
        # every trait keeps at least one species
        m[np.arange(500), rng.integers(0, 800, size=500)] = 1
        return BinaryMatrix(m)

    def test_small_budget_gives_same_samples(self, large_web):
        full = sample_robustness(large_web, 64, seed=1)
        one_at_a_time = sample_robustness(large_web, 64, seed=1, memory_budget=1)
        assert np.array_equal(full, one_at_a_time)

    def test_peak_memory_bounded_on_large_web(self, large_web):
        tracemalloc.start()
        try:
            samples = sample_robustness(large_web, 256, seed=1, memory_budget=16 * 2**20)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert samples.shape == (256,)
        assert peak < 64 * 2**20


def test_summarize_robustness():
    summary = summarize_robustness(np.array([0.0, 0.25, 0.5, 0.75, 1.0]), (0.25, 0.5, 0.75))

    assert summary["robustness_mean"] == pytest.approx(0.5)
    assert summary["robustness_0.25"] == pytest.approx(0.25)
    assert summary["robustness_0.5"] == pytest.approx(0.5)
    assert summary["robustness_0.75"] == pytest.approx(0.75)


class TestSimulateWebs:
    """Tests for the catalog-level simulation stage."""

    def test_independent_of_worker_count(self, chain_web, random_web):
        matrices = {"a": chain_web, "b": random_web, "c": BinaryMatrix(np.eye(4, dtype=int))}

        serial, errors_serial = simulate_webs(matrices, 100, base_seed=7, n_workers=1)
        parallel, errors_parallel = simulate_webs(matrices, 100, base_seed=7, n_workers=2)

        assert errors_serial == errors_parallel == {}
        assert list(serial) == ["a", "b", "c"]
        for key in matrices:
            assert np.array_equal(serial[key], parallel[key])

    def test_failure_is_reported_per_network(self, chain_web):
        matrices = {"good": chain_web, "bad": np.array([[0, 3]])}
        samples, errors = simulate_webs(matrices, 20, base_seed=1)

        assert list(samples) == ["good"]
        assert "bad" in errors
        assert "InvalidInput" in errors["bad"]

    def test_cancellation_between_networks(self, chain_web):
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) > 1

        with pytest.raises(SimulationCancelled):
            simulate_webs({"a": chain_web, "b": chain_web}, 10, base_seed=1, should_stop=should_stop)

    def test_cancellation_terminates_pool(self, chain_web, random_web):
        matrices = {f"w{k}": random_web if k % 2 else chain_web for k in range(6)}
        calls = []

        def should_stop():
            calls.append(1)
            return True

        with pytest.raises(SimulationCancelled, match="Cancelled after 1/6"):
            simulate_webs(matrices, 50, base_seed=3, n_workers=2, should_stop=should_stop)
        assert len(calls) == 1
