"""
Tests for the Null-Model Simulator and Significance Estimation
"""

import numpy as np
import pandas as pd
import pytest

from outbreak_scan.models import StoreMode
from outbreak_scan.scorers import ExpectationPoissonModel, NegativeBinomialModel
from outbreak_scan.significance import fit_gumbel, gumbel_pvalue, mc_pvalue
from outbreak_scan.simulation import NullModelSimulator, replicate_maximum
from outbreak_scan.windows import WindowEnumerator


@pytest.fixture
def simulation_setup(null_grid):
    """EB Poisson model and enumerator over the null grid."""
    _, baselines, zones = null_grid
    model = ExpectationPoissonModel(baselines)
    enumerator = WindowEnumerator(
        [np.asarray(zone) - 1 for zone in zones], baselines.shape[0], baselines.shape[1]
    )
    return model, enumerator


class TestNullModelSimulator:
    """Test Monte Carlo replicate generation"""

    def test_replicate_count(self, simulation_setup):
        """One maximum per replicate"""
        model, enumerator = simulation_setup
        store = NullModelSimulator(model, enumerator, seed=1).run(12)

        assert store.mode is StoreMode.REPLICATE_MAX
        assert store.filled.all()
        assert len(store.to_frame()) == 12

    def test_zero_replicates(self, simulation_setup):
        """No replicates, empty store"""
        model, enumerator = simulation_setup
        store = NullModelSimulator(model, enumerator, seed=1).run(0)

        assert len(store) == 0

    def test_same_seed_same_replicates(self, simulation_setup):
        """A fixed seed reproduces the replicate table"""
        model, enumerator = simulation_setup
        first = NullModelSimulator(model, enumerator, seed=7).run(10).to_frame(sort=False)
        second = NullModelSimulator(model, enumerator, seed=7).run(10).to_frame(sort=False)

        pd.testing.assert_frame_equal(first, second)

    def test_different_seeds_differ(self, simulation_setup):
        """Different seeds give different draws"""
        model, enumerator = simulation_setup
        first = NullModelSimulator(model, enumerator, seed=7).run(10).to_frame(sort=False)
        second = NullModelSimulator(model, enumerator, seed=8).run(10).to_frame(sort=False)

        assert not first["score"].equals(second["score"])

    def test_parallel_matches_serial(self, simulation_setup):
        """Worker count and completion order do not change the replicates"""
        model, enumerator = simulation_setup
        serial = NullModelSimulator(model, enumerator, seed=21).run(15).to_frame(sort=False)
        parallel = NullModelSimulator(
            model, enumerator, seed=21, workers=3, backend="thread"
        ).run(15).to_frame(sort=False)

        pd.testing.assert_frame_equal(serial, parallel)

    def test_replicate_uses_its_own_stream(self, simulation_setup):
        """Replicate k draws from the k-th child seed"""
        model, enumerator = simulation_setup
        simulator = NullModelSimulator(model, enumerator, seed=99)
        store = simulator.run(5)

        child = np.random.SeedSequence(99).spawn(5)[3]
        record = replicate_maximum(model, enumerator, child)
        assert store.get(3).score == record.score
        assert store.get(3).zone == record.zone

    def test_entropy_reported(self, simulation_setup):
        """The top-level entropy reproduces an unseeded run"""
        model, enumerator = simulation_setup
        simulator = NullModelSimulator(model, enumerator)
        replay = NullModelSimulator(model, enumerator, seed=simulator.entropy)

        pd.testing.assert_frame_equal(
            simulator.run(4).to_frame(sort=False), replay.run(4).to_frame(sort=False)
        )

    def test_negative_binomial_replicates(self):
        """NB replicates carry a relative risk column"""
        model = NegativeBinomialModel(np.full((3, 4), 4.0), 2.0)
        enumerator = WindowEnumerator([np.array([0]), np.array([1, 2])], 3, 4)
        frame = NullModelSimulator(model, enumerator, seed=4).run(6).to_frame()

        assert "relrisk" in frame.columns
        assert (frame["score"] >= 0).all()

    def test_unknown_backend(self, simulation_setup):
        """Only process and thread pools are supported"""
        model, enumerator = simulation_setup
        with pytest.raises(ValueError, match="Unknown parallel backend"):
            NullModelSimulator(model, enumerator, backend="cluster")


class TestMonteCarloPValue:
    """Test the rank-based P-value"""

    def test_bounds(self):
        """P lies in [1/(N+1), 1]"""
        replicates = [1.0, 2.0, 3.0]

        assert mc_pvalue(10.0, replicates) == pytest.approx(0.25)
        assert mc_pvalue(0.0, replicates) == pytest.approx(1.0)

    def test_ties_count_as_exceeding(self):
        """Replicates equal to the observed statistic count against it"""
        assert mc_pvalue(2.0, [1.0, 2.0, 3.0]) == pytest.approx(0.75)

    def test_monotone_in_observed(self):
        """A larger observed statistic never raises the P-value"""
        replicates = np.random.default_rng(0).gumbel(size=50)
        pvalues = [mc_pvalue(x, replicates) for x in np.linspace(-3, 6, 40)]

        assert all(a >= b for a, b in zip(pvalues, pvalues[1:]))

    def test_no_replicates(self):
        """Not computable without replicates"""
        assert mc_pvalue(1.0, []) is None

    def test_negative_infinity_replicates(self):
        """Infinite replicates are ranked like any other value"""
        assert mc_pvalue(-np.inf, [-np.inf, 1.0]) == pytest.approx(1.0)


class TestGumbelPValue:
    """Test the Gumbel approximation"""

    @pytest.fixture
    def gumbel_sample(self):
        return np.random.default_rng(2).gumbel(loc=3.0, scale=1.5, size=2000)

    def test_ml_fit(self, gumbel_sample):
        """Maximum likelihood recovers the parameters"""
        location, scale = fit_gumbel(gumbel_sample, "ML")

        assert location == pytest.approx(3.0, abs=0.15)
        assert scale == pytest.approx(1.5, abs=0.15)

    def test_moment_fit(self, gumbel_sample):
        """Method of moments recovers the parameters"""
        location, scale = fit_gumbel(gumbel_sample, "MoM")

        assert location == pytest.approx(3.0, abs=0.2)
        assert scale == pytest.approx(1.5, abs=0.2)

    def test_unknown_method(self, gumbel_sample):
        """Only ML and MoM are available"""
        with pytest.raises(ValueError, match="Unknown Gumbel fitting method"):
            fit_gumbel(gumbel_sample, "Bayes")

    def test_tail_probability(self, gumbel_sample):
        """Extreme statistics get small P-values"""
        fit = gumbel_pvalue(20.0, gumbel_sample)

        assert fit.method == "ML"
        assert 0.0 < fit.pvalue < 1e-3
        assert gumbel_pvalue(3.0, gumbel_sample).pvalue > 0.3

    def test_too_few_replicates(self):
        """Below the minimum the P-value is unavailable"""
        with pytest.warns(UserWarning, match="finite replicates"):
            assert gumbel_pvalue(1.0, [0.5, 1.5, -np.inf], min_replicates=3) is None

    def test_no_spread(self):
        """Identical replicates cannot be fitted"""
        with pytest.warns(UserWarning, match="all equal"):
            assert gumbel_pvalue(1.0, [2.0, 2.0, 2.0, 2.0]) is None

    def test_no_replicates(self):
        """Nothing to fit"""
        assert gumbel_pvalue(1.0, []) is None

    def test_infinite_replicates_dropped(self, gumbel_sample):
        """Only finite replicates enter the fit"""
        with_infinite = np.concatenate([gumbel_sample, [-np.inf, -np.inf]])

        assert gumbel_pvalue(5.0, with_infinite).pvalue == pytest.approx(
            gumbel_pvalue(5.0, gumbel_sample).pvalue
        )
