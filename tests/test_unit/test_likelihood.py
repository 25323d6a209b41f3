"""
Unit tests for PoMo likelihood calculation.
"""

import numpy as np
import pytest

from pomoml.core.likelihood import (
    PoMoLikelihoodCalculator,
    state_allele_frequencies,
    tip_likelihood,
)
from pomoml.errors import DataFormatError
from pomoml.io.counts import UNKNOWN_CODE, PoMoData, SiteCounts
from pomoml.io.trees import Tree
from pomoml.models.pomo import PoMoModel
from pomoml.models.states import StateCodec


@pytest.fixture
def two_population_data():
    sites = [
        [SiteCounts(0, 3, 1, 1), SiteCounts(0, 4, 0, 0)],
        [SiteCounts(2, 5, 2, 0), SiteCounts(2, 2, 3, 2)],
        [None, SiteCounts(1, 4, 1, 0)],
        [SiteCounts(1, 6, 1, 0), SiteCounts(1, 3, 3, 3)],
    ]
    return PoMoData.from_site_counts(["P1", "P2"], sites, virtual_pop_size=4)


class TestTipLikelihood:
    """Test the probability of a population sample."""

    def test_allele_frequencies(self):
        codec = StateCodec(4)
        F = state_allele_frequencies(codec)
        np.testing.assert_allclose(F.sum(axis=1), 1.0)
        np.testing.assert_allclose(F[codec.compose(3, 0, 1)], [0.75, 0.25, 0.0, 0.0])
        np.testing.assert_allclose(F[2], [0.0, 0.0, 1.0, 0.0])

    def test_binomial_without_coefficient(self):
        codec = StateCodec(4)
        F = state_allele_frequencies(codec)
        tip = tip_likelihood(SiteCounts(0, 2, 1, 1), F)
        assert tip[codec.compose(3, 0, 1)] == pytest.approx(0.75 ** 2 * 0.25)
        assert tip[codec.compose(2, 0, 1)] == pytest.approx(0.5 ** 3)
        # Fixed states cannot produce a polymorphic sample
        assert tip[0] == 0.0
        assert tip[1] == 0.0
        # Neither can states without both alleles
        assert tip[codec.compose(2, 0, 2)] == 0.0

    def test_monomorphic_sample(self):
        codec = StateCodec(4)
        F = state_allele_frequencies(codec)
        tip = tip_likelihood(SiteCounts(3, 5, 3, 0), F)
        assert tip[3] == 1.0
        assert tip[codec.compose(1, 2, 3)] == pytest.approx(0.75 ** 5)
        assert tip[0] == 0.0


class TestCalculator:
    """Test pruning over site patterns."""

    def test_population_mismatch(self, weighted_data):
        tree = Tree.from_newick("((Sheep:0.1,Goat:0.1):0.1,Horse:0.1);")
        with pytest.raises(DataFormatError, match="Horse"):
            PoMoLikelihoodCalculator(weighted_data, tree)

    def test_sampled_tips_are_indicators(self, sampled_data, tree_file):
        calc = PoMoLikelihoodCalculator(sampled_data, Tree.from_file(tree_file))
        for partials in calc.tip_partials.values():
            assert set(np.unique(partials)) <= {0.0, 1.0}
            known = partials.sum(axis=1) == 1.0
            unknown = partials.sum(axis=1) == 22.0
            assert np.all(known | unknown)

    def test_two_leaf_brute_force(self, two_population_data):
        data = two_population_data
        tree = Tree.from_newick("(P1:0.1,P2:0.2);")
        model = PoMoModel(data, "HKY", "3.0")
        calc = PoMoLikelihoodCalculator(data, tree)

        F = state_allele_frequencies(model.codec)
        P1 = model.transition_matrix(0.1)
        P2 = model.transition_matrix(0.2)

        expected = []
        for code1, code2 in data.patterns:
            tips = []
            for code in (code1, code2):
                if code == UNKNOWN_CODE:
                    tips.append(np.ones(model.n_states))
                else:
                    tips.append(tip_likelihood(data.site_counts(code), F))
            total = 0.0
            for root in range(model.n_states):
                total += (
                    model.state_freq[root]
                    * np.dot(P1[root], tips[0])
                    * np.dot(P2[root], tips[1])
                )
            expected.append(np.log(total))

        np.testing.assert_allclose(calc.site_log_likelihoods(model), expected, rtol=1e-10)
        assert calc(model) == pytest.approx(np.dot(data.weights, expected))

    def test_branch_scaling(self, two_population_data):
        data = two_population_data
        model = PoMoModel(data, "HKY")
        short = PoMoLikelihoodCalculator(data, Tree.from_newick("(P1:0.05,P2:0.1);"))
        long = PoMoLikelihoodCalculator(data, Tree.from_newick("(P1:0.1,P2:0.2);"))
        assert short.compute_log_likelihood(model, scale_branch_lengths=2.0) == pytest.approx(
            long.compute_log_likelihood(model)
        )

    def test_three_populations(self, weighted_data, tree_file):
        model = PoMoModel(weighted_data, "GTR")
        calc = PoMoLikelihoodCalculator(weighted_data, Tree.from_file(tree_file))
        site_lnl = calc.site_log_likelihoods(model)
        assert site_lnl.shape == (weighted_data.n_patterns,)
        assert np.all(np.isfinite(site_lnl))
        assert np.all(site_lnl < 0)

    def test_state_count_mismatch(self, counts_file, tree_file, weighted_data):
        other = PoMoData.from_counts_file(counts_file, virtual_pop_size=3)
        calc = PoMoLikelihoodCalculator(other, Tree.from_file(tree_file))
        with pytest.raises(ValueError):
            calc(PoMoModel(weighted_data, "HKY"))
