"""
Unit tests for the PoMo model.
"""

import numpy as np
import pandas as pd
import pytest
from scipy.linalg import expm

from pomoml.config import MatrixExpTechnique, PoMoConfig
from pomoml.errors import (
    FrequencyTypeError,
    NoPolymorphicDataError,
    StateCountError,
    ThetaError,
    UnsupportedDecompositionError,
    UnsupportedModelError,
)
from pomoml.io.counts import PoMoData, SiteCounts
from pomoml.models.dna import FreqType
from pomoml.models.pomo import PoMoModel, Reversibility, ThetaSource


@pytest.fixture
def monomorphic_data():
    sites = [
        [SiteCounts(0, 10, 0, 0), SiteCounts(1, 8, 1, 0)],
        [SiteCounts(1, 10, 1, 0), SiteCounts(1, 6, 1, 0)],
        [SiteCounts(0, 5, 0, 0), SiteCounts(0, 9, 0, 0)],
    ]
    return PoMoData.from_site_counts(["P1", "P2"], sites, virtual_pop_size=4)


class TestConstruction:
    """Test model setup."""

    def test_names(self, weighted_data, sampled_data):
        assert PoMoModel(weighted_data, "HKY").name == "HKY+P+N4+W"
        assert PoMoModel(weighted_data, "HKY", theta="EMP").name == "HKY+P{EMP}+N4+W"
        assert PoMoModel(sampled_data, "GTR").name == "GTR+P+N4+S"
        assert PoMoModel(weighted_data, "HKY", "2.0").name == "HKY{2.0}+P+N4+W"

    def test_full_name(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        assert "N=4" in model.full_name
        assert "22 states" in model.full_name

    def test_dimensions(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        assert model.n_states == 22
        assert model.rate_matrix.shape == (22, 22)
        assert model.state_freq.shape == (22,)

    def test_state_count_mismatch(self, weighted_data):
        with pytest.raises(StateCountError):
            PoMoModel(weighted_data, "HKY", n_states=58)

    def test_non_dna_model(self, weighted_data):
        with pytest.raises(UnsupportedModelError):
            PoMoModel(weighted_data, "WAG")

    def test_reversibility(self, weighted_data):
        assert PoMoModel(weighted_data, "GTR").reversibility == Reversibility.REVERSIBLE
        assert PoMoModel(weighted_data, "UNREST").reversibility == Reversibility.NON_REVERSIBLE


class TestTheta:
    """Test the level of polymorphism."""

    def test_estimated_starts_at_empirical(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        assert not model.fixed_theta
        assert model.theta == pytest.approx(model.theta_emp)
        assert model.theta_source == ThetaSource.ESTIMATED
        assert model.ndim == 2

    def test_empirical(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY", theta="EMP")
        assert model.fixed_theta
        assert model.theta_source == ThetaSource.EMPIRICAL
        assert model.ndim == 1

    def test_user_value(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY", theta="0.02")
        assert model.theta == 0.02
        assert model.theta_source == ThetaSource.USER

    @pytest.mark.parametrize("theta", ["", "EMP", "0.001", "0.3"])
    def test_polymorphic_mass_matches_theta(self, weighted_data, theta):
        model = PoMoModel(weighted_data, "GTR", theta=theta)
        assert model.polymorphic_mass() == pytest.approx(model.theta)
        assert model.state_freq.sum() == pytest.approx(1.0)

    def test_invalid_directive(self, weighted_data):
        with pytest.raises(ThetaError):
            PoMoModel(weighted_data, "HKY", theta="abc")

    def test_unreachable_value(self, weighted_data):
        # 1 / H(3) is about 0.545
        with pytest.raises(ThetaError):
            PoMoModel(weighted_data, "HKY", theta="0.9")

    def test_no_polymorphism(self, monomorphic_data, caplog):
        with pytest.raises(NoPolymorphicDataError):
            PoMoModel(monomorphic_data, "HKY")
        assert "without polymorphisms" in caplog.text

    def test_no_polymorphism_with_fixed_theta(self, monomorphic_data):
        model = PoMoModel(monomorphic_data, "HKY", theta="0.01")
        assert model.polymorphic_mass() == pytest.approx(0.01)


class TestFrequencies:
    """Test boundary frequency types."""

    def test_empirical(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        np.testing.assert_allclose(model.freq_boundary_states, model.freq_boundary_states_emp)
        assert np.all(model.freq_boundary_states >= 0.05)

    def test_equal(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY", freq_type="+FQ")
        np.testing.assert_allclose(model.freq_boundary_states, 0.25)

    def test_user_defined(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY", freq_type="+FU", freq_params="0.1,0.2,0.3,0.4")
        np.testing.assert_allclose(model.freq_boundary_states, [0.1, 0.2, 0.3, 0.4])

    def test_user_defined_missing(self, weighted_data):
        with pytest.raises(FrequencyTypeError):
            PoMoModel(weighted_data, "HKY", freq_type=FreqType.USER_DEFINED)

    def test_unknown(self, weighted_data):
        with pytest.raises(FrequencyTypeError):
            PoMoModel(weighted_data, "HKY", freq_type=FreqType.UNKNOWN)

    def test_estimated_frequencies_follow_variables(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY", freq_type="+FO")
        assert model.ndim == 5
        model.set_variables([2.0, 1.0, 1.0, 1.0, 0.05])
        np.testing.assert_allclose(model.freq_boundary_states, 0.25)
        np.testing.assert_allclose(model.state_freq[:4], model.state_freq[0])

    def test_frequency_dimensions(self, weighted_data):
        assert PoMoModel(weighted_data, "HKY", freq_type="+FO").ndim_freq == 3
        assert PoMoModel(weighted_data, "HKY").ndim_freq == 0
        # UNREST keeps its boundary frequencies at the empirical values
        assert PoMoModel(weighted_data, "UNREST", freq_type="+FO").ndim_freq == 0


class TestVariables:
    """Test the optimizer interface."""

    def test_get_set_round_trip(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        assert model.set_variables([3.0, 0.02])
        np.testing.assert_allclose(model.get_variables(), [3.0, 0.02])
        assert model.polymorphic_mass() == pytest.approx(0.02)
        assert not model.set_variables([3.0, 0.02])

    def test_wrong_length(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        with pytest.raises(ValueError):
            model.set_variables([1.0])

    def test_failed_update_restores_state(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        before = model.get_variables()
        Q = model.rate_matrix.copy()
        with pytest.raises(ThetaError):
            model.set_variables([2.0, 0.9])
        np.testing.assert_allclose(model.get_variables(), before)
        np.testing.assert_allclose(model.rate_matrix, Q)

    def test_bounds(self, weighted_data):
        config = PoMoConfig(min_theta=1e-3, max_theta=0.2)
        model = PoMoModel(weighted_data, "GTR", config=config)
        bounds = model.get_bounds()
        assert len(bounds) == model.ndim == 6
        assert bounds[-1] == (1e-3, 0.2)

    def test_target_function(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        value = model.target_function([2.0, 0.03], lambda m: -10.0 * m.theta)
        assert value == pytest.approx(0.3)
        assert model.theta == 0.03

    def test_scale_mutation_rates(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        m = model.mutation_rates.m.copy()
        model.scale_mutation_rates(2.0)
        np.testing.assert_allclose(model.mutation_rates.m, 2.0 * m)
        np.testing.assert_allclose(model.rate_matrix.sum(axis=1), 0.0, atol=1e-12)

    def test_is_unstable(self, weighted_data):
        assert not PoMoModel(weighted_data, "HKY").is_unstable()


class TestTransitionMatrix:
    """Test transition probabilities."""

    @pytest.mark.parametrize("model_name", ["HKY", "UNREST"])
    def test_matches_expm(self, weighted_data, model_name):
        model = PoMoModel(weighted_data, model_name)
        P = model.transition_matrix(0.3)
        np.testing.assert_allclose(P, expm(model.rate_matrix * 0.3), atol=1e-9)
        np.testing.assert_allclose(P.sum(axis=1), 1.0, atol=1e-9)

    def test_scaling_squaring(self, weighted_data):
        config = PoMoConfig(matrix_exp_technique=MatrixExpTechnique.SCALING_SQUARING)
        model = PoMoModel(weighted_data, "UNREST", config=config)
        assert model.eigen is None
        np.testing.assert_allclose(model.transition_matrix(0.1).sum(axis=1), 1.0, atol=1e-9)

    def test_unsupported_technique(self, weighted_data):
        config = PoMoConfig(matrix_exp_technique=MatrixExpTechnique.EIGEN3LIB)
        with pytest.raises(UnsupportedDecompositionError):
            PoMoModel(weighted_data, "UNREST", config=config)

    def test_reversible_ignores_technique(self, weighted_data):
        config = PoMoConfig(matrix_exp_technique=MatrixExpTechnique.LIE_MARKOV)
        model = PoMoModel(weighted_data, "HKY", config=config)
        assert model.eigen.reversible


class TestReporting:
    """Test reports and derived tables."""

    def test_report(self, weighted_data):
        text = PoMoModel(weighted_data, "HKY", theta="EMP").report()
        assert "Reversible PoMo." in text
        assert "Virtual population size N: 4" in text
        assert "Empirical heterozygosity" in text
        assert "Watterson's Theta" in text
        assert "AC, AG, AT, CG, CT, GT" in text

    def test_report_estimated_frequencies(self, weighted_data):
        text = PoMoModel(weighted_data, "GTR", freq_type="+FO").report()
        assert text.count("Frequencies of boundary states") == 2
        assert "Estimated heterozygosity" in text

    def test_report_non_reversible(self, weighted_data):
        text = PoMoModel(weighted_data, "UNREST", theta="0.01").report()
        assert "Non-reversible PoMo." in text
        assert "User-defined heterozygosity" in text

    def test_report_non_reversible_skips_estimated_frequencies(self, weighted_data):
        text = PoMoModel(weighted_data, "UNREST", freq_type="+FO").report()
        assert text.count("Frequencies of boundary states") == 1

    def test_labelled_mutation_rates(self, weighted_data):
        model = PoMoModel(weighted_data, "HKY")
        rates = model.labelled_mutation_rates()
        assert list(rates) == ["AC", "AG", "AT", "CG", "CT", "GT"]
        np.testing.assert_allclose(list(rates.values()), model.mutation_rates_upper())

    def test_labelled_mutation_rates_non_reversible(self, weighted_data):
        model = PoMoModel(weighted_data, "UNREST")
        rates = model.labelled_mutation_rates()
        assert len(rates) == 12
        assert rates["CA"] == pytest.approx(model.mutation_rates.m[1, 0])
        assert rates["TG"] == pytest.approx(model.mutation_rates.m[3, 2])

    def test_write_info(self, weighted_data):
        text = PoMoModel(weighted_data, "HKY").write_info()
        assert text.startswith("Frequency of boundary states")
        assert len(text.splitlines()) == 6

    def test_state_table(self, weighted_data):
        table = PoMoModel(weighted_data, "HKY").state_table()
        assert isinstance(table, pd.DataFrame)
        assert len(table) == 22
        assert table.loc[0, "label"] == "4A"
        assert table.loc[4, "label"] == "1A3C"
        assert table["frequency"].sum() == pytest.approx(1.0)
