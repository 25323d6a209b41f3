"""
Reference tests for matrix operations.

These tests validate the decompositions against scipy's matrix
exponential, analytical solutions and known properties of transition
probability matrices, for small nucleotide matrices and for PoMo rate
matrices.
"""

import numpy as np
import pytest
from scipy.linalg import expm

from pomoml.config import MatrixExpTechnique
from pomoml.core.matrix import (
    EigenSystem,
    check_detailed_balance,
    create_reversible_Q,
    decompose_rate_matrix,
    eigen_decompose_nonrev,
    eigen_decompose_rev,
    matrix_exponential,
)
from pomoml.errors import UnsupportedDecompositionError
from pomoml.models.dna import DNAMutationModel
from pomoml.models.rate_matrix import RateMatrixBuilder
from pomoml.models.rates import normalize_mutation_rates
from pomoml.models.states import StateCodec


def pomo_rate_matrix(N, model_name="HKY", rates=None, pi_b=None, theta=0.05):
    """Normalised PoMo rate matrix and stationary frequencies."""
    pi_b = np.array([0.3, 0.2, 0.2, 0.3]) if pi_b is None else np.asarray(pi_b)
    model = DNAMutationModel(model_name)
    if rates is not None:
        model.set_rates(rates)
    reversible = model.is_reversible
    if reversible:
        model.set_state_frequencies(pi_b)
    mutation_rates, _ = normalize_mutation_rates(
        model.rate_matrix(), model.state_frequencies(), pi_b, theta, N, reversible
    )
    builder = RateMatrixBuilder(StateCodec(N))
    builder.build(pi_b, mutation_rates)
    return builder.rate_matrix.copy(), builder.state_freq.copy()


class TestMatrixExponential:
    """Test matrix exponential computation."""

    def test_jc69_analytical(self):
        """P(t) of JC69 against the closed form."""
        alpha = 0.25
        Q = alpha * (np.ones((4, 4)) - 4 * np.eye(4))
        t = 0.1

        P = matrix_exponential(Q, t)

        e_term = np.exp(-4 * alpha * t)
        np.testing.assert_allclose(np.diag(P), 0.25 + 0.75 * e_term, rtol=1e-10)
        np.testing.assert_allclose(P[0, 1:], 0.25 - 0.25 * e_term, rtol=1e-10)

    def test_identity_at_zero(self):
        Q, _ = pomo_rate_matrix(4)
        np.testing.assert_allclose(matrix_exponential(Q, 0.0), np.eye(Q.shape[0]), atol=1e-12)

    def test_semigroup_property(self):
        """P(t1 + t2) = P(t1) @ P(t2)."""
        Q, _ = pomo_rate_matrix(5)
        t1, t2 = 0.05, 0.15
        P_sum = matrix_exponential(Q, t1 + t2)
        P_prod = matrix_exponential(Q, t1) @ matrix_exponential(Q, t2)
        np.testing.assert_allclose(P_sum, P_prod, rtol=1e-8, atol=1e-14)

    def test_large_time(self):
        """Rows converge to the stationary distribution."""
        Q, pi = pomo_rate_matrix(3, theta=0.2)
        P = matrix_exponential(Q, 500.0)
        for row in P:
            np.testing.assert_allclose(row, pi, rtol=1e-6, atol=1e-10)


class TestEigenDecomposition:
    """Test eigendecomposition of reversible rate matrices."""

    def test_reconstruction(self):
        """Q = U @ diag(eigenvalues) @ V."""
        pi = np.array([0.3, 0.2, 0.4, 0.1])
        rates = np.array([[0, 1, 2, 1], [1, 0, 1, 2], [2, 1, 0, 1], [1, 2, 1, 0]])
        Q = create_reversible_Q(rates, pi)

        eigenvalues, U, V = eigen_decompose_rev(Q, pi)

        np.testing.assert_allclose(U @ np.diag(eigenvalues) @ V, Q, atol=1e-12)
        np.testing.assert_allclose(U @ V, np.eye(4), atol=1e-12)

    def test_stationary_distribution(self):
        """Eigenvector of the zero eigenvalue gives the stationary distribution."""
        pi = np.array([0.3, 0.2, 0.4, 0.1])
        rates = np.array([[0, 1, 2, 1], [1, 0, 1, 2], [2, 1, 0, 1], [1, 2, 1, 0]])
        Q = create_reversible_Q(rates, pi)

        eigenvalues, U, V = eigen_decompose_rev(Q, pi)

        assert np.abs(eigenvalues[-1]) < 1e-10
        assert np.all(eigenvalues[:-1] < 0)
        stationary = U[:, -1] * V[-1, :]
        np.testing.assert_allclose(stationary / stationary.sum(), pi, rtol=1e-10)

    @pytest.mark.parametrize("N", [2, 4, 9])
    def test_pomo_reversible(self, N):
        """Symmetric decomposition of a reversible PoMo matrix."""
        Q, pi = pomo_rate_matrix(N)
        assert check_detailed_balance(Q, pi, rtol=1e-8)

        eigen = decompose_rate_matrix(Q, pi, reversible=True)
        assert eigen.reversible
        np.testing.assert_allclose(eigen.reconstruct(), Q, atol=1e-10)
        assert np.max(eigen.eigenvalues) == pytest.approx(0.0, abs=1e-10)
        np.testing.assert_allclose(eigen.transition_matrix(0.3), expm(Q * 0.3), atol=1e-10)

    def test_pomo_non_reversible(self):
        """General decomposition of a PoMo matrix built on UNREST."""
        rates = [1.0, 2.0, 0.5, 1.5, 3.0, 1.0, 0.7, 2.2, 1.1, 0.9, 1.3, 2.0]
        Q, pi = pomo_rate_matrix(4, "UNREST", rates=rates, pi_b=[0.25, 0.3, 0.2, 0.25])

        eigen = decompose_rate_matrix(Q, pi, reversible=False)
        assert not eigen.reversible
        np.testing.assert_allclose(eigen.reconstruct(), Q, atol=1e-9)
        P = eigen.transition_matrix(0.5)
        assert np.isrealobj(P)
        np.testing.assert_allclose(P, expm(Q * 0.5), atol=1e-9)
        np.testing.assert_allclose(P.sum(axis=1), 1.0, atol=1e-9)

    def test_nonrev_inverse(self):
        Q, _ = pomo_rate_matrix(3, "UNREST", rates=np.arange(1.0, 13.0))
        eigenvalues, U, V = eigen_decompose_nonrev(Q)
        np.testing.assert_allclose(U @ V, np.eye(Q.shape[0]), atol=1e-9)


class TestDecompositionDispatch:
    """Test the choice of matrix exponential technique."""

    def setup_method(self):
        self.Q, self.pi = pomo_rate_matrix(3, "UNREST", rates=np.arange(1.0, 13.0))

    def test_scaling_squaring(self):
        result = decompose_rate_matrix(
            self.Q, self.pi, reversible=False, technique=MatrixExpTechnique.SCALING_SQUARING
        )
        assert result is None

    @pytest.mark.parametrize("technique", [MatrixExpTechnique.EIGEN3LIB, MatrixExpTechnique.LIE_MARKOV])
    def test_unsupported(self, technique):
        with pytest.raises(UnsupportedDecompositionError):
            decompose_rate_matrix(self.Q, self.pi, reversible=False, technique=technique)

    def test_technique_string(self):
        eigen = decompose_rate_matrix(self.Q, self.pi, reversible=False, technique="eigen")
        assert isinstance(eigen, EigenSystem)

    def test_reversible_ignores_technique(self):
        Q, pi = pomo_rate_matrix(3)
        eigen = decompose_rate_matrix(Q, pi, reversible=True, technique=MatrixExpTechnique.EIGEN3LIB)
        assert eigen.reversible


class TestReversibleQ:
    """Test creation and properties of reversible rate matrices."""

    def test_detailed_balance(self):
        pi = np.array([0.3, 0.2, 0.4, 0.1])
        rates = np.array([[0, 1, 2, 1], [1, 0, 1, 2], [2, 1, 0, 1], [1, 2, 1, 0]])
        Q = create_reversible_Q(rates, pi)
        assert check_detailed_balance(Q, pi)
        np.testing.assert_allclose(Q.sum(axis=1), 0.0, atol=1e-15)

    def test_normalization(self):
        """Normalized Q has an expected rate of 1."""
        pi = np.array([0.1, 0.2, 0.3, 0.4])
        Q = create_reversible_Q(np.ones((4, 4)), pi, normalize=True)
        assert -np.dot(pi, np.diag(Q)) == pytest.approx(1.0)

    def test_violated_balance(self):
        Q, _ = pomo_rate_matrix(3, "UNREST", rates=np.arange(1.0, 13.0))
        assert not check_detailed_balance(Q, np.full(Q.shape[0], 1.0 / Q.shape[0]))
