"""
Matrix operations for phylogenetic likelihood calculations.

This module provides the rate matrix helpers, the eigendecompositions
used to exponentiate PoMo rate matrices, and the dispatch that picks a
decomposition from the reversibility of the model and the configured
matrix exponential technique.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.linalg import expm

from ..config import MatrixExpTechnique
from ..errors import UnsupportedDecompositionError


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Compute transition probability matrix P(t) = exp(Q*t).

    Uses scipy's matrix exponential (Padé approximation with scaling and
    squaring). This is the path taken for non-reversible models when the
    scaling-and-squaring technique is configured.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix (instantaneous substitution rate matrix)
    t : float
        Branch length (time)

    Returns
    -------
    P : ndarray, shape (n, n)
        Transition probability matrix where P[i,j] is the probability
        of state i transitioning to state j over time t

    Examples
    --------
    >>> alpha = 0.25
    >>> Q = np.array([[-3*alpha, alpha, alpha, alpha],
    ...               [alpha, -3*alpha, alpha, alpha],
    ...               [alpha, alpha, -3*alpha, alpha],
    ...               [alpha, alpha, alpha, -3*alpha]])
    >>> P = matrix_exponential(Q, 0.1)
    >>> np.sum(P[0])  # Row sum should be 1
    1.0
    """
    return expm(Q * t)


def eigen_decompose_rev(Q: np.ndarray, pi: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Eigendecompose reversible rate matrix Q = U @ diag(eigenvalues) @ V.

    Uses symmetrization trick for reversible (time-reversible) rate matrices:
    Transform Q to symmetric matrix Q' = √D @ Q @ √D^(-1), where D = diag(pi),
    then eigendecompose Q' and transform back.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance: π_i * Q[i,j] = π_j * Q[j,i]
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies), strictly positive

    Returns
    -------
    eigenvalues : ndarray, shape (n,)
        Eigenvalues of Q, sorted in ascending order
    U : ndarray, shape (n, n)
        Right eigenvector matrix
    V : ndarray, shape (n, n)
        Inverse of U (left eigenvectors as rows)

    Notes
    -----
    The decomposition satisfies Q = U @ diag(eigenvalues) @ V and
    P(t) = U @ diag(exp(eigenvalues * t)) @ V. The largest eigenvalue is 0.
    """
    sqrt_pi = np.sqrt(pi)

    # Q' = √D @ Q @ √D^(-1) is symmetric under detailed balance
    Q_sym = Q * sqrt_pi[:, np.newaxis] / sqrt_pi[np.newaxis, :]
    # Remove round-off asymmetry before eigh
    Q_sym = (Q_sym + Q_sym.T) / 2.0

    eigenvalues, eigenvectors = np.linalg.eigh(Q_sym)

    U = eigenvectors / sqrt_pi[:, np.newaxis]
    V = eigenvectors.T * sqrt_pi[np.newaxis, :]

    return eigenvalues, U, V


def eigen_decompose_nonrev(Q: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    General eigendecomposition Q = U @ diag(eigenvalues) @ U^(-1).

    Eigenvalues and eigenvectors of a non-reversible rate matrix may be
    complex; they are returned as complex arrays.

    Returns
    -------
    eigenvalues : ndarray, shape (n,), complex
    U : ndarray, shape (n, n), complex
        Right eigenvectors as columns
    V : ndarray, shape (n, n), complex
        Inverse of U
    """
    eigenvalues, U = np.linalg.eig(Q)
    V = np.linalg.inv(U)
    return eigenvalues, U, V


@dataclass
class EigenSystem:
    """
    Eigendecomposition of a rate matrix.

    Attributes
    ----------
    eigenvalues : np.ndarray
        Eigenvalues (real for reversible models)
    eigenvectors : np.ndarray
        Right eigenvectors as columns
    inv_eigenvectors : np.ndarray
        Inverse of ``eigenvectors``
    reversible : bool
        Whether the symmetric decomposition was used
    """

    eigenvalues: np.ndarray
    eigenvectors: np.ndarray
    inv_eigenvectors: np.ndarray
    reversible: bool

    def transition_matrix(self, t: float) -> np.ndarray:
        """P(t) = U @ diag(exp(eigenvalues * t)) @ U^(-1)."""
        P = (self.eigenvectors * np.exp(self.eigenvalues * t)[np.newaxis, :]) @ self.inv_eigenvectors
        if not self.reversible:
            P = P.real
        # Round-off can give tiny negative probabilities
        return np.clip(P, 0.0, None)

    def reconstruct(self) -> np.ndarray:
        """Rate matrix recovered from the decomposition."""
        Q = (self.eigenvectors * self.eigenvalues[np.newaxis, :]) @ self.inv_eigenvectors
        return Q if self.reversible else Q.real


def decompose_rate_matrix(
    Q: np.ndarray,
    pi: np.ndarray,
    reversible: bool,
    technique: MatrixExpTechnique = MatrixExpTechnique.EIGEN,
) -> Optional[EigenSystem]:
    """
    Decompose a rate matrix for matrix exponentiation.

    Reversible matrices always use the symmetric decomposition under the
    stationary distribution. Non-reversible matrices use the general
    eigendecomposition, or nothing at all when scaling and squaring is
    configured (``P(t)`` is then computed with :func:`matrix_exponential`).

    Returns
    -------
    EigenSystem or None
        ``None`` for non-reversible models with scaling and squaring

    Raises
    ------
    UnsupportedDecompositionError
        For any other technique combined with a non-reversible matrix
    """
    if reversible:
        eigenvalues, U, V = eigen_decompose_rev(Q, pi)
        return EigenSystem(eigenvalues, U, V, reversible=True)

    technique = MatrixExpTechnique(technique)
    if technique == MatrixExpTechnique.EIGEN:
        eigenvalues, U, V = eigen_decompose_nonrev(Q)
        return EigenSystem(eigenvalues, U, V, reversible=False)
    if technique == MatrixExpTechnique.SCALING_SQUARING:
        return None
    if technique == MatrixExpTechnique.EIGEN3LIB:
        raise UnsupportedDecompositionError(
            "Eigen3 library decomposition does not work with non-reversible PoMo"
        )
    if technique == MatrixExpTechnique.LIE_MARKOV:
        raise UnsupportedDecompositionError(
            "Matrix decomposition in closed form is not available for PoMo"
        )
    raise UnsupportedDecompositionError(f"Matrix decomposition method unknown: {technique}")


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeability rates and stationary distribution.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix (r[i,j] = r[j,i])
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies)
    normalize : bool, default=True
        If True, scale Q so that expected rate is 1 substitution per time unit

    Returns
    -------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance

    Notes
    -----
    The rate matrix is constructed as Q[i,j] = r[i,j] * pi[j] for i ≠ j,
    and Q[i,i] = -sum(Q[i,j] for j ≠ i).
    """
    Q = rates * pi[np.newaxis, :]

    np.fill_diagonal(Q, 0.0)
    row_sums = np.sum(Q, axis=1)
    np.fill_diagonal(Q, -row_sums)

    if normalize:
        # Expected rate = -sum(π_i * Q[i,i])
        expected_rate = -np.dot(pi, Q.diagonal())
        Q /= expected_rate

    return Q


def check_detailed_balance(Q: np.ndarray, pi: np.ndarray, rtol: float = 1e-10) -> bool:
    """
    Test if rate matrix Q satisfies detailed balance with stationary distribution pi.

    Notes
    -----
    Detailed balance: π_i * Q[i,j] = π_j * Q[j,i] for all i, j
    """
    flux = pi[:, np.newaxis] * Q
    return bool(np.allclose(flux, flux.T, rtol=rtol, atol=1e-14))
