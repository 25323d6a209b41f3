"""
Mutation rates of PoMo and their calibration to a level of polymorphism.

The rate matrix of the underlying mutation model is turned back into raw
mutation rates ``m`` (each column divided by the stationary frequency of
the target allele). ``m`` is split into a symmetric part ``r``, which
together with drift determines the stationary frequencies, and an
antisymmetric flux ``f``, which is zero for reversible models. All three
are then multiplied by a common factor so that the stationary
distribution of PoMo has the requested level of polymorphism theta.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from ..config import N_ALLELES
from ..errors import ThetaError
from .frequencies import harmonic

logger = logging.getLogger(__name__)

# Sampling without replacement from the boundary mutation equilibrium.
# Sampling with replacement would use (N - 1) / N; it estimates
# heterozygosity better for small N but worsens branch scores.
SAMPLING_CORRECTION = 1.0


@dataclass
class MutationRates:
    """
    Raw (m), symmetric (r) and antisymmetric (f) mutation rate matrices.

    The 4x4 buffers are allocated once and updated in place.
    """

    m: np.ndarray = field(default_factory=lambda: np.zeros((N_ALLELES, N_ALLELES)))
    r: np.ndarray = field(default_factory=lambda: np.zeros((N_ALLELES, N_ALLELES)))
    f: np.ndarray = field(default_factory=lambda: np.zeros((N_ALLELES, N_ALLELES)))

    def scale(self, factor: float) -> None:
        """Multiply all mutation rates by ``factor``."""
        self.m *= factor
        self.r *= factor
        self.f *= factor

    def coefficient(self, nt1: int, nt2: int) -> float:
        """Raw mutation rate from ``nt1`` to ``nt2``."""
        return self.m[nt1, nt2]


def split_mutation_rates(
    Q: np.ndarray, pi: np.ndarray, reversible: bool, out: MutationRates | None = None
) -> MutationRates:
    """
    Recover raw mutation rates from a mutation model rate matrix.

    ``m[i, j] = Q[i, j] / pi[j]``, ``r = (m + m^T) / 2`` and, for
    non-reversible models, ``f = (m - m^T) / 2`` with zero diagonal.
    """
    rates = out if out is not None else MutationRates()
    rates.m[:] = Q / pi[np.newaxis, :]
    rates.r[:] = (rates.m + rates.m.T) / 2.0
    if reversible:
        rates.f[:] = 0.0
    else:
        rates.f[:] = (rates.m - rates.m.T) / 2.0
        np.fill_diagonal(rates.f, 0.0)
    return rates


def sum_freq_poly_states(pi_b: np.ndarray, r: np.ndarray, N: int) -> float:
    """
    Unnormalised stationary mass of all polymorphic states.

    ``sum_{i>j} 2 pi_b[i] pi_b[j] r[i, j] H(N-1)``
    """
    lower = np.tril(np.outer(pi_b, pi_b) * r, k=-1)
    return 2.0 * lower.sum() * harmonic(N - 1)


def sum_freq_poly_states_no_mutation(pi_b: np.ndarray, N: int) -> float:
    """Polymorphic mass with all symmetric mutation rates set to one."""
    lower = np.tril(np.outer(pi_b, pi_b), k=-1)
    return 2.0 * lower.sum() * harmonic(N - 1)


def mutation_rate_scale(
    theta: float, theta_bm: float, N: int, correction: float = SAMPLING_CORRECTION
) -> float:
    """
    Factor that maps mutation rates with polymorphism ``theta_bm`` to ``theta``.

    ``theta / (theta_bm * (correction - H(N-1) * theta))``

    Raises
    ------
    ThetaError
        If the factor is not positive and finite
    """
    denominator = theta_bm * (correction - harmonic(N - 1) * theta)
    if theta <= 0 or denominator <= 0:
        raise ThetaError(
            f"Level of polymorphism {theta} cannot be reached with N={N} "
            f"(it must be positive and below {correction / harmonic(N - 1):.6g})"
        )
    return theta / denominator


def normalize_mutation_rates(
    Q: np.ndarray,
    pi_model: np.ndarray,
    pi_b: np.ndarray,
    theta: float,
    N: int,
    reversible: bool,
    rates: MutationRates | None = None,
) -> tuple[MutationRates, float]:
    """
    Mutation rates calibrated to the level of polymorphism ``theta``.

    Parameters
    ----------
    Q : np.ndarray, shape (4, 4)
        Rate matrix of the mutation model
    pi_model : np.ndarray, shape (4,)
        Stationary frequencies of the mutation model
    pi_b : np.ndarray, shape (4,)
        Boundary state frequencies of PoMo
    theta : float
        Target level of polymorphism
    N : int
        Virtual population size
    reversible : bool
        Whether the mutation model is reversible
    rates : MutationRates, optional
        Buffers to update in place

    Returns
    -------
    tuple
        (rates, scale factor)
    """
    rates = split_mutation_rates(Q, pi_model, reversible, out=rates)

    poly = sum_freq_poly_states(pi_b, rates.r, N)
    theta_bm = poly / harmonic(N - 1)

    m_norm = mutation_rate_scale(theta, theta_bm, N)
    logger.debug(f"Normalization constant of mutation rates: {m_norm:.8g}")

    rates.scale(m_norm)
    return rates, m_norm
