"""
PoMo rate matrix and stationary frequencies.

Between two states only three kinds of moves have a non-zero rate:

* drift by one allele count within an allele pair, including the step
  from count ``N - 1`` to fixation and from count 1 to loss of the rare
  allele (e.g. ``2A8C -> 3A7C``, ``9A1C -> 10A``, ``1A9G -> 10G``),
  at rate ``i * (N - i) / N`` for the first state's count ``i``;
* mutation out of a boundary state into the adjacent polymorphic state
  (e.g. ``10A -> 9A1C``, ``10G -> 1A9G``), at rate ``m[x, y] * pi_b[y]``.

Everything else is zero.
"""

from typing import Optional

import numpy as np

from ..config import N_ALLELES
from .rates import MutationRates, sum_freq_poly_states
from .states import StateCodec

DRIFT = "drift"
MUTATION = "mutation"


def classify_transition(codec: StateCodec, state1: int, state2: int) -> Optional[tuple]:
    """
    Kind of the direct move from ``state1`` to ``state2``.

    Returns
    -------
    tuple or None
        ``("drift", rate)``, ``("mutation", (from_allele, to_allele))`` or
        None when the states are not connected

    Raises
    ------
    ValueError
        If ``state1 == state2``; the diagonal is not a transition rate
    """
    if state1 == state2:
        raise ValueError(
            f"Transition rate requested for identical states ({state1}); "
            "the diagonal is set from the row sum"
        )

    N = codec.N
    i1, nt1, nt2 = codec.decompose(state1)
    i2, nt3, nt4 = codec.decompose(state2)
    drift = i1 * (N - i1) / N

    if nt1 == nt3 and (nt2 == nt4 or nt2 is None or nt4 is None):
        if i1 + 1 == i2:
            # 2A8C -> 3A7C or 9A1C -> 10A
            return DRIFT, drift
        if i1 - 1 == i2:
            if nt2 is None:
                # 10A -> 9A1C
                return MUTATION, (nt1, nt4)
            # 9A1C -> 8A2C
            return DRIFT, drift
        return None
    if nt1 == nt4 and nt2 is None and i2 == 1:
        # 10G -> 1A9G
        return MUTATION, (nt1, nt3)
    if nt2 == nt3 and i1 == 1 and nt4 is None:
        # 1A9G -> 10G
        return DRIFT, drift
    return None


def transition_rate(
    codec: StateCodec,
    state1: int,
    state2: int,
    rates: MutationRates,
    pi_b: np.ndarray,
) -> float:
    """Unnormalised off-diagonal rate from ``state1`` to ``state2``."""
    kind = classify_transition(codec, state1, state2)
    if kind is None:
        return 0.0
    if kind[0] == DRIFT:
        return kind[1]
    nt_from, nt_to = kind[1]
    return rates.coefficient(nt_from, nt_to) * pi_b[nt_to]


def state_frequencies(
    codec: StateCodec,
    pi_b: np.ndarray,
    rates: MutationRates,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """
    Stationary distribution of PoMo.

    Boundary states get ``pi_b[a] / Z``; a polymorphic state ``(i, a, b)``
    gets ``pi_b[a] pi_b[b] / Z * (r[a,b] (1/i + 1/(N-i)) - f[a,b] (1/i - 1/(N-i)))``
    where ``Z`` makes the vector sum to one.
    """
    N = codec.N
    freqs = out if out is not None else np.empty(codec.n_states)
    norm = 1.0 / (pi_b.sum() + sum_freq_poly_states(pi_b, rates.r, N))

    freqs[:N_ALLELES] = pi_b * norm

    i = codec.counts[N_ALLELES:]
    a = codec.first_alleles[N_ALLELES:]
    b = codec.second_alleles[N_ALLELES:]
    sym = rates.r[a, b] * (1.0 / i + 1.0 / (N - i))
    asy = -rates.f[a, b] * (1.0 / i - 1.0 / (N - i))
    freqs[N_ALLELES:] = norm * pi_b[a] * pi_b[b] * (sym + asy)
    return freqs


class RateMatrixBuilder:
    """
    Builds the PoMo rate matrix into a preallocated buffer.

    The pattern of non-zero entries only depends on N, so it is worked
    out once; :meth:`build` then fills in the current mutation rates.

    Attributes
    ----------
    rate_matrix : np.ndarray, shape (n_states, n_states)
        Normalised rate matrix (rows sum to zero)
    state_freq : np.ndarray, shape (n_states,)
        Stationary frequencies matching ``rate_matrix``
    """

    def __init__(self, codec: StateCodec):
        self.codec = codec
        n = codec.n_states
        self.rate_matrix = np.zeros((n, n))
        self.state_freq = np.zeros(n)

        drift_rows, drift_cols, drift_rates = [], [], []
        mut_rows, mut_cols, mut_from, mut_to = [], [], [], []
        for state1 in range(n):
            for state2 in range(n):
                if state1 == state2:
                    continue
                kind = classify_transition(codec, state1, state2)
                if kind is None:
                    continue
                if kind[0] == DRIFT:
                    drift_rows.append(state1)
                    drift_cols.append(state2)
                    drift_rates.append(kind[1])
                else:
                    mut_rows.append(state1)
                    mut_cols.append(state2)
                    mut_from.append(kind[1][0])
                    mut_to.append(kind[1][1])

        self._drift = (np.array(drift_rows, dtype=int), np.array(drift_cols, dtype=int))
        self._drift_rates = np.array(drift_rates)
        self._mutation = (np.array(mut_rows, dtype=int), np.array(mut_cols, dtype=int))
        self._mut_from = np.array(mut_from, dtype=int)
        self._mut_to = np.array(mut_to, dtype=int)

    def build(self, pi_b: np.ndarray, rates: MutationRates) -> float:
        """
        Recompute stationary frequencies and the rate matrix in place.

        The matrix is scaled so that the expected number of events per
        unit time under the stationary distribution is one.

        Returns
        -------
        float
            The total rate before scaling
        """
        state_frequencies(self.codec, pi_b, rates, out=self.state_freq)

        Q = self.rate_matrix
        Q.fill(0.0)
        Q[self._drift] = self._drift_rates
        Q[self._mutation] = rates.m[self._mut_from, self._mut_to] * pi_b[self._mut_to]

        row_sums = Q.sum(axis=1)
        np.fill_diagonal(Q, -row_sums)

        total_rate = float(np.dot(self.state_freq, row_sums))
        Q /= total_rate
        return total_rate
