"""
PoMo state space.

A PoMo state is either a boundary state (one allele fixed in the
population, ids 0-3) or a polymorphic state ``(i, a, b)`` where allele
``a`` is present in ``i`` of ``N`` individuals and allele ``b`` (with
``a < b``) in the other ``N - i``. Polymorphic states are laid out in six bands of
``N - 1`` states, one band per allele pair in the order AC, AG, AT, CG,
CT, GT:

    id = 4 + pair_index * (N - 1) + (i - 1)
"""

from typing import Optional

import numpy as np

from ..config import ALLELES, N_ALLELES, N_CONNECTIONS
from ..errors import InvalidStateError, StateCountError

# Allele pairs in band order
ALLELE_PAIRS = [(a, b) for a in range(N_ALLELES) for b in range(a + 1, N_ALLELES)]
PAIR_INDEX = {pair: k for k, pair in enumerate(ALLELE_PAIRS)}
PAIR_LABELS = [ALLELES[a] + ALLELES[b] for a, b in ALLELE_PAIRS]


def n_pomo_states(N: int) -> int:
    """Number of PoMo states for virtual population size N."""
    return N_ALLELES + N_CONNECTIONS * (N - 1)


def check_n_states(N: int, n_states: int) -> None:
    """Raise StateCountError if ``n_states`` does not fit N."""
    expected = n_pomo_states(N)
    if n_states != expected:
        raise StateCountError(
            f"Data declares {n_states} states but PoMo with N={N} "
            f"has {expected} states"
        )


class StateCodec:
    """
    Bijection between PoMo state ids and ``(count, nt1, nt2)`` triples.

    Parameters
    ----------
    N : int
        Virtual population size (at least 2)

    Examples
    --------
    >>> codec = StateCodec(10)
    >>> codec.n_states
    58
    >>> codec.decompose(0)
    (10, 0, None)
    >>> codec.decompose(4)
    (1, 0, 1)
    >>> codec.compose(9, 2, 3)
    57
    """

    def __init__(self, N: int):
        if N < 2:
            raise ValueError(f"Virtual population size must be at least 2, got {N}")
        self.N = N
        self.n_states = n_pomo_states(N)

        # Vector views of the decomposition; nt2 is -1 for boundary states
        self.counts = np.empty(self.n_states, dtype=int)
        self.first_alleles = np.empty(self.n_states, dtype=int)
        self.second_alleles = np.empty(self.n_states, dtype=int)
        for state in range(self.n_states):
            i, a, b = self.decompose(state)
            self.counts[state] = i
            self.first_alleles[state] = a
            self.second_alleles[state] = -1 if b is None else b

    def decompose(self, state: int) -> tuple[int, int, Optional[int]]:
        """
        Decompose a state id.

        Returns
        -------
        tuple
            ``(count, nt1, nt2)``; for boundary states ``(N, allele, None)``

        Raises
        ------
        InvalidStateError
            If the state id is outside ``[0, n_states)``
        """
        if state < 0 or state >= self.n_states:
            raise InvalidStateError(
                f"State {state} exceeds limit of {self.n_states} PoMo states"
            )
        if state < N_ALLELES:
            return self.N, state, None

        band, offset = divmod(state - N_ALLELES, self.N - 1)
        a, b = ALLELE_PAIRS[band]
        return offset + 1, a, b

    def compose(self, count: int, nt1: int, nt2: Optional[int] = None) -> int:
        """
        State id of a boundary or polymorphic state.

        ``compose(N, a)`` (or ``nt2=None``) gives the boundary state of
        allele ``a``. For polymorphic states ``nt1 < nt2`` and
        ``1 <= count <= N - 1``.
        """
        if nt2 is None:
            if count != self.N or not 0 <= nt1 < N_ALLELES:
                raise InvalidStateError(
                    f"Boundary state needs count {self.N} and an allele in 0-3, "
                    f"got count={count}, allele={nt1}"
                )
            return nt1

        if (nt1, nt2) not in PAIR_INDEX:
            raise InvalidStateError(f"Invalid allele pair ({nt1}, {nt2})")
        if not 1 <= count <= self.N - 1:
            raise InvalidStateError(
                f"Polymorphic count must be in [1, {self.N - 1}], got {count}"
            )
        return N_ALLELES + PAIR_INDEX[(nt1, nt2)] * (self.N - 1) + (count - 1)

    def is_boundary(self, state: int) -> bool:
        """True iff the state is a boundary (fixed allele) state."""
        return state < N_ALLELES

    def is_polymorphic(self, state: int) -> bool:
        """True iff the state is a polymorphic state."""
        return not self.is_boundary(state)

    def label(self, state: int) -> str:
        """Human-readable label, e.g. ``10A`` or ``3A7C``."""
        i, a, b = self.decompose(state)
        if b is None:
            return f"{i}{ALLELES[a]}"
        return f"{i}{ALLELES[a]}{self.N - i}{ALLELES[b]}"
