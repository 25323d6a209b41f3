"""
Nucleotide mutation models underlying PoMo.

PoMo consumes a 4-state DNA substitution model through a small interface
(rate matrix, stationary frequencies, free parameters and their bounds).
This module provides that interface for the standard time-reversible
models, described by the rate class of each nucleotide pair, and for the
general non-reversible model UNREST.
"""

import re
from enum import Enum
from typing import Optional

import numpy as np
from scipy.linalg import null_space

from ..config import (
    ALLELES, N_ALLELES, MIN_RATE, MAX_RATE, MIN_FREQ_RATIO, MAX_FREQ_RATIO,
)
from ..core.matrix import create_reversible_Q
from ..errors import ConfigurationError, FrequencyTypeError, UnsupportedModelError


class FreqType(str, Enum):
    """How the stationary frequencies of the mutation model are obtained."""
    EQUAL = "equal"
    ESTIMATE = "estimate"
    EMPIRICAL = "empirical"
    USER_DEFINED = "user"
    UNKNOWN = "unknown"


# Model string suffixes
_FREQ_TYPE_ALIASES = {
    "+FQ": FreqType.EQUAL,
    "FQ": FreqType.EQUAL,
    "+FO": FreqType.ESTIMATE,
    "FO": FreqType.ESTIMATE,
    "+F": FreqType.EMPIRICAL,
    "F": FreqType.EMPIRICAL,
    "+FU": FreqType.USER_DEFINED,
    "FU": FreqType.USER_DEFINED,
}


def parse_freq_type(value: "FreqType | str | None") -> Optional[FreqType]:
    """
    Interpret a frequency type given as enum, name or model string suffix (+F, +FQ, +FO, +FU).

    Raises
    ------
    FrequencyTypeError
        If the value is not a known frequency type
    """
    if value is None or isinstance(value, FreqType):
        return value
    key = value.strip()
    if key.upper() in _FREQ_TYPE_ALIASES:
        return _FREQ_TYPE_ALIASES[key.upper()]
    try:
        return FreqType(key.lower())
    except ValueError:
        raise FrequencyTypeError(f"Unknown frequency type: {value}") from None


# Nucleotide pairs of the exchangeability vector
DNA_PAIRS = [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)]

# Rate class of each pair (AC, AG, AT, CG, CT, GT) and whether the model
# has equal state frequencies. The class of GT is fixed to 1.
DNA_MODELS = {
    "JC": ("000000", True),
    "JC69": ("000000", True),
    "F81": ("000000", False),
    "K80": ("010010", True),
    "K2P": ("010010", True),
    "HKY": ("010010", False),
    "HKY85": ("010010", False),
    "TN": ("010020", False),
    "TN93": ("010020", False),
    "TRN": ("010020", False),
    "TNE": ("010020", True),
    "K81": ("012210", True),
    "K3P": ("012210", True),
    "K81U": ("012210", False),
    "TPM2": ("010212", True),
    "TPM2U": ("010212", False),
    "TPM3": ("012012", True),
    "TPM3U": ("012012", False),
    "TIM": ("012230", False),
    "TIME": ("012230", True),
    "TIM2": ("010232", False),
    "TIM2E": ("010232", True),
    "TIM3": ("012032", False),
    "TIM3E": ("012032", True),
    "TVM": ("412310", False),
    "TVME": ("412310", True),
    "SYM": ("012345", True),
    "GTR": ("012345", False),
}

# Off-diagonal entries of UNREST in parameter order; TG is fixed to 1
UNREST_PAIRS = [
    (i, j) for i in range(N_ALLELES) for j in range(N_ALLELES) if i != j
]
NONREV_MODELS = {"UNREST"}

# Models with a different number of states that users may try
_NON_DNA_MODELS = {"WAG", "LG", "JTT", "DAYHOFF", "BLOSUM62", "GY", "MG", "M0"}


def _parse_numbers(text: str) -> list[float]:
    """Parse comma, slash or whitespace separated numbers."""
    tokens = [t for t in re.split(r'[,/\s]+', text.strip()) if t]
    try:
        return [float(t) for t in tokens]
    except ValueError:
        raise ConfigurationError(f"Could not parse numbers from '{text}'") from None


def valid_model_name(name: str) -> bool:
    """True if ``name`` is a supported 4-state mutation model."""
    key = name.upper()
    return key in DNA_MODELS or key in NONREV_MODELS


class DNAMutationModel:
    """
    Four-state nucleotide mutation model.

    Parameters
    ----------
    name : str
        Model name (e.g. 'HKY', 'GTR', 'UNREST')
    model_params : str
        Fixed rate parameters; empty to estimate them
    freq_type : FreqType or str, optional
        Frequency type; defaults to equal frequencies for models that
        require them and empirical frequencies otherwise
    freq_params : str
        User-defined frequencies (A, C, G, T) for ``FreqType.USER_DEFINED``

    Attributes
    ----------
    is_reversible : bool
        False for UNREST
    state_freq : np.ndarray, shape (4,)
        Stationary frequencies of reversible models

    Examples
    --------
    >>> model = DNAMutationModel("HKY", "2.0")
    >>> model.ndim
    0
    >>> model.rate_matrix().shape
    (4, 4)
    """

    def __init__(
        self,
        name: str,
        model_params: str = "",
        freq_type: "FreqType | str | None" = None,
        freq_params: str = "",
    ):
        key = name.upper()
        if key not in DNA_MODELS and key not in NONREV_MODELS:
            if key in _NON_DNA_MODELS:
                raise UnsupportedModelError(
                    f"PoMo only works with DNA models; {name} does not have 4 states"
                )
            raise UnsupportedModelError(f"Unknown mutation model: {name}")

        self.name = key if key in NONREV_MODELS else name
        self.is_reversible = key not in NONREV_MODELS
        freq_type = parse_freq_type(freq_type)

        if self.is_reversible:
            codes, equal_freqs = DNA_MODELS[key]
            self.rate_codes = [int(c) for c in codes]
            self.fixed_code = self.rate_codes[-1]
            self.free_codes = sorted(set(self.rate_codes) - {self.fixed_code})
            if freq_type is None:
                freq_type = FreqType.EQUAL if equal_freqs else FreqType.EMPIRICAL
        else:
            self.rate_codes = list(range(len(UNREST_PAIRS)))
            self.fixed_code = self.rate_codes[-1]
            self.free_codes = self.rate_codes[:-1]
            if freq_type is None:
                freq_type = FreqType.EMPIRICAL

        self.freq_type = freq_type
        self.code_rates = np.ones(max(self.rate_codes) + 1)

        self.fixed_params = len(model_params.strip()) > 0
        if self.fixed_params:
            values = _parse_numbers(model_params)
            if len(values) != len(self.free_codes):
                raise ConfigurationError(
                    f"Model {self.name} takes {len(self.free_codes)} rate "
                    f"parameters, got {len(values)}"
                )
            if any(v <= 0 for v in values):
                raise ConfigurationError(f"Rates must be positive, got {values}")
            self.code_rates[self.free_codes] = values

        self.state_freq = np.ones(N_ALLELES) / N_ALLELES
        if self.freq_type == FreqType.USER_DEFINED:
            if freq_params.strip():
                freqs = np.array(_parse_numbers(freq_params))
                if len(freqs) != N_ALLELES or np.any(freqs < 0) or freqs.sum() <= 0:
                    raise FrequencyTypeError(
                        f"User-defined frequencies need 4 non-negative values, "
                        f"got '{freq_params}'"
                    )
                self.state_freq = freqs / freqs.sum()
            else:
                # Left unset; PoMo reports this as an error
                self.state_freq = np.zeros(N_ALLELES)

    @property
    def full_name(self) -> str:
        """Descriptive model name."""
        kind = "reversible" if self.is_reversible else "non-reversible"
        return f"{self.name} ({kind}, {self.freq_type.value} frequencies)"

    @property
    def n_rate_params(self) -> int:
        """Number of free rate parameters."""
        return 0 if self.fixed_params else len(self.free_codes)

    @property
    def n_freq_params(self) -> int:
        """Number of free frequency parameters."""
        if self.is_reversible and self.freq_type == FreqType.ESTIMATE:
            return N_ALLELES - 1
        return 0

    @property
    def ndim(self) -> int:
        """Number of free parameters."""
        return self.n_rate_params + self.n_freq_params

    # Rates

    def get_rates(self) -> np.ndarray:
        """Rate of every pair (6 for reversible models, 12 for UNREST)."""
        return self.code_rates[self.rate_codes].copy()

    def set_rates(self, rates) -> None:
        """Set rates from a per-pair vector as returned by :meth:`get_rates`."""
        rates = np.asarray(rates, dtype=float)
        if len(rates) != len(self.rate_codes):
            raise ConfigurationError(
                f"Model {self.name} has {len(self.rate_codes)} rates, got {len(rates)}"
            )
        for pair, code in enumerate(self.rate_codes):
            self.code_rates[code] = rates[pair]

    def exchangeabilities(self) -> np.ndarray:
        """Rate of each ordered pair as a 4x4 matrix with zero diagonal."""
        S = np.zeros((N_ALLELES, N_ALLELES))
        pairs = DNA_PAIRS if self.is_reversible else UNREST_PAIRS
        for (i, j), rate in zip(pairs, self.get_rates()):
            S[i, j] = rate
            if self.is_reversible:
                S[j, i] = rate
        return S

    # Frequencies

    def state_frequencies(self) -> np.ndarray:
        """Stationary frequencies of the mutation model."""
        if self.is_reversible:
            return self.state_freq
        return self._stationary_from_Q(self._unnormalized_Q())

    def set_state_frequencies(self, pi) -> None:
        """Set stationary frequencies (reversible models only)."""
        pi = np.asarray(pi, dtype=float)
        if len(pi) != N_ALLELES:
            raise ConfigurationError(f"Need {N_ALLELES} frequencies, got {len(pi)}")
        self.state_freq[:] = pi

    # Rate matrix

    def _unnormalized_Q(self) -> np.ndarray:
        Q = self.exchangeabilities()
        np.fill_diagonal(Q, -Q.sum(axis=1))
        return Q

    @staticmethod
    def _stationary_from_Q(Q: np.ndarray) -> np.ndarray:
        kernel = null_space(Q.T)
        pi = np.abs(kernel[:, 0])
        return pi / pi.sum()

    def rate_matrix(self) -> np.ndarray:
        """
        Rate matrix Q normalised to one substitution per unit time.

        For reversible models ``Q[i, j] = S[i, j] * pi[j]``.
        """
        if self.is_reversible:
            return create_reversible_Q(self.exchangeabilities(), self.state_freq)

        Q = self._unnormalized_Q()
        pi = self._stationary_from_Q(Q)
        return Q / -np.dot(pi, Q.diagonal())

    # Optimizer interface

    def get_variables(self) -> np.ndarray:
        """Free parameters: rates, then frequency ratios ``pi[i] / pi[T]``."""
        values = []
        if not self.fixed_params:
            values.extend(self.code_rates[self.free_codes])
        if self.n_freq_params:
            pi = self.state_freq
            values.extend(pi[:-1] / pi[-1])
        return np.array(values, dtype=float)

    def set_variables(self, variables) -> bool:
        """
        Apply free parameters.

        Returns
        -------
        bool
            True if any parameter changed
        """
        variables = np.asarray(variables, dtype=float)
        if len(variables) != self.ndim:
            raise ValueError(f"Expected {self.ndim} variables, got {len(variables)}")

        changed = not np.array_equal(variables, self.get_variables())
        k = 0
        if not self.fixed_params:
            self.code_rates[self.free_codes] = variables[:len(self.free_codes)]
            k = len(self.free_codes)
        if self.n_freq_params:
            ratios = np.append(variables[k:k + N_ALLELES - 1], 1.0)
            self.state_freq[:] = ratios / ratios.sum()
        return changed

    def get_bounds(self) -> list[tuple[float, float]]:
        """Bounds of the free parameters in :meth:`get_variables` order."""
        return (
            [(MIN_RATE, MAX_RATE)] * self.n_rate_params
            + [(MIN_FREQ_RATIO, MAX_FREQ_RATIO)] * self.n_freq_params
        )

    def rate_labels(self) -> list[str]:
        """Pair labels matching :meth:`get_rates`."""
        pairs = DNA_PAIRS if self.is_reversible else UNREST_PAIRS
        return [ALLELES[i] + ALLELES[j] for i, j in pairs]


def make_mutation_model(
    name: str,
    model_params: str = "",
    freq_type: "FreqType | str | None" = None,
    freq_params: str = "",
    n_states: int = N_ALLELES,
) -> DNAMutationModel:
    """
    Build the mutation model underlying PoMo.

    Raises
    ------
    UnsupportedModelError
        If the model is unknown or does not act on 4 states
    """
    if n_states != N_ALLELES:
        raise UnsupportedModelError(
            f"PoMo only works with DNA models; got a model with {n_states} states"
        )
    return DNAMutationModel(name, model_params, freq_type, freq_params)
