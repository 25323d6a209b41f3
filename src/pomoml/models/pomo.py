"""
Polymorphism-aware phylogenetic model (PoMo).

PoMo extends a 4-state nucleotide mutation model with polymorphic states
of a virtual population of size N. Mutation rates of the underlying model
are calibrated to a level of polymorphism theta, drift moves allele
counts by one, and the resulting rate matrix is decomposed for fast
computation of transition probabilities.
"""

import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np
import pandas as pd

from ..config import ALLELES, N_ALLELES, POMO_EPS, PoMoConfig, SamplingMethod, Verbosity
from ..core.matrix import EigenSystem, decompose_rate_matrix, matrix_exponential
from ..errors import FrequencyTypeError, NoPolymorphicDataError, ThetaError
from .dna import DNA_PAIRS, UNREST_PAIRS, FreqType, make_mutation_model
from .frequencies import estimate_boundary_frequencies, estimate_watterson_theta, harmonic
from .rate_matrix import RateMatrixBuilder, state_frequencies
from .rates import MutationRates, normalize_mutation_rates, sum_freq_poly_states_no_mutation
from .states import StateCodec, check_n_states

logger = logging.getLogger(__name__)


class Reversibility(str, Enum):
    """Whether PoMo inherits a reversible mutation model."""
    REVERSIBLE = "reversible"
    NON_REVERSIBLE = "non-reversible"


class ThetaSource(str, Enum):
    """Provenance of the level of polymorphism."""
    ESTIMATED = "estimated"
    EMPIRICAL = "empirical"
    USER = "user"


class PoMoModel:
    """
    PoMo substitution model.

    Parameters
    ----------
    data : PoMoData
        Site patterns; provides N, the sampling method and the counts
        used for empirical boundary frequencies and theta
    model_name : str
        Underlying DNA mutation model (e.g. 'HKY', 'GTR', 'UNREST')
    model_params : str
        Fixed mutation model rates; empty to estimate them
    freq_type : FreqType or str, optional
        Boundary frequency type (default depends on the mutation model)
    freq_params : str
        User-defined boundary frequencies
    theta : str
        ``""`` to estimate theta, ``"EMP"`` to fix it to Watterson's
        estimate from the data, or a decimal number to fix it to that value
    config : PoMoConfig, optional
        Bands, matrix exponential technique and verbosity
    n_states : int, optional
        Number of states declared by the data; must equal ``4 + 6 (N - 1)``

    Examples
    --------
    >>> data = PoMoData.from_counts_file("primates.cf", virtual_pop_size=9)
    >>> model = PoMoModel(data, "HKY", theta="EMP")
    >>> model.name
    'HKY+P{EMP}+N9+W'
    >>> model.rate_matrix.shape
    (52, 52)
    """

    def __init__(
        self,
        data,
        model_name: str = "HKY",
        model_params: str = "",
        freq_type: "FreqType | str | None" = None,
        freq_params: str = "",
        theta: str = "",
        config: Optional[PoMoConfig] = None,
        n_states: Optional[int] = None,
    ):
        self.config = config if config is not None else PoMoConfig()
        self.N = data.virtual_pop_size
        self.sampling_method = SamplingMethod(data.sampling_method)
        self.codec = StateCodec(self.N)
        self.n_states = self.codec.n_states
        check_n_states(self.N, data.n_states if n_states is None else n_states)

        logger.info("Initialize PoMo DNA mutation model.")
        self.mutation_model = make_mutation_model(model_name, model_params, freq_type, freq_params)
        self.reversibility = (
            Reversibility.REVERSIBLE if self.mutation_model.is_reversible
            else Reversibility.NON_REVERSIBLE
        )
        self._init_names(model_params, theta)

        self.freq_boundary_states_emp = estimate_boundary_frequencies(
            data, self.config.min_boundary_freq, self.config.max_boundary_freq
        )
        self._init_boundary_frequencies()

        self.theta_emp = estimate_watterson_theta(data)
        self.theta = self.theta_emp
        self._init_fixed_parameters(theta)

        self.mutation_rates = MutationRates()
        self.builder = RateMatrixBuilder(self.codec)
        self.total_rate = None
        self.eigen: Optional[EigenSystem] = None

        self._check_polymorphism()
        self.normalize_mutation_rates()
        self.update_rate_matrix()
        self.decompose()

        logger.info("Initialized PoMo model.")
        logger.info(f"Model name: {self.name}.")
        logger.info(self.full_name)
        if self.config.verbosity == Verbosity.VERBOSE:
            logger.debug(self.write_info())

    # Initialization

    def _init_names(self, model_params: str, theta: str) -> None:
        name = self.mutation_model.name
        if model_params:
            name += "{" + model_params + "}"
        name += "+P"
        if theta:
            name += "{" + theta + "}"
        name += f"+N{self.N}"
        if self.sampling_method == SamplingMethod.SAMPLED:
            name += "+S"
            sampling = "Sampled"
        else:
            name += "+W"
            sampling = "Weighted"
        self.name = name
        self.full_name = (
            f"PoMo with N={self.N} and {self.mutation_model.full_name} mutation model; "
            f"Sampling method: {sampling}; {self.n_states} states in total."
        )

    def _init_boundary_frequencies(self) -> None:
        """Boundary frequencies according to the frequency type."""
        freq_type = self.mutation_model.freq_type
        self.freq_type = freq_type

        if freq_type == FreqType.EQUAL:
            freqs = np.ones(N_ALLELES) / N_ALLELES
        elif freq_type in (FreqType.ESTIMATE, FreqType.EMPIRICAL):
            # Estimation starts at the empirical frequencies
            freqs = self.freq_boundary_states_emp.copy()
        elif freq_type == FreqType.USER_DEFINED:
            freqs = self.mutation_model.state_freq.copy()
            if freqs.sum() <= 0.0:
                raise FrequencyTypeError("State frequencies not specified")
        elif freq_type == FreqType.UNKNOWN:
            raise FrequencyTypeError("No frequency type given.")
        else:
            raise FrequencyTypeError(f"Unknown frequency type: {freq_type}")

        if self.mutation_model.is_reversible:
            # Boundary frequencies are the mutation model's frequencies, so
            # estimated frequencies move both
            self.mutation_model.set_state_frequencies(freqs)
            self.freq_boundary_states = self.mutation_model.state_freq
        else:
            self.freq_boundary_states = freqs

    def _init_fixed_parameters(self, theta: str) -> None:
        """Interpret the theta directive."""
        self.fixed_model_params = self.mutation_model.fixed_params
        self.fixed_theta = False
        self.fixed_theta_emp = False
        self.fixed_theta_usr = False

        theta = theta.strip()
        if not theta:
            return
        self.fixed_theta = True
        if theta.upper() == "EMP":
            self.fixed_theta_emp = True
            logger.info(
                f"Level of polymorphism is fixed to the estimate from the data: {self.theta:.5g}."
            )
        else:
            try:
                self.theta = float(theta)
            except ValueError:
                raise ThetaError(f"Cannot interpret level of polymorphism '{theta}'") from None
            self.fixed_theta_usr = True
            logger.info(
                f"Level of polymorphism is fixed to the value given by the user: {self.theta:.5g}."
            )

    def _check_polymorphism(self) -> None:
        no_mutation_mass = sum_freq_poly_states_no_mutation(self.freq_boundary_states, self.N)
        if not self.fixed_theta and (self.theta_emp <= 0 or no_mutation_mass <= 0):
            logger.warning("We strongly discourage to use PoMo on data without polymorphisms.")
            raise NoPolymorphicDataError(
                "Setting the level of polymorphism without population data is not supported; "
                "fix theta to a value instead"
            )

    # Properties

    @property
    def is_reversible(self) -> bool:
        return self.reversibility == Reversibility.REVERSIBLE

    @property
    def theta_source(self) -> ThetaSource:
        if self.fixed_theta_emp:
            return ThetaSource.EMPIRICAL
        if self.fixed_theta_usr:
            return ThetaSource.USER
        return ThetaSource.ESTIMATED

    @property
    def rate_matrix(self) -> np.ndarray:
        """Normalised PoMo rate matrix."""
        return self.builder.rate_matrix

    @property
    def state_freq(self) -> np.ndarray:
        """Stationary frequencies of all PoMo states."""
        return self.builder.state_freq

    # Rate calibration and matrix

    def normalize_mutation_rates(self) -> float:
        """
        Calibrate mutation rates to the current theta.

        Returns
        -------
        float
            The scale factor applied to the raw mutation rates
        """
        _, m_norm = normalize_mutation_rates(
            self.mutation_model.rate_matrix(),
            self.mutation_model.state_frequencies(),
            self.freq_boundary_states,
            self.theta,
            self.N,
            self.is_reversible,
            rates=self.mutation_rates,
        )
        # Stationary frequencies with the rescaled rates
        state_frequencies(
            self.codec, self.freq_boundary_states, self.mutation_rates, out=self.builder.state_freq
        )
        return m_norm

    def update_rate_matrix(self) -> None:
        """Recompute stationary frequencies and the normalised rate matrix."""
        self.total_rate = self.builder.build(self.freq_boundary_states, self.mutation_rates)

    def decompose(self) -> None:
        """Decompose the rate matrix for transition probabilities."""
        self.eigen = decompose_rate_matrix(
            self.rate_matrix,
            self.state_freq,
            self.is_reversible,
            self.config.matrix_exp_technique,
        )

    def scale_mutation_rates(self, scale: float) -> None:
        """Multiply all mutation rates by ``scale`` and rebuild the rate matrix."""
        self.mutation_rates.scale(scale)
        self.update_rate_matrix()
        self.decompose()

    def transition_matrix(self, t: float) -> np.ndarray:
        """Transition probabilities P(t) along a branch of length t."""
        if self.eigen is None:
            return np.clip(matrix_exponential(self.rate_matrix, t), 0.0, None)
        return self.eigen.transition_matrix(t)

    def is_unstable(self) -> bool:
        """True if some state has a vanishing stationary frequency."""
        return bool(np.any(self.state_freq < POMO_EPS))

    # Optimizer interface

    @property
    def ndim(self) -> int:
        """Number of free parameters."""
        return self.mutation_model.ndim + (0 if self.fixed_theta else 1)

    @property
    def ndim_freq(self) -> int:
        """Number of free frequency parameters."""
        return self.mutation_model.n_freq_params

    def get_variables(self) -> np.ndarray:
        """Current free parameters: mutation model parameters, then theta."""
        variables = self.mutation_model.get_variables()
        if not self.fixed_theta:
            variables = np.append(variables, self.theta)
        return variables

    def set_variables(self, variables) -> bool:
        """
        Apply free parameters and rebuild the model.

        Mutation rates are renormalised, the rate matrix rebuilt and
        decomposed before returning. If any stage fails the previous
        parameters are restored and the error is re-raised.

        Returns
        -------
        bool
            True if any parameter changed
        """
        variables = np.asarray(variables, dtype=float)
        if len(variables) != self.ndim:
            raise ValueError(f"Expected {self.ndim} variables, got {len(variables)}")

        previous = self.get_variables()
        k = self.mutation_model.ndim
        try:
            changed = self.mutation_model.set_variables(variables[:k])
            if not self.fixed_theta:
                changed |= self.theta != variables[k]
                self.theta = float(variables[k])
            self._rebuild()
        except Exception:
            self.mutation_model.set_variables(previous[:k])
            if not self.fixed_theta:
                self.theta = float(previous[k])
            self._rebuild()
            raise
        return changed

    def _rebuild(self) -> None:
        self.normalize_mutation_rates()
        self.update_rate_matrix()
        self.decompose()

    def get_bounds(self) -> list[tuple[float, float]]:
        """Bounds of the free parameters in :meth:`get_variables` order."""
        bounds = self.mutation_model.get_bounds()
        if not self.fixed_theta:
            bounds.append((self.config.min_theta, self.config.max_theta))
        return bounds

    def target_function(
        self, variables, log_likelihood: Callable[["PoMoModel"], float]
    ) -> float:
        """
        Objective for the optimizer.

        Applies ``variables`` (which rebuilds and decomposes the rate
        matrix) and returns the negative log-likelihood computed by
        ``log_likelihood(model)``.
        """
        self.set_variables(variables)
        return -log_likelihood(self)

    # Reporting

    def mutation_rates_upper(self) -> np.ndarray:
        """Mutation rates in the order AC, AG, AT, CG, CT, GT."""
        return np.array([self.mutation_rates.m[i, j] for i, j in DNA_PAIRS])

    def labelled_mutation_rates(self) -> dict:
        """
        Mutation rates keyed by allele pair.

        Reversible models give the six pairs AC .. GT; UNREST gives all
        twelve ordered pairs AC, AG, AT, CA, .. TG.
        """
        pairs = DNA_PAIRS if self.is_reversible else UNREST_PAIRS
        return {
            label: float(self.mutation_rates.m[i, j])
            for label, (i, j) in zip(self.mutation_model.rate_labels(), pairs)
        }

    def report_rates(self) -> str:
        rates = " ".join(f"{x:.8g}" for x in self.mutation_rates_upper())
        return f"Mutation rates (in the order AC, AG, AT, CG, CT, GT):\n{rates}"

    def report(self) -> str:
        """Human-readable report of the model."""
        lines = []
        lines.append("Reversible PoMo." if self.is_reversible else "Non-reversible PoMo.")
        lines.append(f"Virtual population size N: {self.N}")
        if self.sampling_method == SamplingMethod.SAMPLED:
            lines.append("Sampling method: Sampled.")
        else:
            lines.append("Sampling method: Weighted.")
        lines.append("")
        lines.append("Estimated quantities")
        lines.append("--------------------")
        if self.ndim_freq > 0:
            lines.append("Frequencies of boundary states (in the order A, C, G, T):")
            lines.append(" ".join(f"{x:.8g}" for x in self.freq_boundary_states))
        lines.append(self.report_rates())

        if self.theta_source == ThetaSource.EMPIRICAL:
            label = "Empirical heterozygosity"
        elif self.theta_source == ThetaSource.USER:
            label = "User-defined heterozygosity"
        else:
            label = "Estimated heterozygosity"
        lines.append(f"{label}: {self.theta:.8g}")

        lines.append("")
        lines.append("Empirical quantities")
        lines.append("--------------------")
        lines.append("Frequencies of boundary states (in the order A, C, G, T):")
        lines.append(" ".join(f"{x:.8g}" for x in self.freq_boundary_states_emp))
        lines.append(f"Watterson's Theta: {self.theta_emp:.8g}")
        lines.append("")
        return "\n".join(lines)

    def write_info(self) -> str:
        """Boundary frequencies and the 4x4 mutation rate matrix."""
        lines = [
            "Frequency of boundary states: "
            + " ".join(f"{x:.8g}" for x in self.freq_boundary_states),
            "Mutation rate matrix: ",
        ]
        for row in self.mutation_rates.m:
            lines.append(" ".join(f"{x:.8g}" for x in row))
        return "\n".join(lines)

    def state_table(self) -> pd.DataFrame:
        """Table of all PoMo states with their stationary frequencies."""
        nt2 = self.codec.second_alleles
        return pd.DataFrame({
            "state": np.arange(self.n_states),
            "label": [self.codec.label(s) for s in range(self.n_states)],
            "count": self.codec.counts,
            "allele1": [ALLELES[a] for a in self.codec.first_alleles],
            "allele2": [ALLELES[b] if b >= 0 else "" for b in nt2],
            "frequency": self.state_freq.copy(),
        })

    def polymorphic_mass(self) -> float:
        """Stationary frequency of all polymorphic states divided by H(N-1)."""
        return float(self.state_freq[N_ALLELES:].sum() / harmonic(self.N - 1))
