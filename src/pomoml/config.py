"""
Model constants and run configuration for PoMo.
"""

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigurationError


# Alleles and allele pairs
N_ALLELES = 4
N_CONNECTIONS = N_ALLELES * (N_ALLELES - 1) // 2
ALLELES = "ACGT"

# Band for empirical boundary state frequencies
POMO_MIN_BOUNDARY_FREQ = 0.05
POMO_MAX_BOUNDARY_FREQ = 0.95

# Band for the level of polymorphism when it is estimated
POMO_MIN_THETA = 1e-4
POMO_MAX_THETA = 1e-1

# Stationary frequencies below this value flag unstable parameters
POMO_EPS = 1e-6

# Bounds for the parameters of the DNA mutation model
MIN_RATE = 1e-4
MAX_RATE = 100.0
MIN_FREQ_RATIO = 1e-3
MAX_FREQ_RATIO = 1e3

# Branch length bounds used by the optimizer
MIN_BRANCH_LENGTH = 1e-6
MAX_BRANCH_LENGTH = 50.0


class SamplingMethod(str, Enum):
    """How population counts are turned into PoMo tip states."""
    WEIGHTED = "weighted"
    SAMPLED = "sampled"


class MatrixExpTechnique(str, Enum):
    """Technique used to exponentiate the rate matrix."""
    EIGEN = "eigen"
    SCALING_SQUARING = "scaling-squaring"
    EIGEN3LIB = "eigen3lib"
    LIE_MARKOV = "lie-markov"


class Verbosity(str, Enum):
    """Diagnostic output level."""
    SILENT = "silent"
    NORMAL = "normal"
    VERBOSE = "verbose"


@dataclass
class PoMoConfig:
    """
    Run configuration of a PoMo model.

    Attributes
    ----------
    min_boundary_freq, max_boundary_freq : float
        Band into which empirical boundary frequencies are clamped
    min_theta, max_theta : float
        Bounds for theta when it is a free parameter
    matrix_exp_technique : MatrixExpTechnique
        Decomposition technique for non-reversible rate matrices
    sampling_method : SamplingMethod
        Weighted or sampled treatment of population counts
    verbosity : Verbosity
        Diagnostic output level
    seed : int, optional
        Seed for sampling population counts down to N
    """

    min_boundary_freq: float = POMO_MIN_BOUNDARY_FREQ
    max_boundary_freq: float = POMO_MAX_BOUNDARY_FREQ
    min_theta: float = POMO_MIN_THETA
    max_theta: float = POMO_MAX_THETA
    matrix_exp_technique: MatrixExpTechnique = MatrixExpTechnique.EIGEN
    sampling_method: SamplingMethod = SamplingMethod.WEIGHTED
    verbosity: Verbosity = Verbosity.NORMAL
    seed: Optional[int] = None

    def __post_init__(self):
        self.matrix_exp_technique = MatrixExpTechnique(self.matrix_exp_technique)
        self.sampling_method = SamplingMethod(self.sampling_method)
        self.verbosity = Verbosity(self.verbosity)
        self.validate()

    def validate(self) -> None:
        """Reject empty or inverted bands."""
        if not 0.0 < self.min_boundary_freq < self.max_boundary_freq < 1.0:
            raise ConfigurationError(
                f"Invalid boundary frequency band "
                f"[{self.min_boundary_freq}, {self.max_boundary_freq}]"
            )
        if self.min_boundary_freq * N_ALLELES > 1.0:
            raise ConfigurationError(
                f"Minimum boundary frequency {self.min_boundary_freq} "
                f"cannot be met by {N_ALLELES} alleles"
            )
        if not 0.0 < self.min_theta < self.max_theta:
            raise ConfigurationError(
                f"Invalid theta band [{self.min_theta}, {self.max_theta}]"
            )

    @classmethod
    def from_yaml(cls, filepath: Path | str) -> "PoMoConfig":
        """
        Load a configuration from a YAML mapping.

        Keys are the field names of this class; missing keys keep
        their defaults.

        Examples
        --------
        >>> config = PoMoConfig.from_yaml("pomo.yaml")
        >>> config.sampling_method
        <SamplingMethod.WEIGHTED: 'weighted'>
        """
        with open(filepath, 'r') as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration {filepath} is not a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys in {filepath}: {sorted(unknown)}"
            )

        try:
            return cls(**raw)
        except ValueError as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid configuration in {filepath}: {e}") from e

    def to_dict(self) -> dict:
        """Plain dictionary of the configuration (enums as values)."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, Enum) else value
        return out
