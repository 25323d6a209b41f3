"""
Error types raised while setting up or evaluating a PoMo model.

All fatal configuration errors derive from :class:`PoMoError`, which is a
``ValueError`` carrying an :class:`ErrorKind`. They are raised where the
problem is detected and surface unchanged at the construction boundary
(``PoMoModel``, ``fit_pomo`` and the CLI).
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a fatal configuration error."""
    CONFIGURATION = "configuration"
    UNSUPPORTED_MODEL = "unsupported-model"
    FREQUENCY_TYPE = "frequency-type"
    STATE_COUNT = "state-count"
    INVALID_STATE = "invalid-state"
    NO_POLYMORPHIC_DATA = "no-polymorphic-data"
    THETA = "theta"
    UNSUPPORTED_DECOMPOSITION = "unsupported-decomposition"
    DATA_FORMAT = "data-format"


class PoMoError(ValueError):
    """Base class for fatal PoMo configuration errors."""

    kind = ErrorKind.CONFIGURATION


class ConfigurationError(PoMoError):
    """Invalid run configuration."""

    kind = ErrorKind.CONFIGURATION


class UnsupportedModelError(PoMoError):
    """Unknown mutation model name or a mutation model without 4 states."""

    kind = ErrorKind.UNSUPPORTED_MODEL


class FrequencyTypeError(PoMoError):
    """Unknown frequency type or missing user-defined frequencies."""

    kind = ErrorKind.FREQUENCY_TYPE


class StateCountError(PoMoError):
    """Declared number of states does not match the virtual population size."""

    kind = ErrorKind.STATE_COUNT


class InvalidStateError(PoMoError):
    """State index outside of the PoMo state space."""

    kind = ErrorKind.INVALID_STATE


class NoPolymorphicDataError(PoMoError):
    """Mutation rates cannot be calibrated without polymorphic data."""

    kind = ErrorKind.NO_POLYMORPHIC_DATA


class ThetaError(PoMoError):
    """Level of polymorphism for which the rate calibration is undefined."""

    kind = ErrorKind.THETA


class UnsupportedDecompositionError(PoMoError):
    """Matrix exponential technique not available for this rate matrix."""

    kind = ErrorKind.UNSUPPORTED_DECOMPOSITION


class DataFormatError(PoMoError):
    """Malformed counts file or pattern data."""

    kind = ErrorKind.DATA_FORMAT
