"""
Save and restore PoMo model state.

The checkpoint stores the mutation model rates and the boundary
frequencies under a ``ModelPoMo`` key::

    {"ModelPoMo": {"rates": [...], "state_freq": [...]}}

Restoring rebuilds the rate matrix and its decomposition, so a restored
model is immediately usable.
"""

import json
import logging
from pathlib import Path

import numpy as np

from .config import N_ALLELES
from .errors import DataFormatError

logger = logging.getLogger(__name__)

CHECKPOINT_KEY = "ModelPoMo"


def model_state(model) -> dict:
    """Checkpoint dictionary of a PoMo model."""
    return {
        CHECKPOINT_KEY: {
            "rates": model.mutation_model.get_rates().tolist(),
            "state_freq": np.asarray(model.freq_boundary_states).tolist(),
            "theta": model.theta,
        }
    }


def restore_model_state(model, state: dict) -> None:
    """
    Apply a checkpoint dictionary to ``model``.

    Raises
    ------
    DataFormatError
        If the checkpoint does not belong to a PoMo model or has the
        wrong number of rates or frequencies
    """
    try:
        entry = state[CHECKPOINT_KEY]
        rates = np.asarray(entry["rates"], dtype=float)
        freqs = np.asarray(entry["state_freq"], dtype=float)
    except (KeyError, TypeError, ValueError):
        raise DataFormatError(f"Checkpoint has no valid '{CHECKPOINT_KEY}' entry") from None

    if len(freqs) != N_ALLELES:
        raise DataFormatError(f"Checkpoint has {len(freqs)} boundary frequencies, expected 4")

    model.mutation_model.set_rates(rates)
    if model.is_reversible:
        model.mutation_model.set_state_frequencies(freqs)
    else:
        model.freq_boundary_states[:] = freqs
    if "theta" in entry and not model.fixed_theta:
        model.theta = float(entry["theta"])

    model.normalize_mutation_rates()
    model.update_rate_matrix()
    model.decompose()
    logger.debug(f"Restored {model.name} from checkpoint")


def save_checkpoint(model, filepath: Path | str) -> None:
    """Write the model state as JSON."""
    with open(filepath, 'w') as f:
        json.dump(model_state(model), f, indent=2)


def restore_checkpoint(model, filepath: Path | str) -> None:
    """Read a JSON checkpoint written by :func:`save_checkpoint` into ``model``."""
    with open(filepath, 'r') as f:
        try:
            state = json.load(f)
        except json.JSONDecodeError as e:
            raise DataFormatError(f"{filepath}: invalid checkpoint ({e})") from None
    restore_model_state(model, state)
