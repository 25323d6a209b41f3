"""
Unit tests for model checkpoints.
"""

import json

import numpy as np
import pytest

from pomoml.checkpoint import (
    CHECKPOINT_KEY,
    model_state,
    restore_checkpoint,
    restore_model_state,
    save_checkpoint,
)
from pomoml.errors import DataFormatError
from pomoml.models.pomo import PoMoModel


def test_model_state_keys(weighted_data):
    state = model_state(PoMoModel(weighted_data, "HKY"))
    assert set(state[CHECKPOINT_KEY]) == {"rates", "state_freq", "theta"}
    assert len(state[CHECKPOINT_KEY]["state_freq"]) == 4


def test_round_trip(weighted_data, tmp_path):
    fitted = PoMoModel(weighted_data, "HKY")
    fitted.set_variables([3.0, 0.05])
    path = tmp_path / "model.json"
    save_checkpoint(fitted, path)

    fresh = PoMoModel(weighted_data, "HKY")
    restore_checkpoint(fresh, path)

    np.testing.assert_allclose(fresh.get_variables(), [3.0, 0.05])
    np.testing.assert_allclose(fresh.rate_matrix, fitted.rate_matrix)
    np.testing.assert_allclose(fresh.state_freq, fitted.state_freq)
    np.testing.assert_allclose(fresh.transition_matrix(0.2), fitted.transition_matrix(0.2))


def test_fixed_theta_not_overwritten(weighted_data):
    state = model_state(PoMoModel(weighted_data, "HKY"))
    state[CHECKPOINT_KEY]["theta"] = 0.07

    model = PoMoModel(weighted_data, "HKY", theta="0.01")
    restore_model_state(model, state)
    assert model.theta == 0.01
    assert model.polymorphic_mass() == pytest.approx(0.01)


def test_non_reversible(weighted_data):
    source = PoMoModel(weighted_data, "UNREST")
    source.mutation_model.set_rates(np.arange(1.0, 13.0))
    source.normalize_mutation_rates()
    source.update_rate_matrix()
    state = model_state(source)

    target = PoMoModel(weighted_data, "UNREST")
    restore_model_state(target, state)
    np.testing.assert_allclose(target.rate_matrix, source.rate_matrix)


def test_missing_key(weighted_data):
    model = PoMoModel(weighted_data, "HKY")
    with pytest.raises(DataFormatError, match=CHECKPOINT_KEY):
        restore_model_state(model, {"ModelDNA": {}})


def test_wrong_number_of_frequencies(weighted_data):
    model = PoMoModel(weighted_data, "HKY")
    state = model_state(model)
    state[CHECKPOINT_KEY]["state_freq"] = [0.5, 0.5]
    with pytest.raises(DataFormatError):
        restore_model_state(model, state)


def test_invalid_json(weighted_data, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(DataFormatError, match="invalid checkpoint"):
        restore_checkpoint(PoMoModel(weighted_data, "HKY"), path)


def test_checkpoint_is_json(weighted_data, tmp_path):
    path = tmp_path / "model.json"
    save_checkpoint(PoMoModel(weighted_data, "GTR"), path)
    with open(path) as f:
        content = json.load(f)
    assert len(content[CHECKPOINT_KEY]["rates"]) == 6
