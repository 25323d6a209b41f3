"""
PoMo substitution model.

- **States**: boundary and polymorphic states of a virtual population
- **DNA models**: the mutation models PoMo is built on
- **Frequencies and rates**: empirical estimates and rate calibration
- **Rate matrix**: drift and mutation transitions between PoMo states
"""

from pomoml.models.states import StateCodec
from pomoml.models.dna import DNAMutationModel, FreqType, make_mutation_model
from pomoml.models.pomo import PoMoModel, Reversibility

__all__ = [
    "StateCodec",
    "DNAMutationModel",
    "FreqType",
    "make_mutation_model",
    "PoMoModel",
    "Reversibility",
]
