"""
pomoml: Polymorphism-aware phylogenetic models.

PoMo extends a DNA substitution model with polymorphic states of a
virtual population of size N, so that population allele counts can be
analysed on a species or population tree.

Quick Start
-----------
Fit PoMo to a counts file:

>>> from pomoml import fit_pomo
>>> result = fit_pomo("primates.cf", "primates.nwk", model="HKY", N=9)
>>> print(result.summary())
>>> print(f"theta = {result.theta:.4g}")

Empirical quantities of the data:

>>> from pomoml import summarize_counts
>>> print(summarize_counts("primates.cf", N=9).summary())

Examples
--------
>>> # Build the model directly and inspect the rate matrix
>>> from pomoml import PoMoData, PoMoModel
>>> data = PoMoData.from_counts_file("primates.cf", virtual_pop_size=9)
>>> model = PoMoModel(data, "GTR", theta="EMP")
>>> model.state_table().head()
"""

__version__ = "0.1.0"

from .config import PoMoConfig, SamplingMethod, MatrixExpTechnique, Verbosity
from .errors import PoMoError

# Model
from .models.pomo import PoMoModel, Reversibility
from .models.states import StateCodec

# I/O classes
from .io.counts import PoMoData, SiteCounts
from .io.trees import Tree

# Core likelihood calculator (expert use)
from .core.likelihood import PoMoLikelihoodCalculator

# High-level API
from .api import fit_pomo, summarize_counts, PoMoResult, CountsSummary

__all__ = [
    # Simple API - Start here!
    "fit_pomo",
    "summarize_counts",
    "PoMoResult",
    "CountsSummary",

    # Configuration and errors
    "PoMoConfig",
    "SamplingMethod",
    "MatrixExpTechnique",
    "Verbosity",
    "PoMoError",

    # Model
    "PoMoModel",
    "Reversibility",
    "StateCodec",

    # I/O
    "PoMoData",
    "SiteCounts",
    "Tree",

    # Core (expert)
    "PoMoLikelihoodCalculator",

    # Version
    "__version__",
]
