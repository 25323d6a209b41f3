"""
Core algorithms for PoMo likelihood calculation.

- **Likelihood calculation**: Felsenstein's pruning algorithm
- **Matrix operations**: Eigendecomposition and matrix exponential

These are expert-level functions typically not needed by end users.
The high-level API (:mod:`pomoml.api`) provides easier access.
"""

from pomoml.core.matrix import decompose_rate_matrix, eigen_decompose_rev, matrix_exponential
from pomoml.core.likelihood import PoMoLikelihoodCalculator

__all__ = [
    "PoMoLikelihoodCalculator",
    "matrix_exponential",
    "eigen_decompose_rev",
    "decompose_rate_matrix",
]
