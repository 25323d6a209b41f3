"""
Maximum likelihood estimation of PoMo parameters.

The optimizer fits mutation model parameters, theta and branch lengths
using scipy.optimize.
"""

from pomoml.optimize.optimizer import PoMoOptimizer

__all__ = ["PoMoOptimizer"]
