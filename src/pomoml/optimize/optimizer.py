"""
Maximum likelihood estimation of PoMo parameters.
"""

import logging
from typing import Optional

import numpy as np
from scipy.optimize import minimize

from ..config import MIN_BRANCH_LENGTH, MAX_BRANCH_LENGTH
from ..core.likelihood import PoMoLikelihoodCalculator
from ..errors import PoMoError
from ..io.counts import PoMoData
from ..io.trees import Tree

logger = logging.getLogger(__name__)

# Objective value returned when the likelihood cannot be computed
PENALTY = 1e10


class PoMoOptimizer:
    """
    Optimize PoMo model parameters and branch lengths.

    This optimizer estimates:
    - the free parameters of the mutation model (rates, frequency ratios)
    - theta, unless it is fixed
    - branch lengths (individually, or not at all)

    Parameters
    ----------
    model : PoMoModel
        Model to optimize; updated in place
    data : PoMoData
        Site patterns
    tree : Tree
        Population tree; branch lengths are updated in place
    optimize_branch_lengths : bool
        Optimize individual branch lengths (True) or keep them fixed (False)
    """

    def __init__(
        self,
        model,
        data: PoMoData,
        tree: Tree,
        optimize_branch_lengths: bool = True,
    ):
        self.model = model
        self.data = data
        self.tree = tree
        self.optimize_branch_lengths = optimize_branch_lengths

        self.calc = PoMoLikelihoodCalculator(data, tree)
        self.branch_nodes = [child for _, child in tree.get_branches()]
        self.n_branches = len(self.branch_nodes) if optimize_branch_lengths else 0

        self.history = []
        self.result = None

    @property
    def n_params(self) -> int:
        """Number of optimized parameters."""
        return self.model.ndim + self.n_branches

    def get_bounds(self) -> list[tuple[float, float]]:
        """Model bounds followed by branch length bounds."""
        return (
            self.model.get_bounds()
            + [(MIN_BRANCH_LENGTH, MAX_BRANCH_LENGTH)] * self.n_branches
        )

    def initial_params(self) -> np.ndarray:
        """Current model variables and branch lengths, clipped into bounds."""
        params = list(self.model.get_variables())
        if self.optimize_branch_lengths:
            params.extend(node.branch_length for node in self.branch_nodes)
        params = np.array(params, dtype=float)
        bounds = np.array(self.get_bounds(), dtype=float).reshape(-1, 2)
        return np.clip(params, bounds[:, 0], bounds[:, 1])

    def _apply_branch_lengths(self, params: np.ndarray) -> None:
        if self.optimize_branch_lengths:
            for node, length in zip(self.branch_nodes, params[self.model.ndim:]):
                node.branch_length = float(length)

    def compute_negative_log_likelihood(self, params: np.ndarray) -> float:
        """
        Objective for minimization.

        Parameters
        ----------
        params : np.ndarray
            [model variables..., branch lengths...]

        Returns
        -------
        float
            Negative log-likelihood, or a large penalty if the parameters
            give an invalid model
        """
        self._apply_branch_lengths(params)
        try:
            neg_lnl = self.model.target_function(params[:self.model.ndim], self.calc)
        except (PoMoError, np.linalg.LinAlgError) as e:
            logger.warning(f"Error computing likelihood: {e}")
            return PENALTY
        if not np.isfinite(neg_lnl):
            return PENALTY

        hist_entry = {
            'variables': params[:self.model.ndim].tolist(),
            'theta': self.model.theta,
            'log_likelihood': -neg_lnl,
        }
        if self.optimize_branch_lengths:
            hist_entry['branch_lengths'] = params[self.model.ndim:].tolist()
        self.history.append(hist_entry)
        return neg_lnl

    def optimize(self, method: str = 'L-BFGS-B', maxiter: int = 200) -> float:
        """
        Maximize the likelihood.

        The model and the tree are left at the best parameters found.

        Parameters
        ----------
        method : str
            Optimization method (default 'L-BFGS-B')
        maxiter : int
            Maximum number of iterations

        Returns
        -------
        float
            Maximized log-likelihood
        """
        self.history = []

        if self.n_params == 0:
            log_likelihood = self.calc.compute_log_likelihood(self.model)
            logger.info(f"No free parameters; log-likelihood: {log_likelihood:.6f}")
            return log_likelihood

        init_params = self.initial_params()
        logger.info(f"Starting optimization with method={method}, maxiter={maxiter}")
        logger.info(
            f"Optimizing {self.model.ndim} model parameters and {self.n_branches} branch lengths"
        )

        self.result = minimize(
            self.compute_negative_log_likelihood,
            init_params,
            method=method,
            bounds=self.get_bounds(),
            options={'maxiter': maxiter},
        )

        # Leave the model at the optimum rather than the last evaluation
        self._apply_branch_lengths(self.result.x)
        self.model.set_variables(self.result.x[:self.model.ndim])
        log_likelihood = self.calc.compute_log_likelihood(self.model)

        logger.info("Optimization complete")
        logger.info(f"Log-likelihood: {log_likelihood:.6f}")
        logger.info(f"Function evaluations: {len(self.history)}")
        if not self.result.success:
            logger.warning(f"Optimizer did not converge: {self.result.message}")
        return log_likelihood

    def best_history_entry(self) -> Optional[dict]:
        """History entry with the highest log-likelihood."""
        if not self.history:
            return None
        return max(self.history, key=lambda entry: entry['log_likelihood'])
