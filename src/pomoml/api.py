"""
High-level API for fitting PoMo models.

This module provides a simplified interface for fitting PoMo to a counts
file and a population tree, with unified result objects.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json
import logging

import numpy as np
import pandas as pd

from .checkpoint import restore_checkpoint, save_checkpoint
from .config import ALLELES, PoMoConfig, SamplingMethod
from .io.counts import PoMoData
from .io.trees import Tree
from .models.frequencies import estimate_boundary_frequencies, estimate_watterson_theta
from .models.pomo import PoMoModel
from .optimize.optimizer import PoMoOptimizer

logger = logging.getLogger(__name__)


@dataclass
class PoMoResult:
    """
    Result of fitting a PoMo model.

    Attributes
    ----------
    model_name : str
        Model name (e.g. "HKY+P+N9+W")
    full_name : str
        Descriptive model name
    lnL : float
        Log-likelihood of the fitted model
    n_params : int
        Number of free parameters (model parameters and branch lengths)
    theta : float
        Level of polymorphism
    theta_source : str
        'estimated', 'empirical' or 'user'
    boundary_freqs : list[float]
        Frequencies of the boundary states (A, C, G, T)
    mutation_rates : Dict[str, float]
        Mutation rates keyed by allele pair (AC, AG, AT, CG, CT, GT; all
        twelve ordered pairs for UNREST)
    watterson_theta : float
        Watterson's theta of the data
    empirical_boundary_freqs : list[float]
        Boundary frequencies estimated from the data
    virtual_pop_size : int
        Virtual population size N
    sampling_method : str
        'weighted' or 'sampled'
    tree : Tree
        Population tree with optimized branch lengths
    report : str
        Model report
    convergence_info : Optional[Dict[str, Any]]
        Optimizer status

    Examples
    --------
    >>> from pomoml import fit_pomo
    >>> result = fit_pomo("primates.cf", "primates.nwk", model="HKY", N=9)
    >>> print(result.summary())
    >>> result.to_json("results.json")
    """

    model_name: str
    full_name: str
    lnL: float
    n_params: int
    theta: float
    theta_source: str
    boundary_freqs: list
    mutation_rates: Dict[str, float]
    watterson_theta: float
    empirical_boundary_freqs: list
    virtual_pop_size: int
    sampling_method: str
    tree: Tree
    report: str = ""
    convergence_info: Optional[Dict[str, Any]] = field(default=None)

    def summary(self) -> str:
        """
        Human-readable summary of the fit.

        Returns
        -------
        str
            Formatted multi-line summary
        """
        lines = []
        lines.append("=" * 70)
        lines.append(f"MODEL: {self.model_name}")
        lines.append("=" * 70)
        lines.append(self.full_name)
        lines.append("")
        lines.append(f"Log-likelihood:       {self.lnL:.6f}")
        lines.append(f"Number of parameters: {self.n_params}")
        lines.append("")
        lines.append("PARAMETERS:")
        lines.append(f"  theta ({self.theta_source}) = {self.theta:.6g}")
        lines.append("  Boundary frequencies (A, C, G, T): "
                     + ", ".join(f"{x:.4f}" for x in self.boundary_freqs))
        lines.append("  Mutation rates:")
        for pair, rate in self.mutation_rates.items():
            lines.append(f"    {pair}: {rate:.6g}")
        lines.append("")
        lines.append("DATA:")
        lines.append(f"  Watterson's theta = {self.watterson_theta:.6g}")
        lines.append("  Empirical boundary frequencies: "
                     + ", ".join(f"{x:.4f}" for x in self.empirical_boundary_freqs))
        lines.append("")
        lines.append("TREE:")
        lines.append(f"  {self.tree.n_leaves} populations")
        lines.append(f"  Tree length: {self.tree.tree_length():.6g}")
        lines.append(f"  {self.tree.to_newick()}")
        lines.append("")
        lines.append("=" * 70)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Export results as a dictionary.

        The tree is exported as a Newick string to keep the dictionary
        JSON-serializable.
        """
        return {
            'model_name': self.model_name,
            'full_name': self.full_name,
            'lnL': float(self.lnL),
            'n_params': int(self.n_params),
            'theta': float(self.theta),
            'theta_source': self.theta_source,
            'boundary_freqs': [float(x) for x in self.boundary_freqs],
            'mutation_rates': {k: float(v) for k, v in self.mutation_rates.items()},
            'watterson_theta': float(self.watterson_theta),
            'empirical_boundary_freqs': [float(x) for x in self.empirical_boundary_freqs],
            'virtual_pop_size': int(self.virtual_pop_size),
            'sampling_method': self.sampling_method,
            'tree': self.tree.to_newick(),
            'convergence_info': self.convergence_info,
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """
        Export results as JSON.

        Parameters
        ----------
        filepath : str, optional
            If provided, write JSON to this file
        indent : int, default=2
            Indentation level for pretty printing

        Returns
        -------
        str
            JSON string representation
        """
        json_str = json.dumps(self.to_dict(), indent=indent)
        if filepath:
            with open(filepath, 'w') as f:
                f.write(json_str)
        return json_str

    def to_dataframe(self) -> pd.DataFrame:
        """Results as a single-row DataFrame with one column per rate and frequency."""
        row = {
            'model_name': self.model_name,
            'lnL': self.lnL,
            'n_params': self.n_params,
            'theta': self.theta,
            'theta_source': self.theta_source,
            'watterson_theta': self.watterson_theta,
            'N': self.virtual_pop_size,
            'sampling_method': self.sampling_method,
        }
        for allele, freq in zip(ALLELES, self.boundary_freqs):
            row[f'pi_{allele}'] = freq
        for pair, rate in self.mutation_rates.items():
            row[f'rate_{pair}'] = rate
        return pd.DataFrame([row])

    def __str__(self) -> str:
        return self.summary()

    def __repr__(self) -> str:
        return f"PoMoResult(model='{self.model_name}', lnL={self.lnL:.2f}, theta={self.theta:.4g})"


@dataclass
class CountsSummary:
    """
    Empirical quantities of a counts file.

    Attributes
    ----------
    n_populations, n_sites, n_patterns : int
        Size of the data
    boundary_freqs : list[float]
        Empirical boundary frequencies (A, C, G, T), clamped into band
    watterson_theta : float
        Watterson's estimate of the level of polymorphism
    """

    n_populations: int
    n_sites: int
    n_patterns: int
    virtual_pop_size: int
    sampling_method: str
    boundary_freqs: list
    watterson_theta: float

    def summary(self) -> str:
        lines = [
            f"Populations: {self.n_populations}",
            f"Sites: {self.n_sites} ({self.n_patterns} distinct patterns)",
            f"Virtual population size: {self.virtual_pop_size} ({self.sampling_method})",
            "Frequencies of boundary states (A, C, G, T): "
            + " ".join(f"{x:.6g}" for x in self.boundary_freqs),
            f"Watterson's Theta: {self.watterson_theta:.6g}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_populations': self.n_populations,
            'n_sites': self.n_sites,
            'n_patterns': self.n_patterns,
            'virtual_pop_size': self.virtual_pop_size,
            'sampling_method': self.sampling_method,
            'boundary_freqs': [float(x) for x in self.boundary_freqs],
            'watterson_theta': float(self.watterson_theta),
        }


def _load_data(
    counts: Union[str, Path, PoMoData],
    N: int,
    sampling_method: SamplingMethod,
    seed: Optional[int],
) -> PoMoData:
    if isinstance(counts, PoMoData):
        return counts
    return PoMoData.from_counts_file(counts, N, sampling_method, seed)


def _load_tree(tree: Union[str, Path, Tree]) -> Tree:
    """
    Load a tree from a Newick file or string.

    Raises
    ------
    ValueError
        If tree parsing fails
    """
    if isinstance(tree, Tree):
        return tree

    path = Path(str(tree))
    if path.exists():
        return Tree.from_file(path)
    try:
        return Tree.from_newick(str(tree))
    except ValueError as e:
        raise ValueError(f"Failed to parse tree: {e}") from None


def fit_pomo(
    counts: Union[str, Path, PoMoData],
    tree: Union[str, Path, Tree],
    model: str = "HKY",
    N: int = 9,
    sampling: Optional[str] = None,
    theta: str = "",
    freq_type: Optional[str] = None,
    model_params: str = "",
    freq_params: str = "",
    config: Optional[PoMoConfig] = None,
    checkpoint: Optional[Union[str, Path]] = None,
    optimize_branch_lengths: bool = True,
    maxiter: int = 200,
) -> PoMoResult:
    """
    Fit a PoMo model by maximum likelihood.

    Parameters
    ----------
    counts : str, Path or PoMoData
        Counts file or already loaded data
    tree : str, Path or Tree
        Population tree (file, Newick string or Tree object)
    model : str
        DNA mutation model (e.g. "HKY", "GTR", "UNREST")
    N : int
        Virtual population size
    sampling : str, optional
        'weighted' or 'sampled' (default from ``config``)
    theta : str
        ``""`` to estimate theta, ``"EMP"`` for Watterson's estimate, or a
        number to fix it
    freq_type : str, optional
        Boundary frequency type ('equal', 'estimate', 'empirical', 'user'
        or the aliases FQ, FO, F, FU)
    model_params : str
        Fixed mutation rates
    freq_params : str
        User-defined boundary frequencies
    config : PoMoConfig, optional
        Bands, matrix exponential technique, verbosity and seed
    checkpoint : str or Path, optional
        JSON checkpoint; restored before optimization if it exists and
        written after optimization
    optimize_branch_lengths : bool
        Optimize branch lengths (default True)
    maxiter : int
        Maximum number of optimizer iterations

    Returns
    -------
    PoMoResult

    Raises
    ------
    PoMoError
        If the model cannot be built for the data

    Examples
    --------
    >>> result = fit_pomo("primates.cf", "primates.nwk", model="GTR", N=9, theta="EMP")
    >>> print(f"lnL = {result.lnL:.2f}")

    Notes
    -----
    The tree object is modified in-place with optimized branch lengths.
    """
    config = config if config is not None else PoMoConfig()
    sampling_method = SamplingMethod(sampling) if sampling else config.sampling_method

    data = _load_data(counts, N, sampling_method, config.seed)
    tree = _load_tree(tree)

    pomo = PoMoModel(
        data,
        model_name=model,
        model_params=model_params,
        freq_type=freq_type,
        freq_params=freq_params,
        theta=theta,
        config=config,
    )

    if checkpoint is not None and Path(checkpoint).exists():
        logger.info(f"Restoring model from checkpoint {checkpoint}")
        restore_checkpoint(pomo, checkpoint)

    optimizer = PoMoOptimizer(pomo, data, tree, optimize_branch_lengths=optimize_branch_lengths)
    lnL = optimizer.optimize(maxiter=maxiter)

    if checkpoint is not None:
        save_checkpoint(pomo, checkpoint)

    convergence_info = None
    if optimizer.result is not None:
        convergence_info = {
            'success': bool(optimizer.result.success),
            'message': str(optimizer.result.message),
            'n_evaluations': len(optimizer.history),
        }

    return PoMoResult(
        model_name=pomo.name,
        full_name=pomo.full_name,
        lnL=lnL,
        n_params=optimizer.n_params,
        theta=pomo.theta,
        theta_source=pomo.theta_source.value,
        boundary_freqs=np.asarray(pomo.freq_boundary_states).tolist(),
        mutation_rates=pomo.labelled_mutation_rates(),
        watterson_theta=pomo.theta_emp,
        empirical_boundary_freqs=pomo.freq_boundary_states_emp.tolist(),
        virtual_pop_size=pomo.N,
        sampling_method=pomo.sampling_method.value,
        tree=tree,
        report=pomo.report(),
        convergence_info=convergence_info,
    )


def summarize_counts(
    counts: Union[str, Path, PoMoData],
    N: int = 9,
    sampling: str = "weighted",
    config: Optional[PoMoConfig] = None,
) -> CountsSummary:
    """
    Empirical boundary frequencies and Watterson's theta of a counts file.

    Examples
    --------
    >>> summary = summarize_counts("primates.cf", N=9)
    >>> summary.watterson_theta
    0.0032...
    """
    config = config if config is not None else PoMoConfig()
    data = _load_data(counts, N, SamplingMethod(sampling), config.seed)
    freqs = estimate_boundary_frequencies(
        data, config.min_boundary_freq, config.max_boundary_freq
    )
    return CountsSummary(
        n_populations=data.n_populations,
        n_sites=data.n_sites,
        n_patterns=data.n_patterns,
        virtual_pop_size=data.virtual_pop_size,
        sampling_method=data.sampling_method.value,
        boundary_freqs=freqs.tolist(),
        watterson_theta=estimate_watterson_theta(data),
    )
