"""
Likelihood of PoMo site patterns on a population tree.

This module implements Felsenstein's pruning algorithm over compressed
site patterns, with per-pattern rescaling of partial likelihoods.
"""

import logging

import numpy as np

from ..config import N_ALLELES, SamplingMethod
from ..errors import DataFormatError
from ..io.counts import UNKNOWN_CODE, PoMoData, SiteCounts
from ..io.trees import Tree
from ..models.states import StateCodec

logger = logging.getLogger(__name__)


def state_allele_frequencies(codec: StateCodec) -> np.ndarray:
    """
    Allele frequencies of every PoMo state.

    Returns
    -------
    np.ndarray, shape (n_states, 4)
        Row ``s`` holds the frequency of A, C, G, T in the virtual
        population of state ``s``
    """
    F = np.zeros((codec.n_states, N_ALLELES))
    for state in range(codec.n_states):
        i, a, b = codec.decompose(state)
        F[state, a] = i / codec.N
        if b is not None:
            F[state, b] = (codec.N - i) / codec.N
    return F


def tip_likelihood(counts: SiteCounts, allele_freqs: np.ndarray) -> np.ndarray:
    """
    Probability of an observed sample given each PoMo state.

    The sample is treated as drawn with replacement from the virtual
    population; the binomial coefficient is the same for all states and
    is left out.
    """
    observed = np.zeros(N_ALLELES)
    observed[counts.allele1] += counts.count1
    observed[counts.allele2] += counts.count2
    # 0 ** 0 == 1, so alleles absent from the sample do not matter
    return np.prod(allele_freqs ** observed[np.newaxis, :], axis=1)


class PoMoLikelihoodCalculator:
    """
    Compute the log-likelihood of PoMo data on a tree.

    Attributes
    ----------
    data : PoMoData
        Site patterns
    tree : Tree
        Population tree; its leaf names must match the population names
    codec : StateCodec
        PoMo state space of the data
    tip_partials : dict[int, np.ndarray]
        Partial likelihoods of each leaf, shape (n_patterns, n_states)
    """

    def __init__(self, data: PoMoData, tree: Tree):
        self.data = data
        self.tree = tree
        self.codec = StateCodec(data.virtual_pop_size)

        if set(data.names) != set(tree.leaf_names):
            names, leaves = set(data.names), set(tree.leaf_names)
            raise DataFormatError(
                "Counts file and tree have different populations. "
                f"In counts file but not tree: {sorted(names - leaves)}. "
                f"In tree but not counts file: {sorted(leaves - names)}"
            )

        column = {name: k for k, name in enumerate(data.names)}
        self.tip_partials = {}
        for node in tree.postorder():
            if node.is_leaf:
                self.tip_partials[node.id] = self._leaf_partials(column[node.name])

    def _leaf_partials(self, column: int) -> np.ndarray:
        n_states = self.codec.n_states
        codes = self.data.patterns[:, column]
        partials = np.ones((len(codes), n_states))

        if self.data.sampling_method == SamplingMethod.SAMPLED:
            for k, code in enumerate(codes):
                if code != UNKNOWN_CODE:
                    partials[k, :] = 0.0
                    partials[k, int(code)] = 1.0
        else:
            allele_freqs = state_allele_frequencies(self.codec)
            for k, code in enumerate(codes):
                if code != UNKNOWN_CODE:
                    partials[k, :] = tip_likelihood(self.data.site_counts(code), allele_freqs)
        return partials

    def site_log_likelihoods(self, model, scale_branch_lengths: float = 1.0) -> np.ndarray:
        """
        Log-likelihood of every site pattern.

        Parameters
        ----------
        model : PoMoModel
            Provides ``transition_matrix(t)`` and ``state_freq``
        scale_branch_lengths : float, optional
            Global scaling factor for branch lengths (default 1.0)

        Returns
        -------
        np.ndarray, shape (n_patterns,)
        """
        if model.n_states != self.codec.n_states:
            raise ValueError(
                f"Model has {model.n_states} states, data need {self.codec.n_states}"
            )

        n_patterns = self.data.n_patterns
        partials = {}
        log_scale = np.zeros(n_patterns)

        for node in self.tree.postorder():
            if node.is_leaf:
                partials[node.id] = self.tip_partials[node.id]
                continue

            L = np.ones((n_patterns, self.codec.n_states))
            for child in node.children:
                P = model.transition_matrix(child.branch_length * scale_branch_lengths)
                # L_child @ P.T sums over child states for each parent state
                L *= partials[child.id] @ P.T
                del partials[child.id]

            scale = L.max(axis=1)
            scale[scale <= 0] = 1.0
            L /= scale[:, np.newaxis]
            log_scale += np.log(scale)
            partials[node.id] = L

        root_L = partials[self.tree.root.id]
        site_likelihoods = root_L @ model.state_freq
        with np.errstate(divide='ignore'):
            return np.log(site_likelihoods) + log_scale

    def compute_log_likelihood(self, model, scale_branch_lengths: float = 1.0) -> float:
        """
        Log-likelihood of the data, summed over patterns with their weights.

        Returns ``-inf`` if some pattern has zero probability.
        """
        site_lnl = self.site_log_likelihoods(model, scale_branch_lengths)
        log_likelihood = float(np.dot(self.data.weights, site_lnl))
        logger.debug(f"Log-likelihood: {log_likelihood:.6f}")
        return log_likelihood

    def __call__(self, model) -> float:
        return self.compute_log_likelihood(model)
