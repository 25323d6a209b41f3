"""
Empirical boundary state frequencies and Watterson's theta.
"""

import logging
from functools import lru_cache

import numpy as np

from ..config import (
    N_ALLELES, POMO_MIN_BOUNDARY_FREQ, POMO_MAX_BOUNDARY_FREQ, SamplingMethod,
)
from .states import StateCodec

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def harmonic(n: int) -> float:
    """n-th harmonic number, sum of 1/i for i = 1..n (0 for n < 1)."""
    return sum(1.0 / i for i in range(1, n + 1))


def clamp_boundary_frequencies(
    freqs,
    min_freq: float = POMO_MIN_BOUNDARY_FREQ,
    max_freq: float = POMO_MAX_BOUNDARY_FREQ,
) -> np.ndarray:
    """
    Normalise boundary frequencies and clamp them into ``[min_freq, max_freq]``.

    Entries below the band are raised to ``min_freq`` first and the
    remaining probability mass is shared among the other entries in
    proportion to their values. Only when no entry is too low is an entry
    above the band lowered to ``max_freq``. Pinned entries stay pinned, and
    this is repeated until no entry leaves the band, so the result lies
    within the band and sums to one.

    Parameters
    ----------
    freqs : array-like, shape (4,)
        Non-negative frequencies (need not be normalised)
    min_freq, max_freq : float
        Band for each entry

    Returns
    -------
    np.ndarray, shape (4,)

    Raises
    ------
    ValueError
        If the frequencies sum to zero or no vector in the band sums to one

    Examples
    --------
    >>> clamp_boundary_frequencies([0.97, 0.01, 0.01, 0.01])
    array([0.85, 0.05, 0.05, 0.05])
    """
    freqs = np.asarray(freqs, dtype=float)
    total = freqs.sum()
    if total <= 0:
        raise ValueError("Boundary frequencies sum to zero")
    if len(freqs) * min_freq > 1.0 or len(freqs) * max_freq < 1.0:
        raise ValueError(
            f"No boundary frequencies in [{min_freq}, {max_freq}] sum to one"
        )
    freqs = freqs / total

    fixed = np.zeros(len(freqs), dtype=bool)
    # Every pass pins at least one entry
    for _ in range(len(freqs)):
        pinned = ~fixed & (freqs < min_freq)
        bound, kind = min_freq, "low"
        if not pinned.any():
            pinned = ~fixed & (freqs > max_freq)
            bound, kind = max_freq, "high"
        if not pinned.any():
            break

        for allele in np.flatnonzero(pinned):
            logger.warning(
                f"Boundary state {allele} has very {kind} frequency "
                f"{freqs[allele]:.6g}; frequency set to {bound}"
            )
        freqs[pinned] = bound
        fixed |= pinned

        free = ~fixed
        if not free.any():
            break
        free_total = freqs[free].sum()
        remaining = 1.0 - freqs[fixed].sum()
        if free_total > 0:
            freqs[free] *= remaining / free_total
        else:
            freqs[free] = remaining / free.sum()

    return freqs


def estimate_boundary_frequencies(
    data,
    min_freq: float = POMO_MIN_BOUNDARY_FREQ,
    max_freq: float = POMO_MAX_BOUNDARY_FREQ,
) -> np.ndarray:
    """
    Empirical frequencies of the four boundary alleles.

    Weighted data contribute each population's allele counts times the
    pattern weight. Sampled data contribute, for every PoMo state
    ``(i, a, b)`` observed ``c`` times, ``i * c`` to ``a`` and
    ``(N - i) * c`` to ``b``.

    Parameters
    ----------
    data : PoMoData
        Site patterns
    min_freq, max_freq : float
        Band the result is clamped into

    Returns
    -------
    np.ndarray, shape (4,)
        Normalised and clamped boundary frequencies
    """
    sums = np.zeros(N_ALLELES)

    if data.sampling_method == SamplingMethod.SAMPLED:
        codec = StateCodec(data.virtual_pop_size)
        abs_state_freq = data.absolute_state_counts()
        logger.debug(f"Absolute empirical state frequencies: {abs_state_freq}")
        for state, freq in enumerate(abs_state_freq):
            n, x, y = codec.decompose(state)
            sums[x] += n * freq
            if y is not None:
                sums[y] += (codec.N - n) * freq
    else:
        for counts, weight in data.iter_site_counts():
            sums[counts.allele1] += counts.count1 * weight
            sums[counts.allele2] += counts.count2 * weight

    if sums.sum() <= 0:
        raise ValueError("No allele counts available to estimate boundary frequencies")

    freqs = clamp_boundary_frequencies(sums, min_freq, max_freq)
    logger.debug(f"Empirical boundary state frequencies: {freqs}")
    return freqs


def estimate_watterson_theta(data) -> float:
    """
    Empirical level of polymorphism.

    For sampled data this is the fraction of polymorphic states. For
    weighted data each polymorphic population sample of size ``n``
    contributes ``weight / H(n - 1)`` (Watterson's estimator, which
    accounts for varying sample sizes), divided by the total weight of
    all known samples.

    Examples
    --------
    A weighted data set with 7 monomorphic samples and 3 polymorphic
    samples of size 4 gives ``3 / H(3) / 10``.
    """
    if data.sampling_method == SamplingMethod.SAMPLED:
        abs_state_freq = data.absolute_state_counts()
        sum_fix = abs_state_freq[:N_ALLELES].sum()
        sum_pol = abs_state_freq[N_ALLELES:].sum()
        total = sum_fix + sum_pol
        theta = float(sum_pol / total) if total > 0 else 0.0
    else:
        sum_fix = 0.0
        sum_pol = 0.0
        sum_theta_w = 0.0
        for counts, weight in data.iter_site_counts():
            if not counts.is_polymorphic:
                sum_fix += weight
            else:
                sum_pol += weight
                sum_theta_w += weight / harmonic(counts.sample_size - 1)
        total = sum_fix + sum_pol
        theta = sum_theta_w / total if total > 0 else 0.0

    logger.debug(f"Estimated relative frequency of polymorphic states: {theta:.8g}")
    return theta
