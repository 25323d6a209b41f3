"""
Population allele counts and PoMo site patterns.

Counts files list, for every site and population, how many sampled
individuals carry A, C, G and T::

    COUNTSFILE  NPOP 2   NSITES 3
    CHROM  POS  Sheep    Goat
    1      1    0,0,10,0 0,0,9,1
    1      2    5,5,0,0  10,0,0,0
    1      3    0,0,0,0  0,3,0,7

Per-population counts of a bi-allelic site are stored in pattern arrays
as a packed integer (see :func:`encode_site_counts`). Only this module
knows the bit layout; consumers work with :class:`SiteCounts` records.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from ..config import N_ALLELES, SamplingMethod
from ..errors import DataFormatError
from ..models.states import StateCodec, n_pomo_states

# Code of a population without usable data at a site
UNKNOWN_CODE = -1

# Packed layout: allele1 bits 0-1, count1 bits 2-15, allele2 bits 16-17,
# count2 bits 18 and up
COUNT_BITS = 14
COUNT_MASK = (1 << COUNT_BITS) - 1
ALLELE_MASK = 3


@dataclass(frozen=True)
class SiteCounts:
    """
    Allele counts of one population at one site.

    Attributes
    ----------
    allele1, count1 : int
        First allele and its count
    allele2, count2 : int
        Second allele and its count; ``count2 == 0`` for monomorphic sites
    """

    allele1: int
    count1: int
    allele2: int
    count2: int

    @property
    def sample_size(self) -> int:
        return self.count1 + self.count2

    @property
    def is_polymorphic(self) -> bool:
        return self.count2 > 0


def encode_site_counts(counts: SiteCounts) -> int:
    """Pack a SiteCounts record into an integer."""
    if counts.count1 > COUNT_MASK:
        raise DataFormatError(
            f"Allele count {counts.count1} exceeds the maximum of {COUNT_MASK}"
        )
    return (
        counts.allele1
        | (counts.count1 << 2)
        | (counts.allele2 << 16)
        | (counts.count2 << 18)
    )


def decode_site_counts(code: int) -> SiteCounts:
    """Unpack an integer produced by :func:`encode_site_counts`."""
    code = int(code)
    return SiteCounts(
        allele1=code & ALLELE_MASK,
        count1=(code >> 2) & COUNT_MASK,
        allele2=(code >> 16) & ALLELE_MASK,
        count2=code >> 18,
    )


def site_counts_from_tuple(counts) -> Optional[SiteCounts]:
    """
    Convert A, C, G, T counts to a SiteCounts record.

    Returns None for sites without data or with more than two alleles.
    """
    counts = [int(c) for c in counts]
    if len(counts) != N_ALLELES or any(c < 0 for c in counts):
        raise DataFormatError(f"Expected 4 non-negative counts, got {counts}")

    present = [a for a in range(N_ALLELES) if counts[a] > 0]
    if len(present) == 1:
        a = present[0]
        return SiteCounts(a, counts[a], a, 0)
    if len(present) == 2:
        a, b = present
        return SiteCounts(a, counts[a], b, counts[b])
    return None


def sample_state(
    counts: SiteCounts, codec: StateCodec, rng: np.random.Generator
) -> int:
    """Draw N alleles with replacement from the sample and return the PoMo state."""
    N = codec.N
    if not counts.is_polymorphic:
        return codec.compose(N, counts.allele1)
    i = int(rng.binomial(N, counts.count1 / counts.sample_size))
    if i == N:
        return codec.compose(N, counts.allele1)
    if i == 0:
        return codec.compose(N, counts.allele2)
    return codec.compose(i, counts.allele1, counts.allele2)


def read_counts_file(filepath: Path | str) -> tuple[list[str], list[list[Optional[SiteCounts]]]]:
    """
    Parse a counts file.

    Returns
    -------
    tuple
        (population names, sites) where each site is a list with one
        SiteCounts record (or None) per population

    Raises
    ------
    DataFormatError
        If the header or a data line is malformed
    """
    filepath = Path(filepath)
    with open(filepath, 'r') as f:
        lines = [
            line.strip() for line in f
            if line.strip() and not line.lstrip().startswith('#')
        ]

    if not lines or not lines[0].upper().startswith("COUNTSFILE"):
        raise DataFormatError(f"{filepath}: missing COUNTSFILE header")

    header = lines[0].split()
    try:
        fields = {header[k].upper(): int(header[k + 1]) for k in range(1, len(header) - 1, 2)}
        n_pop = fields["NPOP"]
        n_sites = fields["NSITES"]
    except (KeyError, ValueError, IndexError):
        raise DataFormatError(f"{filepath}: malformed header '{lines[0]}'") from None

    if len(lines) < 2:
        raise DataFormatError(f"{filepath}: missing column line")
    columns = lines[1].split()
    names = columns[2:]
    if len(names) != n_pop:
        raise DataFormatError(
            f"{filepath}: header declares {n_pop} populations, column line has {len(names)}"
        )

    sites = []
    for line_no, line in enumerate(lines[2:], start=3):
        parts = line.split()
        if len(parts) != n_pop + 2:
            raise DataFormatError(
                f"{filepath}: line {line_no} has {len(parts) - 2} populations, expected {n_pop}"
            )
        site = []
        for token in parts[2:]:
            try:
                values = [int(v) for v in token.split(',')]
            except ValueError:
                raise DataFormatError(f"{filepath}: line {line_no}: bad counts '{token}'") from None
            site.append(site_counts_from_tuple(values))
        sites.append(site)

    if len(sites) != n_sites:
        raise DataFormatError(
            f"{filepath}: header declares {n_sites} sites, found {len(sites)}"
        )
    return names, sites


@dataclass
class PoMoData:
    """
    Compressed PoMo site patterns.

    Attributes
    ----------
    names : list[str]
        Population names (tree leaf names)
    patterns : np.ndarray, shape (n_patterns, n_populations)
        Packed site counts (weighted) or PoMo state ids (sampled);
        ``UNKNOWN_CODE`` marks missing data
    weights : np.ndarray, shape (n_patterns,)
        Number of sites showing each pattern
    virtual_pop_size : int
        Virtual population size N
    sampling_method : SamplingMethod
        How the patterns were built
    n_sites : int
        Number of sites before compression
    """

    names: list[str]
    patterns: np.ndarray
    weights: np.ndarray
    virtual_pop_size: int
    sampling_method: SamplingMethod
    n_sites: int

    @property
    def n_states(self) -> int:
        """Number of PoMo states implied by the virtual population size."""
        return n_pomo_states(self.virtual_pop_size)

    @property
    def n_populations(self) -> int:
        return len(self.names)

    @property
    def n_patterns(self) -> int:
        return self.patterns.shape[0]

    @classmethod
    def from_site_counts(
        cls,
        names: list[str],
        sites: list[list[Optional[SiteCounts]]],
        virtual_pop_size: int,
        sampling_method: SamplingMethod | str = SamplingMethod.WEIGHTED,
        seed: Optional[int] = None,
    ) -> "PoMoData":
        """
        Build patterns from per-site counts.

        In sampled mode each population is reduced to N alleles drawn with
        replacement; ``seed`` makes the draw reproducible.
        """
        sampling_method = SamplingMethod(sampling_method)
        codec = StateCodec(virtual_pop_size)
        rng = np.random.default_rng(seed)

        codes = np.full((len(sites), len(names)), UNKNOWN_CODE, dtype=np.int64)
        for s, site in enumerate(sites):
            if len(site) != len(names):
                raise DataFormatError(
                    f"Site {s} has {len(site)} populations, expected {len(names)}"
                )
            for p, counts in enumerate(site):
                if counts is None:
                    continue
                if sampling_method == SamplingMethod.SAMPLED:
                    codes[s, p] = sample_state(counts, codec, rng)
                else:
                    codes[s, p] = encode_site_counts(counts)

        if len(sites) == 0:
            patterns = codes
            weights = np.zeros(0)
        else:
            patterns, counts = np.unique(codes, axis=0, return_counts=True)
            weights = counts.astype(float)

        return cls(
            names=list(names),
            patterns=patterns,
            weights=weights,
            virtual_pop_size=virtual_pop_size,
            sampling_method=sampling_method,
            n_sites=len(sites),
        )

    @classmethod
    def from_counts_file(
        cls,
        filepath: Path | str,
        virtual_pop_size: int,
        sampling_method: SamplingMethod | str = SamplingMethod.WEIGHTED,
        seed: Optional[int] = None,
    ) -> "PoMoData":
        """
        Read a counts file.

        Examples
        --------
        >>> data = PoMoData.from_counts_file("primates.cf", virtual_pop_size=9)
        >>> data.n_states
        52
        """
        names, sites = read_counts_file(filepath)
        return cls.from_site_counts(names, sites, virtual_pop_size, sampling_method, seed)

    def site_counts(self, code: int) -> SiteCounts:
        """Decode one pattern entry (not UNKNOWN_CODE)."""
        if self.sampling_method == SamplingMethod.SAMPLED:
            codec = StateCodec(self.virtual_pop_size)
            i, a, b = codec.decompose(int(code))
            if b is None:
                return SiteCounts(a, i, a, 0)
            return SiteCounts(a, i, b, codec.N - i)
        return decode_site_counts(code)

    def iter_site_counts(self) -> Iterator[tuple[SiteCounts, float]]:
        """Yield ``(SiteCounts, pattern weight)`` for every known pattern entry."""
        for pattern, weight in zip(self.patterns, self.weights):
            for code in pattern:
                if code == UNKNOWN_CODE:
                    continue
                yield self.site_counts(code), weight

    def absolute_state_counts(self) -> np.ndarray:
        """
        Number of occurrences of every PoMo state (sampled mode only).
        """
        if self.sampling_method != SamplingMethod.SAMPLED:
            raise ValueError("Absolute state counts are only defined for sampled data")
        known = self.patterns != UNKNOWN_CODE
        states = self.patterns[known]
        weights = np.broadcast_to(self.weights[:, np.newaxis], self.patterns.shape)[known]
        return np.bincount(states, weights=weights, minlength=self.n_states)
