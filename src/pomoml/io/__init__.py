"""
Input/Output modules for population counts and population trees.

This module provides classes for reading and working with:

- **Counts files**: allele counts per population and site
- **Population trees**: Newick format
"""

from pomoml.io.counts import PoMoData, SiteCounts, read_counts_file
from pomoml.io.trees import Tree, TreeNode

__all__ = ["PoMoData", "SiteCounts", "read_counts_file", "Tree", "TreeNode"]
