"""
Population trees in Newick format.

Leaves are populations of the counts file; branch lengths are in
expected number of PoMo events (mutations and drift steps) per site.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..config import MIN_BRANCH_LENGTH


@dataclass
class TreeNode:
    """
    Node of a population tree.

    Attributes
    ----------
    id : int
        Node identifier (pre-order)
    name : Optional[str]
        Population name for leaves, optional label for internal nodes
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : float
        Length of the branch to the parent
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = None
    children: list["TreeNode"] = field(default_factory=list)
    branch_length: float = 0.0

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0


@dataclass
class Tree:
    """
    Rooted (or unrooted, with a multifurcating root) population tree.

    Attributes
    ----------
    root : TreeNode
        Root node
    n_nodes : int
        Total number of nodes
    n_leaves : int
        Number of leaves
    leaf_names : list[str]
        Leaf names in pre-order
    """

    root: TreeNode
    n_nodes: int
    n_leaves: int
    leaf_names: list[str]

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse a Newick tree.

        Comments in square brackets are ignored. Missing branch lengths
        are set to the minimum branch length.

        Parameters
        ----------
        newick_string : str
            Newick tree terminated by ``;``

        Returns
        -------
        Tree

        Examples
        --------
        >>> tree = Tree.from_newick("((Sheep:0.1,Goat:0.2):0.05,Cow:0.3);")
        >>> tree.leaf_names
        ['Sheep', 'Goat', 'Cow']
        """
        newick = re.sub(r'\[[^\]]*\]', '', newick_string).strip()
        if ';' not in newick:
            raise ValueError("Invalid Newick format: missing semicolon")
        newick = newick[:newick.index(';')]
        newick = re.sub(r'\s+', '', newick)
        if not newick:
            raise ValueError("Invalid Newick format: no tree found")

        next_id = [0]

        def parse_node(s: str, pos: int, parent: Optional[TreeNode]) -> tuple[TreeNode, int]:
            node = TreeNode(id=next_id[0], parent=parent, branch_length=MIN_BRANCH_LENGTH)
            next_id[0] += 1

            if pos < len(s) and s[pos] == '(':
                pos += 1
                while True:
                    child, pos = parse_node(s, pos, node)
                    node.children.append(child)
                    if pos < len(s) and s[pos] == ',':
                        pos += 1
                    elif pos < len(s) and s[pos] == ')':
                        pos += 1
                        break
                    else:
                        raise ValueError(f"Expected ',' or ')' at position {pos}")

            start = pos
            while pos < len(s) and s[pos] not in ',:()':
                pos += 1
            if pos > start:
                node.name = s[start:pos].strip("'\"")

            if pos < len(s) and s[pos] == ':':
                pos += 1
                start = pos
                while pos < len(s) and s[pos] not in ',()':
                    pos += 1
                try:
                    node.branch_length = float(s[start:pos])
                except ValueError:
                    raise ValueError(f"Invalid branch length: {s[start:pos]}") from None
            return node, pos

        root, pos = parse_node(newick, 0, None)
        if pos != len(newick):
            raise ValueError(f"Unexpected text after tree at position {pos}")

        leaves = [node for node in _preorder(root) if node.is_leaf]
        leaf_names = [node.name if node.name else str(node.id) for node in leaves]
        if len(set(leaf_names)) != len(leaf_names):
            raise ValueError("Leaf names in tree must be unique")

        return cls(root=root, n_nodes=next_id[0], n_leaves=len(leaves), leaf_names=leaf_names)

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        """Read a Newick tree file."""
        with open(filepath, 'r') as f:
            return cls.from_newick(f.read())

    def postorder(self) -> list[TreeNode]:
        """Nodes with children before parents."""
        return list(reversed(_preorder(self.root)))

    def get_branches(self) -> list[tuple[TreeNode, TreeNode]]:
        """All branches as (parent, child) pairs in pre-order."""
        return [(node.parent, node) for node in _preorder(self.root) if node.parent is not None]

    def branch_lengths(self) -> list[float]:
        """Branch lengths in :meth:`get_branches` order."""
        return [child.branch_length for _, child in self.get_branches()]

    def set_branch_lengths(self, lengths) -> None:
        """Set branch lengths in :meth:`get_branches` order."""
        branches = self.get_branches()
        if len(lengths) != len(branches):
            raise ValueError(f"Tree has {len(branches)} branches, got {len(lengths)} lengths")
        for (_, child), length in zip(branches, lengths):
            child.branch_length = float(length)

    def tree_length(self) -> float:
        """Sum of all branch lengths."""
        return float(sum(self.branch_lengths()))

    def to_newick(self, precision: int = 6) -> str:
        """Newick string with branch lengths."""

        def write(node: TreeNode) -> str:
            text = ""
            if node.children:
                text = "(" + ",".join(write(child) for child in node.children) + ")"
            if node.name:
                text += node.name
            if node.parent is not None:
                text += f":{node.branch_length:.{precision}g}"
            return text

        return write(self.root) + ";"


def _preorder(root: TreeNode) -> list[TreeNode]:
    result = []
    stack = [root]
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result
