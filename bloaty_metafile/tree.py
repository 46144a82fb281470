"""
Size tree: folds attribution paths and their byte counts into one rooted
tree, then optionally bounds its depth.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import DepthBoundError
from .packages import PackageNode, Packages
from .records import SizeRecord
from .symbols import FOREIGN_NAME, SECTIONS_NAME, AttributionPath, resolve

logger = logging.getLogger(__name__)

ROOT_NAME = "__ROOT__"
COLLAPSED_NAME = "[collapsed]"
OWN_NAME = "[own]"
AMBIGUOUS_SUFFIX = " (ambiguous)"


@dataclass(frozen=True)
class Sizes:
    vmsize: int = 0
    filesize: int = 0

    def __add__(self, other: "Sizes") -> "Sizes":
        return Sizes(self.vmsize + other.vmsize, self.filesize + other.filesize)


@dataclass
class TreeNode:
    name: str
    own: Sizes = Sizes()
    total: Sizes = Sizes()
    children: Dict[str, "TreeNode"] = field(default_factory=dict)

    def child(self, name: str) -> "TreeNode":
        node = self.children.get(name)
        if node is None:
            node = self.children[name] = TreeNode(name)
        return node

    def walk(self, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "TreeNode"]]:
        """Yield (path, node) for every descendant, depth first, children sorted."""
        for name in sorted(self.children):
            node = self.children[name]
            path = prefix + (name,)
            yield path, node
            yield from node.walk(path)

    def find(self, *path: str) -> Optional["TreeNode"]:
        node: Optional[TreeNode] = self
        for part in path:
            node = node.children.get(part) if node else None
        return node

    def copy(self) -> "TreeNode":
        return TreeNode(self.name, self.own, self.total,
                        {name: child.copy() for name, child in self.children.items()})

    def split_own(self) -> None:
        """Turn a leaf into an inner node; its bytes move to the [own] leaf."""
        leaf = self.child(OWN_NAME)
        leaf.own = leaf.own + self.own
        leaf.total = leaf.total + self.own
        self.own = Sizes()


def find_violations(root: TreeNode) -> List[str]:
    """Paths whose total differs from own + sum of child totals, or inner
    nodes holding bytes of their own."""
    bad = []
    for path, node in [((), root)] + list(root.walk()):
        expected = node.own
        for child in node.children.values():
            expected = expected + child.total
        if expected != node.total or (node.children and node.own != Sizes()):
            bad.append("/".join(path) or root.name)
    return bad


# ---------------------------
# Version disambiguation
# ---------------------------

@dataclass(frozen=True)
class Ambiguous:
    """Terminal state: several versions are equally close to the root."""
    name: str
    candidates: FrozenSet[PackageNode]

    @property
    def label(self) -> str:
        return f"{self.name}{AMBIGUOUS_SUFFIX}"


def pick_version(name: str, nodes: FrozenSet[PackageNode], packages: Packages) -> Union[PackageNode, Ambiguous]:
    """Fewest hops from the root wins; any tie (or nothing reachable) is Ambiguous."""
    reachable = [(packages.distance(n), n) for n in nodes if packages.distance(n) is not None]
    if not reachable:
        return Ambiguous(name, nodes)
    best = min(d for d, _ in reachable)
    winners = [n for d, n in reachable if d == best]
    if len(winners) == 1:
        return winners[0]
    return Ambiguous(name, nodes)


class Attributor:
    """Rewrites resolved paths against the dependency graph.

    One instance per worker; it caches per-crate prefixes.
    """

    def __init__(self, packages: Packages) -> None:
        self.packages = packages
        self._prefix: Dict[str, Tuple[str, ...]] = {}

    def owner(self, name: str) -> Union[PackageNode, Ambiguous, None]:
        nodes = self.packages.lookup(name)
        if not nodes:
            return None
        if len(nodes) == 1:
            return next(iter(nodes))
        return pick_version(name, nodes, self.packages)

    def prefix(self, name: str) -> Tuple[str, ...]:
        if name not in self._prefix:
            owner = self.owner(name)
            if owner is None:
                prefix: Tuple[str, ...] = (name,)
            elif isinstance(owner, Ambiguous):
                prefix = (owner.label,)
            else:
                prefix = tuple(self.packages.label(n) for n in self.packages.chain(owner))
            self._prefix[name] = prefix
        return self._prefix[name]

    def attribute(self, path: AttributionPath) -> AttributionPath:
        if path[0] in (SECTIONS_NAME, FOREIGN_NAME):
            return path
        return self.prefix(path[0]) + tuple(path[1:])


# ---------------------------
# Aggregation
# ---------------------------

class SizeTree:
    def __init__(self, root_name: str = ROOT_NAME) -> None:
        self.root = TreeNode(root_name)
        self.records = 0

    def add(self, path: Sequence[str], vmsize: int, filesize: int) -> None:
        """Charge one record to the leaf at `path`.

        Only leaves hold bytes. A path ending at an inner node lands in its
        [own] child, and a leaf that later gains children hands its bytes
        to [own] first, so the result does not depend on record order.
        """
        if not path:
            raise ValueError("empty attribution path")
        size = Sizes(vmsize, filesize)
        node = self.root
        node.total = node.total + size
        fresh = True
        for part in path:
            # an existing childless node below the root ended an earlier path
            if not fresh and not node.children:
                node.split_own()
            fresh = part not in node.children
            node = node.child(part)
            node.total = node.total + size
        if node.children:
            node = node.child(OWN_NAME)
            node.total = node.total + size
        node.own = node.own + size
        self.records += 1

    def merge(self, other: "SizeTree") -> None:
        """Sum `other` into this tree, node by matching path."""
        _merge_into(self.root, other.root, top=True)
        self.records += other.records


def _merge_into(dst: TreeNode, src: TreeNode, top: bool = False) -> None:
    if not top and not dst.children and src.children:
        dst.split_own()
    if not top and dst.children and not src.children:
        leaf = dst.child(OWN_NAME)
        leaf.own = leaf.own + src.own
        leaf.total = leaf.total + src.own
        dst.total = dst.total + src.total
        return
    dst.own = dst.own + src.own
    dst.total = dst.total + src.total
    for name, child in src.children.items():
        if name in dst.children:
            _merge_into(dst.children[name], child)
        else:
            dst.children[name] = child.copy()


def _fold(records: Sequence[SizeRecord], packages: Packages,
          with_section: bool, no_sections: bool) -> SizeTree:
    attributor = Attributor(packages)
    tree = SizeTree()
    for rec in records:
        path = resolve(rec.section, rec.symbol, with_section)
        if no_sections and path[0] == SECTIONS_NAME:
            continue
        tree.add(attributor.attribute(path), rec.vmsize, rec.filesize)
    return tree


def build_tree(records: Sequence[SizeRecord],
               packages: Optional[Packages] = None,
               workers: int = 1,
               with_section: bool = False,
               no_sections: bool = False) -> SizeTree:
    """Resolve every record and fold it into a SizeTree.

    With workers > 1 the records are split into contiguous chunks; each
    worker owns its own tree and the trees are merged in chunk order.
    """
    if packages is None:
        packages = Packages()
    if workers <= 1 or len(records) < 2:
        tree = _fold(records, packages, with_section, no_sections)
    else:
        size = -(-len(records) // workers)
        chunks = [records[i:i + size] for i in range(0, len(records), size)]
        tree = SizeTree()
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = [ex.submit(_fold, chunk, packages, with_section, no_sections) for chunk in chunks]
            for fut in futures:
                tree.merge(fut.result())
    logger.debug(f"Aggregated {tree.records} records into {len(tree.root.children)} top-level nodes")
    return tree


# ---------------------------
# Depth limiting
# ---------------------------

def limit_depth(root: TreeNode, deep: int) -> TreeNode:
    """Return a copy of the tree where nodes at depth `deep` keep at most
    one child, the collapse marker, holding everything below them.

    Top-level nodes are at depth 1. deep == 0 means unlimited.
    """
    if deep < 0:
        raise DepthBoundError(f"depth bound must be >= 0, got {deep}")
    return _limited(root, 0, deep)


def _limited(node: TreeNode, depth: int, deep: int) -> TreeNode:
    out = TreeNode(node.name, own=node.own, total=node.total)
    if deep and depth >= deep and node.children:
        removed = Sizes()
        for child in node.children.values():
            removed = removed + child.total
        out.children[COLLAPSED_NAME] = TreeNode(COLLAPSED_NAME, own=removed, total=removed)
        return out
    for name, child in node.children.items():
        out.children[name] = _limited(child, depth + 1, deep)
    return out
