"""
Cargo.lock -> package dependency graph.

Every [[package]] entry becomes one PackageNode; two resolved versions of
the same crate stay two nodes. Names are stored in their underscore form
because that is how crates appear in symbols.
"""

from __future__ import annotations

import logging
import tomllib
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

from .errors import ManifestParseError

logger = logging.getLogger(__name__)

DEFAULT_LOCK = "Cargo.lock"


def normalize_name(name: str) -> str:
    return name.replace("-", "_")


@dataclass(eq=False)
class PackageNode:
    name: str
    version: Optional[str] = None
    source: Optional[str] = None
    dependencies: Set["PackageNode"] = field(default_factory=set, repr=False)

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.name, self.version or "", self.source or "")


class Packages:
    """Read-only view over the lock file once load_packages returns."""

    def __init__(self) -> None:
        self.by_name: Dict[str, List[PackageNode]] = {}
        self.root: Optional[PackageNode] = None
        self.skipped = 0
        self._distance: Dict[PackageNode, int] = {}
        self._parent: Dict[PackageNode, PackageNode] = {}

    def __len__(self) -> int:
        return sum(len(v) for v in self.by_name.values())

    def __iter__(self):
        for name in sorted(self.by_name):
            yield from sorted(self.by_name[name], key=lambda n: n.key)

    def add(self, node: PackageNode) -> None:
        self.by_name.setdefault(node.name, []).append(node)

    def lookup(self, name: str) -> FrozenSet[PackageNode]:
        return frozenset(self.by_name.get(normalize_name(name), ()))

    def label(self, node: PackageNode) -> str:
        """Tree segment for a package: `name`, or `name@version` when several versions exist."""
        if len(self.by_name.get(node.name, ())) > 1 and node.version:
            return f"{node.name}@{node.version}"
        return node.name

    # ---------------------------
    # Root & reachability
    # ---------------------------

    def select_root(self, name: Optional[str] = None, crates: Iterable[str] = ()) -> Optional[PackageNode]:
        """Pick the declared root package and index hop distances from it.

        An explicit name wins. Otherwise the root is the package nothing
        else depends on; if there are several, the one that also shows up
        as a crate in the binary.
        """
        self.root = None
        if name:
            matches = self.lookup(name)
            if len(matches) == 1:
                self.root = next(iter(matches))
            elif not matches:
                logger.warning(f"Root package {name!r} not found in lock file")
            else:
                logger.warning(f"Root package {name!r} has {len(matches)} versions in lock file, ignoring it")
        else:
            depended = {dep for node in self for dep in node.dependencies}
            candidates = [node for node in self if node not in depended]
            if len(candidates) > 1:
                seen = {normalize_name(c) for c in crates}
                candidates = [c for c in candidates if c.name in seen]
            if candidates:
                self.root = candidates[0]
                if len(candidates) > 1:
                    logger.debug(f"Several root candidates, using {self.root.name}")
        self._index()
        if self.root is not None:
            logger.debug(f"Root package: {self.label(self.root)}")
        return self.root

    def _index(self) -> None:
        # BFS, neighbours in sorted order so shortest chains are deterministic
        self._distance = {}
        self._parent = {}
        if self.root is None:
            return
        self._distance[self.root] = 0
        queue = deque([self.root])
        while queue:
            cur = queue.popleft()
            for dep in sorted(cur.dependencies, key=lambda n: n.key):
                if dep in self._distance:
                    continue
                self._distance[dep] = self._distance[cur] + 1
                self._parent[dep] = cur
                queue.append(dep)

    def distance(self, node: PackageNode) -> Optional[int]:
        """Hops from the root, None when unreachable (or no root)."""
        return self._distance.get(node)

    def chain(self, node: PackageNode) -> List[PackageNode]:
        """Shortest dependency chain root -> node, or [node] if unreachable."""
        if node not in self._distance:
            return [node]
        path = [node]
        while path[-1] in self._parent:
            path.append(self._parent[path[-1]])
        path.reverse()
        return path


# ---------------------------
# Lock file parsing
# ---------------------------

def _parse_entry(entry) -> Tuple[PackageNode, List[str]]:
    if not isinstance(entry, dict):
        raise ManifestParseError(f"entry is not a table: {entry!r}")
    name = entry.get("name")
    version = entry.get("version")
    if not isinstance(name, str) or not name:
        raise ManifestParseError("missing package name")
    if not isinstance(version, str) or not version:
        raise ManifestParseError(f"{name}: missing version")
    source = entry.get("source")
    if source is not None and not isinstance(source, str):
        raise ManifestParseError(f"{name}: source is not a string")
    deps = entry.get("dependencies", [])
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise ManifestParseError(f"{name}: dependencies must be a list of strings")
    return PackageNode(normalize_name(name), version, source), deps


def _parse_dep_ref(ref: str) -> Tuple[str, Optional[str], Optional[str]]:
    # "name", "name version" or "name version (source)"
    parts = ref.strip().split(" ", 2)
    name = normalize_name(parts[0])
    version = parts[1] if len(parts) > 1 else None
    source = parts[2].strip("()") if len(parts) > 2 else None
    return name, version, source


def _find_dep(packages: Packages, ref: str) -> PackageNode:
    name, version, source = _parse_dep_ref(ref)
    cands = packages.by_name.get(name, [])
    if version is not None:
        cands = [c for c in cands if c.version == version]
    if source is not None:
        cands = [c for c in cands if c.source == source]
    if len(cands) != 1:
        raise ManifestParseError(f"dependency {ref!r} matches {len(cands)} packages")
    return cands[0]


def parse_lock(text: str) -> Packages:
    """Build the graph from lock file text.

    Raises ManifestParseError only when the whole document is unusable;
    bad entries and dangling references are skipped and counted.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(f"invalid TOML: {e}")
    entries = data.get("package", [])
    if not isinstance(entries, list):
        raise ManifestParseError("'package' is not an array of tables")

    packages = Packages()
    pending: List[Tuple[PackageNode, List[str]]] = []
    seen: Set[Tuple[str, str, str]] = set()
    for i, entry in enumerate(entries):
        try:
            node, deps = _parse_entry(entry)
            if node.key in seen:
                raise ManifestParseError(f"duplicate entry {node.name} {node.version}")
        except ManifestParseError as e:
            logger.debug(f"Skipping lock entry #{i}: {e}")
            packages.skipped += 1
            continue
        seen.add(node.key)
        packages.add(node)
        pending.append((node, deps))

    for node, deps in pending:
        for ref in deps:
            try:
                node.dependencies.add(_find_dep(packages, ref))
            except ManifestParseError as e:
                logger.debug(f"Skipping dependency of {node.name}: {e}")
                packages.skipped += 1
    return packages


def load_packages(path: Optional[Union[str, Path]],
                  root: Optional[str] = None,
                  crates: Iterable[str] = ()) -> Packages:
    """Load a lock file; any failure degrades to an empty graph."""
    if path is None:
        return Packages()
    lock = Path(path)
    if not lock.is_file():
        logger.info(f"No lock file at {lock}, attributing by crate name only")
        return Packages()
    try:
        packages = parse_lock(lock.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ManifestParseError) as e:
        logger.warning(f"Ignoring lock file {lock}: {e}")
        empty = Packages()
        empty.skipped = 1
        return empty
    packages.select_root(root, crates)
    logger.info(f"Loaded {len(packages)} packages from {lock}")
    return packages
