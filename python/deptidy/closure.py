"""Transitive closures of dependencies and their resolution from repository metadata."""

import fnmatch
import logging
from collections import defaultdict, deque
from typing import Deque, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .api_client import MetadataFetchError, PackageMetadataFetcher
from .config import MAVEN_CENTRAL, MAVEN_CENTRAL_HOSTS
from .models import Coordinate, DependencyNode, Repository, ResolvedCoordinate
from .pom import DependencyDeclaration

logger = logging.getLogger(__name__)


class Closure(Mapping[Coordinate, ResolvedCoordinate]):
    """
    Every coordinate reachable from a root dependency, one version per group:artifact.

    Built once by flatten() and never mutated afterwards.
    """

    __slots__ = ('_entries',)

    def __init__(self, entries: Optional[Dict[Coordinate, ResolvedCoordinate]] = None):
        self._entries: Dict[Coordinate, ResolvedCoordinate] = dict(entries or {})

    @classmethod
    def empty(cls) -> 'Closure':
        return cls()

    def __getitem__(self, key: Coordinate) -> ResolvedCoordinate:
        return self._entries[key]

    def __iter__(self) -> Iterator[Coordinate]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def contains(self, resolved: ResolvedCoordinate) -> bool:
        """True when the exact group:artifact:version is part of the closure."""
        return self._entries.get(resolved.coordinate) == resolved

    def resolved(self) -> FrozenSet[ResolvedCoordinate]:
        return frozenset(self._entries.values())

    def __repr__(self) -> str:
        return f"Closure({sorted(str(v) for v in self._entries.values())})"


def flatten(nodes: Iterable[DependencyNode]) -> Closure:
    """
    Flatten dependency trees into a Closure.

    A coordinate is recorded before its children are visited, and an already recorded
    coordinate is not descended into again, so shared subtrees are walked once.
    """
    entries: Dict[Coordinate, ResolvedCoordinate] = {}

    def collect(node: DependencyNode) -> None:
        key = node.coordinate.coordinate
        if key in entries:
            return
        entries[key] = node.coordinate
        for child in node.children:
            collect(child)

    for node in nodes:
        collect(node)
    return Closure(entries)


def with_maven_central(repositories: Sequence[Repository]) -> List[Repository]:
    """Append Maven Central unless one of the repositories already points at it."""
    effective = list(repositories)
    if not any(host in repo.uri for repo in effective for host in MAVEN_CENTRAL_HOSTS):
        effective.append(MAVEN_CENTRAL)
    return effective


def glob_matches(value: str, pattern: Optional[str]) -> bool:
    """Match a value against a glob pattern; a missing pattern matches everything."""
    return pattern is None or fnmatch.fnmatchcase(value, pattern)


def _is_excluded(coordinate: Coordinate, exclusions: FrozenSet[Coordinate]) -> bool:
    return any(
        glob_matches(coordinate.group, exclusion.group) and glob_matches(coordinate.artifact, exclusion.artifact)
        for exclusion in exclusions
    )


class ClosureResolver:
    """
    Computes the transitive closure of a dependency from its own POM.

    Resolution is best effort: when the root's metadata cannot be fetched the closure is
    unknown (empty), so nothing is ever judged redundant on incomplete information.
    """

    def __init__(self, fetcher: PackageMetadataFetcher, max_depth: int = 50):
        self.fetcher = fetcher
        self.max_depth = max_depth

    def resolve(self, root: ResolvedCoordinate, repositories: Sequence[Repository]) -> Tuple[Closure, bool]:
        """
        Resolve the closure of a root dependency.

        Args:
            root: The dependency whose own dependencies to resolve
            repositories: Repositories declared by the project

        Returns:
            (closure, ok) where ok is False and the closure empty if resolution failed
        """
        trees = self.resolve_tree(root, repositories)
        if trees is None:
            return Closure.empty(), False
        closure = flatten(trees)
        logger.debug(f"Closure of {root} has {len(closure)} entries")
        return closure, True

    def resolve_tree(self, root: ResolvedCoordinate,
                     repositories: Sequence[Repository]) -> Optional[List[DependencyNode]]:
        """
        Resolve the compile-scope dependency tree of a root dependency.

        Returns:
            The root's direct dependencies as trees, or None if the root's metadata is unavailable
        """
        effective = with_maven_central(repositories)
        try:
            metadata = self.fetcher.fetch(root, effective)
        except MetadataFetchError as e:
            logger.warning(f"Could not resolve dependencies of {root}, treating closure as unknown: {e}")
            return None

        managed = metadata.managed_versions
        seen: Dict[Coordinate, ResolvedCoordinate] = {}
        depth_of: Dict[ResolvedCoordinate, int] = {}
        licenses_of: Dict[ResolvedCoordinate, Tuple[str, ...]] = {}
        edges: Dict[ResolvedCoordinate, List[ResolvedCoordinate]] = defaultdict(list)
        direct: List[ResolvedCoordinate] = []

        queue: Deque[Tuple[Optional[ResolvedCoordinate], DependencyDeclaration, int, FrozenSet[Coordinate]]] = deque(
            (None, declaration, 0, frozenset())
            for declaration in metadata.dependencies_in_scope('compile')
        )

        # Breadth first so the nearest declaration of a group:artifact wins
        while queue:
            parent, declaration, depth, exclusions = queue.popleft()
            key = declaration.coordinate
            if key in seen or _is_excluded(key, exclusions):
                continue

            # The root's own explicit versions beat its management; below it management wins
            if parent is None:
                version = declaration.version or managed.get(key)
            else:
                version = managed.get(key) or declaration.version
            if not version:
                logger.debug(f"No version for {key} below {parent or root}, skipping")
                continue

            resolved = ResolvedCoordinate(key.group, key.artifact, version)
            seen[key] = resolved
            depth_of[resolved] = depth
            (direct if parent is None else edges[parent]).append(resolved)

            if depth + 1 >= self.max_depth:
                logger.warning(f"Reached maximum depth {self.max_depth} at {resolved}")
                continue

            try:
                child_metadata = self.fetcher.fetch(resolved, effective)
            except MetadataFetchError as e:
                logger.debug(f"Treating {resolved} as a leaf: {e}")
                continue

            licenses_of[resolved] = tuple(child_metadata.licenses)
            child_exclusions = exclusions | declaration.exclusions
            for child in child_metadata.dependencies_in_scope('compile'):
                queue.append((resolved, child, depth + 1, child_exclusions))

        def build(coordinate: ResolvedCoordinate) -> DependencyNode:
            return DependencyNode(
                coordinate=coordinate,
                depth=depth_of[coordinate],
                children=tuple(build(child) for child in edges.get(coordinate, [])),
                licenses=licenses_of.get(coordinate, ()),
            )

        return [build(coordinate) for coordinate in direct]
