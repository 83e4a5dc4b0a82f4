"""Whole-project state built during the scan phase and read during rewrite."""

import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Set

from .closure import Closure
from .comparator import StaticVersionComparator
from .models import Coordinate, Repository, ResolvedCoordinate
from .scopes import BuildTool

logger = logging.getLogger(__name__)


class AccumulatorFrozenError(RuntimeError):
    """Raised when something tries to merge into an accumulator after scanning finished."""


class ProjectAccumulator:
    """
    Shared aggregate for one pipeline run.

    Every merge is associative and commutative, so the order in which documents are
    scanned never changes the final state. Merges are serialized by a lock, and the
    accumulator is frozen before any document is rewritten.
    """

    def __init__(self, comparator: Optional[StaticVersionComparator] = None):
        self._comparator = comparator or StaticVersionComparator()
        self._lock = threading.Lock()
        self._frozen = False

        # group:artifact -> oldest version seen anywhere
        self.minimum_versions: Dict[Coordinate, ResolvedCoordinate] = {}
        # project id -> scope/configuration -> transitive GAVs
        self.transitives: Dict[str, Dict[str, Set[ResolvedCoordinate]]] = defaultdict(lambda: defaultdict(set))
        # build tool -> repositories declared by its projects
        self.repositories: Dict[BuildTool, Set[Repository]] = defaultdict(set)
        self.coordinates: Set[ResolvedCoordinate] = set()
        # GAV -> license names declared in its POM, empty when it declares none
        self.licenses: Dict[ResolvedCoordinate, Set[str]] = defaultdict(set)
        self.paths: Dict[str, Set[str]] = defaultdict(set)
        # Free-form results computed in the generate phase
        self.generated: Dict[str, Any] = {}

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Stop accepting merges."""
        self._frozen = True

    def _check_open(self) -> None:
        if self._frozen:
            raise AccumulatorFrozenError("Accumulator is read-only once scanning has completed")

    def _older(self, a: ResolvedCoordinate, b: ResolvedCoordinate) -> ResolvedCoordinate:
        result = self._comparator.compare(a.version, b.version)
        if result == 0:
            # Equivalent versions spelled differently, e.g. 1.01 and 1.1
            return a if a.version <= b.version else b
        return a if result < 0 else b

    def merge_minimum(self, resolved: ResolvedCoordinate) -> None:
        """Keep the oldest version of each group:artifact."""
        with self._lock:
            self._check_open()
            key = resolved.coordinate
            current = self.minimum_versions.get(key)
            self.minimum_versions[key] = resolved if current is None else self._older(current, resolved)

    def merge_closure(self, project_id: str, scope: str, closure: Closure) -> None:
        """Union a closure into the project's bucket for a scope."""
        with self._lock:
            self._check_open()
            self.transitives[project_id][scope].update(closure.values())

    def merge_repositories(self, build_tool: BuildTool, repositories: Iterable[Repository]) -> None:
        """Record that a build tool was seen, with the repositories its project declares."""
        with self._lock:
            self._check_open()
            self.repositories[build_tool].update(repositories)

    def merge_coordinates(self, coordinates: Iterable[ResolvedCoordinate]) -> None:
        with self._lock:
            self._check_open()
            self.coordinates.update(coordinates)

    def merge_licenses(self, resolved: ResolvedCoordinate, licenses: Iterable[str]) -> None:
        with self._lock:
            self._check_open()
            self.licenses[resolved].update(licenses)

    def merge_path(self, key: str, path: str) -> None:
        with self._lock:
            self._check_open()
            self.paths[key].add(path)

    def transitives_for(self, project_id: str) -> Dict[str, Set[ResolvedCoordinate]]:
        """Return the scope buckets of a project, empty if nothing was recorded."""
        return self.transitives.get(project_id, {})

    def snapshot(self) -> Dict[str, Any]:
        """Plain, order-independent view of the accumulated state."""
        return {
            'minimum_versions': {str(k): str(v) for k, v in self.minimum_versions.items()},
            'transitives': {
                project: {scope: frozenset(str(c) for c in gavs) for scope, gavs in scopes.items()}
                for project, scopes in self.transitives.items()
            },
            'repositories': {tool.value: frozenset(r.normalized_uri for r in repos)
                             for tool, repos in self.repositories.items()},
            'coordinates': frozenset(str(c) for c in self.coordinates),
            'licenses': {str(k): frozenset(v) for k, v in self.licenses.items()},
            'paths': {key: frozenset(paths) for key, paths in self.paths.items()},
        }
