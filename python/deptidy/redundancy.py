"""Deciding whether a direct dependency is already supplied transitively."""

import logging
from typing import AbstractSet, Iterable, Mapping, Set

from .models import ResolvedCoordinate
from .scopes import ALL_SCOPES, BuildTool, broader_scopes

logger = logging.getLogger(__name__)

TransitivesByScope = Mapping[str, AbstractSet[ResolvedCoordinate]]


class RedundancyDetector:
    """Checks direct dependencies against the transitives visible from their scope."""

    def compatible_transitives(self, scope: str, transitives_by_scope: TransitivesByScope,
                               build_tool: BuildTool = BuildTool.MAVEN) -> Set[ResolvedCoordinate]:
        """
        Collect the transitives a dependency in this scope can rely on.

        That is the scope's own bucket, the buckets of every broader scope, and the
        bucket shared by all scopes.
        """
        result: Set[ResolvedCoordinate] = set()
        for name in [scope] + broader_scopes(scope, build_tool) + [ALL_SCOPES]:
            bucket = transitives_by_scope.get(name)
            if bucket is None and build_tool is BuildTool.MAVEN:
                bucket = transitives_by_scope.get(name.lower())
            if bucket:
                result.update(bucket)
        return result

    def is_redundant(self, dependency: ResolvedCoordinate, scope: str,
                     transitives_by_scope: TransitivesByScope,
                     build_tool: BuildTool = BuildTool.MAVEN) -> bool:
        """
        True when the exact group:artifact:version is supplied by a compatible closure.

        A transitive with a different version does not count: pinning another version
        is a deliberate override.
        """
        transitives = self.compatible_transitives(scope, transitives_by_scope, build_tool)
        return dependency in transitives

    def find_redundant(self, dependencies: Iterable[ResolvedCoordinate], scope: str,
                       transitives_by_scope: TransitivesByScope,
                       build_tool: BuildTool = BuildTool.MAVEN) -> Set[ResolvedCoordinate]:
        """Return the subset of dependencies that are redundant in the given scope."""
        transitives = self.compatible_transitives(scope, transitives_by_scope, build_tool)
        redundant = {dep for dep in dependencies if dep in transitives}
        if redundant:
            logger.debug(f"Redundant in {scope}: {sorted(str(d) for d in redundant)}")
        return redundant
