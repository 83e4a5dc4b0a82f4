"""Find the oldest version of matching dependencies in use anywhere in the project."""

import logging
from typing import Dict, Optional, Tuple

from ..accumulator import ProjectAccumulator
from ..closure import glob_matches
from ..comparator import StaticVersionComparator
from ..config import ConfigurationError
from ..documents import BuildDocument, DocumentVisitor
from ..models import ResolvedCoordinate
from ..pipeline import ScanningRecipe
from ..reports import DependencyInUseRow, ReportSink
from ..scopes import BuildTool

logger = logging.getLogger(__name__)


class FindMinimumDependencyVersion(ScanningRecipe):
    """
    Find the oldest matching dependency version in use.

    The oldest version is the lowest one used in any scope of any module. If the main
    code of one module uses Jackson 2.11 and the tests of another use 2.16, the oldest
    Jackson version in use is 2.11. Every module using it is marked.
    """

    name = "find-minimum-dependency-version"
    description = "Find the oldest matching dependency version in use."

    def __init__(self, group_pattern: str, artifact_pattern: str,
                 comparator: Optional[StaticVersionComparator] = None):
        self.group_pattern = group_pattern
        self.artifact_pattern = artifact_pattern
        self.comparator = comparator or StaticVersionComparator()

    def validate(self) -> None:
        if not self.group_pattern or not self.artifact_pattern:
            raise ConfigurationError("Both a group pattern and an artifact pattern are required")

    def initial_value(self) -> ProjectAccumulator:
        return ProjectAccumulator(self.comparator)

    def matches(self, resolved: ResolvedCoordinate) -> bool:
        return glob_matches(resolved.group, self.group_pattern) and glob_matches(resolved.artifact, self.artifact_pattern)

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:
        recipe = self

        class MinimumVersionScanner(DocumentVisitor[None]):
            def default(self, document: BuildDocument) -> None:
                if not document.is_build_file:
                    return
                for _, node in document.all_nodes():
                    if recipe.matches(node.coordinate):
                        accumulator.merge_minimum(node.coordinate)

        return MinimumVersionScanner()

    def minimum_in_use(self, accumulator: ProjectAccumulator) -> Dict[str, ResolvedCoordinate]:
        """
        Keep only the coordinates that use the overall minimum version.

        Returns:
            Map of group:artifact:version to coordinate, empty when nothing matched
        """
        if not accumulator.minimum_versions:
            return {}
        minimum = self.comparator.min_version(v.version for v in accumulator.minimum_versions.values())
        logger.info(f"Oldest version in use for {self.group_pattern}:{self.artifact_pattern} is {minimum}")
        return {
            str(resolved): resolved
            for resolved in accumulator.minimum_versions.values()
            if resolved.version == minimum
        }

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        minimums = self.minimum_in_use(accumulator)
        if not minimums:
            return DocumentVisitor()
        return _MinimumVersionMarker(minimums, reports)


class _MinimumVersionMarker(DocumentVisitor[BuildDocument]):

    def __init__(self, minimums: Dict[str, ResolvedCoordinate], reports: ReportSink):
        self.minimums = minimums
        self.reports = reports

    def default(self, document: BuildDocument) -> BuildDocument:
        if not document.is_build_file:
            return document

        # (scope, coordinate) -> shallowest depth it occurs at
        uses: Dict[Tuple[str, ResolvedCoordinate], int] = {}
        for scope, node in document.all_nodes():
            if str(node.coordinate) in self.minimums:
                key = (scope.lower() if document.build_tool is BuildTool.MAVEN else scope, node.coordinate)
                uses[key] = min(node.depth, uses.get(key, node.depth))
        if not uses:
            return document

        for (scope, resolved), depth in sorted(uses.items(), key=lambda item: (item[0][0], str(item[0][1]))):
            self.reports.insert(DependencyInUseRow(
                project=document.artifact,
                scope=scope,
                group=resolved.group,
                artifact=resolved.artifact,
                version=resolved.version,
                depth=depth,
            ))
        found = sorted({str(resolved) for _, resolved in uses})
        return document.with_marker("found", "\n".join(found))
