"""Remove direct dependencies that a chosen parent dependency already brings in."""

import logging
from typing import Iterable, List, Optional, Set, Tuple

from ..accumulator import ProjectAccumulator
from ..api_client import MavenRepositoryClient
from ..closure import ClosureResolver, glob_matches
from ..config import ConfigurationError, Settings
from ..documents import BuildDocument, DocumentVisitor
from ..models import DependencyNode
from ..pipeline import ScanningRecipe
from ..redundancy import RedundancyDetector
from ..reports import RedundantDependencyRow, ReportSink
from ..scopes import ALL_SCOPES, BuildTool, scope_view, validate_scope

logger = logging.getLogger(__name__)

REMOVABLE_SCOPES = ("compile", "runtime", "provided", "test")


class RemoveRedundantDependencies(ScanningRecipe):
    """
    Remove explicit dependencies that are already provided transitively by a parent dependency.

    The parent is any direct dependency matching the group and artifact patterns. Its own
    POM is downloaded and resolved, so a dependency is found redundant even when the
    project declares both of them explicitly. Only an exact group:artifact:version match
    counts; a dependency pinned to another version is left alone.
    """

    name = "remove-redundant-dependencies"
    description = "Remove explicit dependencies that are already provided transitively by a specified dependency."

    def __init__(self, group_pattern: str, artifact_pattern: str, scope: Optional[str] = None,
                 configuration: Optional[str] = None, resolver: Optional[ClosureResolver] = None,
                 settings: Optional[Settings] = None):
        self.group_pattern = group_pattern
        self.artifact_pattern = artifact_pattern
        self.scope = scope
        self.configuration = configuration
        self.settings = settings or Settings()
        self._resolver = resolver
        self.detector = RedundancyDetector()

    def validate(self) -> None:
        if not self.group_pattern or not self.group_pattern.strip():
            raise ConfigurationError("Group pattern of the parent dependency must not be blank")
        if not self.artifact_pattern or not self.artifact_pattern.strip():
            raise ConfigurationError("Artifact pattern of the parent dependency must not be blank")
        if self.scope is not None:
            scope = validate_scope(self.scope, BuildTool.MAVEN)
            if scope not in REMOVABLE_SCOPES:
                raise ConfigurationError(
                    f"Scope '{self.scope}' is not supported, expected one of {', '.join(REMOVABLE_SCOPES)}"
                )
            self.scope = scope
        if self.configuration is not None:
            self.configuration = validate_scope(self.configuration, BuildTool.GRADLE)

    @property
    def resolver(self) -> ClosureResolver:
        if self._resolver is None:
            client = MavenRepositoryClient(self.settings)
            self._resolver = ClosureResolver(client, max_depth=self.settings.max_depth)
        return self._resolver

    def is_parent(self, node: DependencyNode) -> bool:
        return glob_matches(node.group, self.group_pattern) and glob_matches(node.artifact, self.artifact_pattern)

    def in_view(self, scope: str, build_tool: BuildTool) -> bool:
        """
        True when parents declared in this scope can supply the requested scope.

        The requested scope sees its own dependencies and those of every broader scope,
        so parents in all of them are resolved. Without a requested scope every one counts.
        """
        requested = self.configuration if build_tool is BuildTool.GRADLE else self.scope
        if requested is None:
            return True
        return scope.lower() in {name.lower() for name in scope_view(requested, build_tool)}

    def parents(self, roots: Iterable[DependencyNode]) -> List[DependencyNode]:
        return [node for node in roots if node.direct and self.is_parent(node)]

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:
        return _ParentClosureScanner(self, accumulator, self.resolver)

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        return _RedundantDependencyRemover(self, accumulator, reports)


class _ParentClosureScanner(DocumentVisitor[None]):

    def __init__(self, recipe: RemoveRedundantDependencies, accumulator: ProjectAccumulator,
                 resolver: ClosureResolver):
        self.recipe = recipe
        self.accumulator = accumulator
        self.resolver = resolver

    def visit_maven(self, document: BuildDocument) -> None:
        if not document.resolved:
            return
        for scope, roots in document.dependencies.items():
            key = scope.lower()
            if not self.recipe.in_view(key, BuildTool.MAVEN):
                continue
            for parent in self.recipe.parents(roots):
                logger.info(f"Resolving transitives of {parent.coordinate} for {document.project_id} ({key})")
                closure, _ = self.resolver.resolve(parent.coordinate, document.repositories)
                self.accumulator.merge_closure(document.project_id, key, closure)

    def visit_gradle(self, document: BuildDocument) -> None:
        if not document.resolved:
            return
        # Configurations inherit from each other in ways a flat lattice cannot express,
        # so every closure of a Gradle project goes into one shared bucket
        for configuration, roots in document.dependencies.items():
            if not self.recipe.in_view(configuration, BuildTool.GRADLE):
                continue
            for parent in self.recipe.parents(roots):
                logger.info(f"Resolving transitives of {parent.coordinate} for {document.project_id} ({configuration})")
                closure, _ = self.resolver.resolve(parent.coordinate, document.repositories)
                self.accumulator.merge_closure(document.project_id, ALL_SCOPES, closure)

    def default(self, document: BuildDocument) -> None:
        return None


class _RedundantDependencyRemover(DocumentVisitor[BuildDocument]):

    def __init__(self, recipe: RemoveRedundantDependencies, accumulator: ProjectAccumulator, reports: ReportSink):
        self.recipe = recipe
        self.accumulator = accumulator
        self.reports = reports

    def _candidates(self, roots: Iterable[DependencyNode]):
        return [node.coordinate for node in roots if node.direct and not self.recipe.is_parent(node)]

    def visit_maven(self, document: BuildDocument) -> BuildDocument:
        buckets = self.accumulator.transitives_for(document.project_id)
        if not buckets:
            return document

        result = document
        for scope, roots in document.dependencies.items():
            key = scope.lower()
            if self.recipe.scope is not None and key != self.recipe.scope:
                continue
            redundant = self.recipe.detector.find_redundant(
                self._candidates(roots), key, buckets, BuildTool.MAVEN
            )
            for dependency in sorted(redundant, key=str):
                logger.info(f"Removing {dependency} from {document.path} ({key}), it is provided transitively")
                result = result.without_dependency(dependency.group, dependency.artifact, scope)
                self.reports.insert(RedundantDependencyRow(
                    project=document.project_id,
                    path=document.path,
                    scope=key,
                    group=dependency.group,
                    artifact=dependency.artifact,
                    version=dependency.version,
                ))
        return result

    def visit_gradle(self, document: BuildDocument) -> BuildDocument:
        buckets = self.accumulator.transitives_for(document.project_id)
        if not buckets.get(ALL_SCOPES):
            return document

        result = document
        removed: Set[Tuple[str, str]] = set()
        for configuration, roots in document.dependencies.items():
            if self.recipe.configuration is not None and configuration != self.recipe.configuration:
                continue
            redundant = self.recipe.detector.find_redundant(
                self._candidates(roots), configuration, buckets, BuildTool.GRADLE
            )
            for dependency in sorted(redundant, key=str):
                if (dependency.group, dependency.artifact) in removed:
                    continue
                removed.add((dependency.group, dependency.artifact))
                logger.info(f"Removing {dependency} from {document.path}, it is provided transitively")
                # Resolved configuration names differ from declaring ones, so remove from every
                # configuration unless one was requested
                result = result.without_dependency(dependency.group, dependency.artifact, self.recipe.configuration)
                self.reports.insert(RedundantDependencyRow(
                    project=document.project_id,
                    path=document.path,
                    scope=configuration,
                    group=dependency.group,
                    artifact=dependency.artifact,
                    version=dependency.version,
                ))
        return result
