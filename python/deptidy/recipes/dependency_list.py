"""Report every Maven and Gradle dependency of a chosen scope."""

import logging
from enum import Enum
from typing import List, Optional, Set

from ..accumulator import ProjectAccumulator
from ..api_client import MavenRepositoryClient, MetadataFetchError
from ..closure import with_maven_central
from ..config import ConfigurationError, Settings
from ..documents import BuildDocument, DocumentVisitor
from ..models import DependencyNode, ResolvedCoordinate
from ..pipeline import ScanningRecipe
from ..reports import DependencyListRow, ReportSink
from ..scopes import scope_view

logger = logging.getLogger(__name__)


class ListScope(Enum):
    COMPILE = "Compile"
    RUNTIME = "Runtime"
    TEST_RUNTIME = "TestRuntime"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ListScope':
        if value is None:
            return cls.COMPILE
        for scope in cls:
            if scope.value.lower() == value.strip().lower():
                return scope
        raise ConfigurationError(
            f"Unknown scope '{value}', expected one of {', '.join(s.value for s in cls)}"
        )

    @property
    def maven_scopes(self) -> List[str]:
        maven_scope = {
            ListScope.COMPILE: "compile",
            ListScope.RUNTIME: "runtime",
            ListScope.TEST_RUNTIME: "test",
        }[self]
        return scope_view(maven_scope)

    @property
    def gradle_configuration(self) -> str:
        return {
            ListScope.COMPILE: "compileClasspath",
            ListScope.RUNTIME: "runtimeClasspath",
            ListScope.TEST_RUNTIME: "testRuntimeClasspath",
        }[self]


class DependencyList(ScanningRecipe):
    """
    Emits a table of all Gradle and Maven dependencies. Makes no changes to any document.

    Standalone Gradle script plugins share their project with its build script, so each
    Gradle project is reported only once.
    """

    name = "dependency-list"
    description = "Emits a data table detailing all Gradle and Maven dependencies."

    def __init__(self, scope: Optional[str] = "Compile", include_transitive: bool = False,
                 validate_resolvable: bool = False, client: Optional[MavenRepositoryClient] = None,
                 settings: Optional[Settings] = None):
        self.scope_name = scope
        self.include_transitive = include_transitive
        self.validate_resolvable = validate_resolvable
        self.client = client
        self.settings = settings or Settings()
        self.scope = ListScope.COMPILE

    def validate(self) -> None:
        self.scope = ListScope.parse(self.scope_name)

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        if self.validate_resolvable and self.client is None:
            self.client = MavenRepositoryClient(self.settings)
        return _DependencyReporter(self, reports)


class _DependencyReporter(DocumentVisitor[BuildDocument]):

    def __init__(self, recipe: DependencyList, reports: ReportSink):
        self.recipe = recipe
        self.reports = reports
        self.seen_gradle_projects: Set[ResolvedCoordinate] = set()

    def visit_maven(self, document: BuildDocument) -> BuildDocument:
        wanted = {s.lower() for s in self.recipe.scope.maven_scopes}
        seen: Set[ResolvedCoordinate] = set()
        for scope, roots in document.dependencies.items():
            if scope.lower() not in wanted:
                continue
            for root in roots:
                if root.direct:
                    self._insert(document, "Maven", root, True, seen)
        return document

    def visit_gradle(self, document: BuildDocument) -> BuildDocument:
        project = document.project_coordinate
        if project in self.seen_gradle_projects:
            return document
        self.seen_gradle_projects.add(project)

        seen: Set[ResolvedCoordinate] = set()
        for root in document.direct_dependencies(self.recipe.scope.gradle_configuration):
            if root.direct:
                self._insert(document, "Gradle", root, True, seen)
        return document

    def _insert(self, document: BuildDocument, build_tool: str, node: DependencyNode, direct: bool,
                seen: Set[ResolvedCoordinate]) -> None:
        if node.coordinate in seen:
            return
        seen.add(node.coordinate)

        self.reports.insert(DependencyListRow(
            build_tool=build_tool,
            group=document.group or "",
            artifact=document.artifact,
            version=document.version or "",
            dependency_group=node.group,
            dependency_artifact=node.artifact,
            dependency_version=node.version,
            direct=direct,
            resolution_failure=self._resolution_failure(document, node),
        ))
        if self.recipe.include_transitive:
            for child in node.children:
                self._insert(document, build_tool, child, False, seen)

    def _resolution_failure(self, document: BuildDocument, node: DependencyNode) -> str:
        if not self.recipe.validate_resolvable:
            return ""
        try:
            self.recipe.client.download_pom(node.coordinate, with_maven_central(document.repositories))
        except MetadataFetchError as e:
            logger.warning(f"{node.coordinate} is no longer resolvable: {e}")
            return str(e)
        return ""
