"""Build documents as seen by the pipeline, and visitor dispatch over their kinds."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Generic, Iterator, Optional, Tuple, TypeVar

from .models import DependencyNode, Repository, ResolvedCoordinate
from .scopes import BuildTool


class DocumentKind(Enum):
    MAVEN = "maven"
    GRADLE = "gradle"
    TEXT = "text"


@dataclass(frozen=True)
class Marker:
    """An annotation attached to a document by a rewrite."""

    level: str  # found, warning or error
    message: str


@dataclass(frozen=True)
class ConfigurationFailure:
    """A Gradle configuration that failed to resolve when the project was loaded."""

    exception_type: str
    message: str


@dataclass(frozen=True)
class BuildDocument:
    """
    One build description (pom.xml, build.gradle) with its resolution data, or a plain
    text document such as a generated SBOM.

    Documents are immutable; rewrites return modified copies.
    """

    path: str
    kind: DocumentKind
    group: Optional[str] = None
    artifact: str = ""
    version: Optional[str] = None
    # scope or configuration -> direct dependencies declared there, with their trees
    dependencies: Dict[str, Tuple[DependencyNode, ...]] = field(default_factory=dict)
    repositories: Tuple[Repository, ...] = ()
    plugin_repositories: Tuple[Repository, ...] = ()
    configuration_errors: Dict[str, ConfigurationFailure] = field(default_factory=dict)
    resolved: bool = True
    markers: Tuple[Marker, ...] = ()
    text: str = ""

    @property
    def build_tool(self) -> Optional[BuildTool]:
        if self.kind is DocumentKind.MAVEN:
            return BuildTool.MAVEN
        if self.kind is DocumentKind.GRADLE:
            return BuildTool.GRADLE
        return None

    @property
    def is_build_file(self) -> bool:
        return self.kind in (DocumentKind.MAVEN, DocumentKind.GRADLE)

    @property
    def project_id(self) -> str:
        return f"{self.group}:{self.artifact}"

    @property
    def project_coordinate(self) -> ResolvedCoordinate:
        return ResolvedCoordinate(self.group or "", self.artifact, self.version or "")

    @property
    def directory(self) -> str:
        """Directory part of the path, with a trailing slash, or empty at the root."""
        path = self.path.replace('\\', '/')
        return path[:path.rfind('/') + 1]

    def direct_dependencies(self, scope: str) -> Tuple[DependencyNode, ...]:
        return self.dependencies.get(scope, ())

    def all_nodes(self) -> Iterator[Tuple[str, DependencyNode]]:
        """Yield (scope, node) for every node of every tree, direct and transitive."""
        for scope, roots in self.dependencies.items():
            for root in roots:
                for node in root.walk():
                    yield scope, node

    def without_dependency(self, group: str, artifact: str, scope: Optional[str] = None) -> 'BuildDocument':
        """
        Remove a direct dependency declaration.

        Args:
            group: Group of the dependency to remove
            artifact: Artifact of the dependency to remove
            scope: Only remove it from this scope/configuration; all scopes when None

        Returns:
            This document if nothing matched, otherwise a copy without the declaration
        """
        changed = False
        dependencies = {}
        for name, roots in self.dependencies.items():
            if scope is None or name == scope:
                kept = tuple(n for n in roots if not (n.group == group and n.artifact == artifact))
                changed = changed or len(kept) != len(roots)
                dependencies[name] = kept
            else:
                dependencies[name] = roots
        if not changed:
            return self
        return replace(self, dependencies=dependencies)

    def with_marker(self, level: str, message: str) -> 'BuildDocument':
        """Attach a marker unless an identical one is already present."""
        marker = Marker(level, message)
        if marker in self.markers:
            return self
        return replace(self, markers=self.markers + (marker,))

    def with_text(self, text: str) -> 'BuildDocument':
        if text == self.text:
            return self
        return replace(self, text=text)


R = TypeVar('R')


class DocumentVisitor(Generic[R]):
    """
    Visits a document through the method for its kind.

    Subclasses override the kinds they care about; the defaults return the document
    unchanged (or None for scanners, whose return value is ignored).
    """

    def visit(self, document: BuildDocument) -> R:
        if document.kind is DocumentKind.MAVEN:
            return self.visit_maven(document)
        if document.kind is DocumentKind.GRADLE:
            return self.visit_gradle(document)
        return self.visit_text(document)

    def visit_maven(self, document: BuildDocument) -> R:
        return self.default(document)

    def visit_gradle(self, document: BuildDocument) -> R:
        return self.default(document)

    def visit_text(self, document: BuildDocument) -> R:
        return self.default(document)

    def default(self, document: BuildDocument) -> R:
        return document  # type: ignore[return-value]
