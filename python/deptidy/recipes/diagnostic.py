"""Check that the project's artifact repositories can be reached and resolved from."""

import logging
from typing import Iterable, List, Optional, Set

import requests

from ..accumulator import ProjectAccumulator
from ..api_client import MavenRepositoryClient, MetadataFetchError, RepositoryUnreachableError
from ..config import (
    DEFAULT_PROBE_COORDINATE,
    MAVEN_CENTRAL,
    MAVEN_LOCAL_DEFAULT,
    ConfigurationError,
    Settings,
)
from ..documents import BuildDocument, DocumentVisitor
from ..models import Repository, ResolvedCoordinate
from ..pipeline import ScanningRecipe
from ..reports import GradleConfigurationErrorRow, RepositoryAccessibilityRow, ReportSink
from ..scopes import BuildTool

logger = logging.getLogger(__name__)


class DependencyResolutionDiagnostic(ScanningRecipe):
    """
    Diagnose dependency resolution problems.

    Produces two tables. The repository accessibility table lists every repository known
    to the project and whether it responds right now: each one is pinged and a known
    artifact is downloaded from it. The Gradle configuration errors table lists the
    configurations that failed to resolve when the project was loaded. Build files that
    were loaded without any resolution data are marked with a warning.
    """

    name = "dependency-resolution-diagnostic"
    description = "Report on repository accessibility and dependency resolution failures."

    def __init__(self, group: Optional[str] = None, artifact: Optional[str] = None,
                 version: Optional[str] = None, client: Optional[MavenRepositoryClient] = None,
                 settings: Optional[Settings] = None):
        self.probe = ResolvedCoordinate(
            group or DEFAULT_PROBE_COORDINATE.group,
            artifact or DEFAULT_PROBE_COORDINATE.artifact,
            version or DEFAULT_PROBE_COORDINATE.version,
        )
        self.client = client
        self.settings = settings or Settings()

    def validate(self) -> None:
        for part in (self.probe.group, self.probe.artifact, self.probe.version):
            if not part.strip() or ':' in part:
                raise ConfigurationError(f"Invalid probe coordinate {self.probe}")

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:

        class RepositoryScanner(DocumentVisitor[None]):
            def visit_maven(self, document: BuildDocument) -> None:
                if document.resolved:
                    accumulator.merge_repositories(BuildTool.MAVEN, document.repositories)

            def visit_gradle(self, document: BuildDocument) -> None:
                if document.resolved:
                    accumulator.merge_repositories(
                        BuildTool.GRADLE, document.repositories + document.plugin_repositories
                    )

            def visit_text(self, document: BuildDocument) -> None:
                return None

        return RepositoryScanner()

    def generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument],
                 reports: ReportSink) -> List[BuildDocument]:
        owns_client = self.client is None
        client = self.client or MavenRepositoryClient(self.settings)
        seen: Set[str] = set()
        try:
            if BuildTool.MAVEN in accumulator.repositories:
                repositories = _ordered(accumulator.repositories[BuildTool.MAVEN])
                for default in (MAVEN_LOCAL_DEFAULT, MAVEN_CENTRAL):
                    if default not in repositories:
                        repositories.append(default)
                self._record(client, repositories, seen, reports)
            if BuildTool.GRADLE in accumulator.repositories:
                self._record(client, _ordered(accumulator.repositories[BuildTool.GRADLE]), seen, reports)
        finally:
            if owns_client:
                client.close()
        return []

    def _record(self, client: MavenRepositoryClient, repositories: Iterable[Repository],
                seen: Set[str], reports: ReportSink) -> None:
        for repository in repositories:
            if repository.normalized_uri in seen:
                continue
            seen.add(repository.normalized_uri)
            row = self.probe_repository(client, repository)
            if row.ping_exception_type or row.resolve_exception_type:
                logger.warning(f"Repository {row.uri} has problems: "
                               f"{row.ping_error_message or row.resolve_error_message}")
            else:
                logger.info(f"Repository {row.uri} is accessible")
            reports.insert(row)

    def probe_repository(self, client: MavenRepositoryClient, repository: Repository) -> RepositoryAccessibilityRow:
        """Ping a repository, then try to download the probe artifact from it alone."""
        uri = repository.normalized_uri
        try:
            status = client.ping(repository)
        except RepositoryUnreachableError as e:
            return RepositoryAccessibilityRow(uri, type(e).__name__, str(e), e.status_code)
        except (requests.RequestException, OSError) as e:
            return RepositoryAccessibilityRow(uri, type(e).__name__, str(e))

        try:
            client.download_pom(self.probe, [repository])
        except MetadataFetchError as e:
            return RepositoryAccessibilityRow(
                uri,
                ping_http_code=status,
                resolve_exception_type=type(e).__name__,
                resolve_error_message=str(e),
            )
        return RepositoryAccessibilityRow(uri, ping_http_code=status)

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:

        class ResolutionChecker(DocumentVisitor[BuildDocument]):
            def visit_maven(self, document: BuildDocument) -> BuildDocument:
                if not document.resolved:
                    return document.with_marker(
                        "warning", f"{document.path} is a Maven pom, but it is missing resolution data."
                    )
                return document

            def visit_gradle(self, document: BuildDocument) -> BuildDocument:
                if not document.resolved:
                    return document.with_marker(
                        "warning", f"{document.path} is a Gradle build file, but it is missing resolution data."
                    )
                for configuration in sorted(document.configuration_errors):
                    failure = document.configuration_errors[configuration]
                    reports.insert(GradleConfigurationErrorRow(
                        project_path=document.path,
                        configuration=configuration,
                        exception_type=failure.exception_type,
                        exception_message=failure.message,
                    ))
                return document

        return ResolutionChecker()


def _ordered(repositories: Iterable[Repository]) -> List[Repository]:
    return sorted(repositories, key=lambda r: (r.normalized_uri, r.id))
