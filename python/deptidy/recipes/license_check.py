"""Report the licenses of every third-party dependency in use."""

import logging
import re
from typing import Iterator, List, Optional, Tuple

from ..accumulator import ProjectAccumulator
from ..config import ConfigurationError
from ..documents import BuildDocument, DocumentVisitor
from ..models import DependencyNode
from ..pipeline import ScanningRecipe
from ..reports import LicenseReportRow, ReportSink
from ..scopes import BuildTool, scope_view, validate_scope

logger = logging.getLogger(__name__)

LICENSE_SCOPES = ("compile", "runtime", "provided", "test")

UNKNOWN = "Unknown"

# Checked in order, so LGPL is tried before GPL
LICENSE_TYPES: List[Tuple[str, re.Pattern]] = [
    ("Apache2", re.compile(r"apache", re.IGNORECASE)),
    ("LGPL", re.compile(r"\blgpl|lesser general public", re.IGNORECASE)),
    ("GPL", re.compile(r"\bgpl|general public licen[cs]e", re.IGNORECASE)),
    ("BSD", re.compile(r"\bbsd\b", re.IGNORECASE)),
    ("CDDL", re.compile(r"\bcddl\b|common development and distribution", re.IGNORECASE)),
    ("CreativeCommons", re.compile(r"creative commons|\bcc0\b|\bcc[- ]by\b", re.IGNORECASE)),
    ("Eclipse", re.compile(r"eclipse|\bepl\b", re.IGNORECASE)),
    ("MIT", re.compile(r"\bmit\b", re.IGNORECASE)),
    ("Mozilla", re.compile(r"mozilla|\bmpl\b", re.IGNORECASE)),
    ("PublicDomain", re.compile(r"public domain|unlicense", re.IGNORECASE)),
]


def license_type(name: str) -> str:
    """Infer the license family from the name a POM gives it."""
    for family, pattern in LICENSE_TYPES:
        if pattern.search(name):
            return family
    return UNKNOWN


class DependencyLicenseCheck(ScanningRecipe):
    """
    Find licenses in use in third-party dependencies.

    Maven projects contribute every dependency, direct or transitive, visible in the
    chosen scope. Gradle projects contribute every resolved configuration. A dependency
    whose POM names no license is reported with an unknown license.
    """

    name = "dependency-license-check"
    description = "Locates and reports on all licenses in use."

    def __init__(self, scope: str = "compile", add_markers: bool = False):
        self.scope = scope
        self.add_markers = add_markers

    def validate(self) -> None:
        scope = validate_scope(self.scope, BuildTool.MAVEN)
        if scope not in LICENSE_SCOPES:
            raise ConfigurationError(
                f"Scope '{self.scope}' is not supported, expected one of {', '.join(LICENSE_SCOPES)}"
            )
        self.scope = scope

    def nodes_in_view(self, document: BuildDocument) -> Iterator[DependencyNode]:
        """Yield every node of the document that the license report covers."""
        if document.build_tool is BuildTool.MAVEN:
            view = set(scope_view(self.scope))
            roots = [root for scope, roots in document.dependencies.items() if scope.lower() in view
                     for root in roots]
        elif document.build_tool is BuildTool.GRADLE:
            roots = [root for roots in document.dependencies.values() for root in roots]
        else:
            return
        for root in roots:
            for node in root.walk():
                if node.version:
                    yield node

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:
        recipe = self

        class LicenseScanner(DocumentVisitor[None]):
            def default(self, document: BuildDocument) -> None:
                if not document.is_build_file or not document.resolved:
                    return
                for node in recipe.nodes_in_view(document):
                    accumulator.merge_licenses(node.coordinate, node.licenses)

        return LicenseScanner()

    def generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument],
                 reports: ReportSink) -> List[BuildDocument]:
        for resolved in sorted(accumulator.licenses, key=str):
            names = sorted(accumulator.licenses[resolved]) or [""]
            for name in names:
                reports.insert(LicenseReportRow(
                    group=resolved.group,
                    artifact=resolved.artifact,
                    version=resolved.version,
                    license_name=name,
                    license_type=license_type(name) if name else UNKNOWN,
                ))
        logger.info(f"Reported licenses of {len(accumulator.licenses)} dependencies")
        return []

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        if not self.add_markers:
            return DocumentVisitor()
        return _LicenseMarker(self)


class _LicenseMarker(DocumentVisitor[BuildDocument]):

    def __init__(self, recipe: DependencyLicenseCheck):
        self.recipe = recipe

    def default(self, document: BuildDocument) -> BuildDocument:
        if not document.is_build_file or not document.resolved:
            return document
        found = set()
        for node in self.recipe.nodes_in_view(document):
            for name in node.licenses or (UNKNOWN,):
                found.add(f"{node.coordinate}: {name}")
        if not found:
            return document
        return document.with_marker("found", "\n".join(sorted(found)))
