"""Output formatters for reports, dependency trees and CycloneDX SBOMs."""

import logging
import xml.etree.ElementTree as ET
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import NAMESPACE_URL, uuid5

from packageurl import PackageURL
from cyclonedx.model.bom import Bom
from cyclonedx.model.component import Component, ComponentScope, ComponentType
from cyclonedx.model.license import DisjunctiveLicense
from cyclonedx.output.json import JsonV1Dot6
from cyclonedx.output.xml import XmlV1Dot6

from .documents import BuildDocument
from .models import DependencyNode, ResolvedCoordinate
from .reports import ReportSink, columns
from .scopes import BuildTool, scope_view

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.split('}', 1)[1] if '}' in tag else tag


class OutputFormatter:
    """Formatter for various output formats."""

    @staticmethod
    def format_as_list(coordinates: Collection[ResolvedCoordinate]) -> str:
        """Format coordinates as a flat list (one per line)."""
        lines = [c.full_name for c in coordinates]
        return '\n'.join(lines) + '\n'

    @staticmethod
    def format_as_tree(document: BuildDocument) -> str:
        """Format a document's dependencies as a tree visualization, one section per scope."""
        lines = [f"{document.project_coordinate.full_name} ({document.path})"]
        total = 0
        for scope in sorted(document.dependencies):
            roots = document.dependencies[scope]
            if not roots:
                continue
            lines.append("")
            lines.append(f"{scope}:")
            for i, root in enumerate(roots):
                lines.append(root.tree_representation("", i == len(roots) - 1))
                total += sum(1 for _ in root.walk())

        lines.extend([
            "",
            "Dependency Statistics:",
            f"  Total Dependencies: {total}",
            f"  Direct Dependencies: {sum(len(r) for r in document.dependencies.values())}"
        ])
        return '\n'.join(lines) + '\n'

    @staticmethod
    def format_as_maven_tree(document: BuildDocument) -> str:
        """Format as Maven dependency:tree output."""
        project = document.project_coordinate
        lines = [f"[INFO] {project.group}:{project.artifact}:jar:{project.version}"]

        entries: List[Tuple[str, DependencyNode]] = [
            (scope.lower(), root)
            for scope in document.dependencies
            for root in document.dependencies[scope]
        ]
        visited = set()
        for i, (scope, root) in enumerate(entries):
            lines.extend(OutputFormatter._format_maven_node(
                root, scope, "", i == len(entries) - 1, visited
            ))
        return '\n'.join(lines) + '\n'

    @staticmethod
    def _format_maven_node(node: DependencyNode, scope: str, prefix: str, is_last: bool,
                           visited: Optional[set] = None) -> List[str]:
        """Format a single node in Maven tree style."""
        if visited is None:
            visited = set()

        connector = "\\- " if is_last else "+- "
        node_id = f"{node.group}:{node.artifact}:jar:{node.version}:{scope}"
        if node.coordinate in visited:
            return [f"[INFO] {prefix}{connector}{node_id} (cycle)"]
        visited.add(node.coordinate)

        lines = [f"[INFO] {prefix}{connector}{node_id}"]
        child_prefix = prefix + ("   " if is_last else "|  ")
        for i, child in enumerate(node.children):
            lines.extend(OutputFormatter._format_maven_node(
                child, scope, child_prefix, i == len(node.children) - 1, visited
            ))
        visited.discard(node.coordinate)
        return lines

    @staticmethod
    def format_reports(reports: ReportSink) -> str:
        """Format every report table as aligned text columns."""
        sections = []
        for row_type in reports.row_types():
            rows = reports.rows(row_type)
            names = columns(row_type)
            cells = [[_cell(getattr(row, name)) for name in names] for row in rows]
            widths = [max([len(name)] + [len(r[i]) for r in cells]) for i, name in enumerate(names)]

            lines = [f"{row_type.TABLE} ({len(rows)})"]
            lines.append("  ".join(name.ljust(w) for name, w in zip(names, widths)).rstrip())
            lines.append("  ".join("-" * w for w in widths))
            for r in cells:
                lines.append("  ".join(value.ljust(w) for value, w in zip(r, widths)).rstrip())
            sections.append('\n'.join(lines))
        if not sections:
            return "No results.\n"
        return '\n\n'.join(sections) + '\n'

    @staticmethod
    def build_sbom(document: BuildDocument) -> Bom:
        """
        Build a CycloneDX BOM for one project.

        Runtime dependencies are recorded as required components. Dependencies only
        available at compile time (Maven provided, Gradle compileOnly) are recorded as
        optional unless already required.
        """
        from . import __version__

        project = document.project_coordinate
        bom = Bom(serial_number=uuid5(NAMESPACE_URL, f"deptidy:{document.path}:{project.full_name}"))

        tool_component = Component(
            name="deptidy",
            version=__version__,
            type=ComponentType.APPLICATION,
            bom_ref=f"pkg:pypi/deptidy@{__version__}",
        )
        bom.metadata.tools.components.add(tool_component)

        root_purl = OutputFormatter._build_purl(project)
        root = Component(
            name=project.artifact,
            group=project.group or None,
            version=project.version or None,
            type=ComponentType.APPLICATION,
            purl=root_purl,
            bom_ref=root_purl.to_string(),
        )
        bom.metadata.component = root

        if document.build_tool is BuildTool.GRADLE:
            required_roots = document.direct_dependencies("runtimeClasspath")
            optional_roots = document.direct_dependencies("compileOnly")
        else:
            required_roots = _roots_in(document, scope_view("runtime"))
            optional_roots = _roots_in(document, scope_view("provided"))

        components: Dict[str, Component] = {}
        for node in _walk_all(required_roots):
            OutputFormatter._add_component(components, node, ComponentScope.REQUIRED)
        for node in _walk_all(optional_roots):
            OutputFormatter._add_component(components, node, ComponentScope.OPTIONAL)
        for component in components.values():
            bom.components.add(component)

        direct = _unique(list(required_roots) + list(optional_roots))
        bom.register_dependency(root, [components[_ref(node)] for node in direct])
        registered = set()
        for node in _walk_all(direct):
            ref = _ref(node)
            if ref in registered:
                continue
            registered.add(ref)
            bom.register_dependency(components[ref], [components[_ref(child)] for child in node.children])

        logger.debug(f"SBOM for {project.full_name} has {len(components)} components")
        return bom

    @staticmethod
    def format_as_sbom(document: BuildDocument, output_format: str = 'xml') -> str:
        """Generate a CycloneDX 1.6 SBOM for a project, as XML or JSON."""
        bom = OutputFormatter.build_sbom(document)
        if output_format == 'json':
            return JsonV1Dot6(bom).output_as_string(indent=2) + '\n'
        return XmlV1Dot6(bom).output_as_string(indent=2) + '\n'

    @staticmethod
    def sboms_equivalent(existing: str, generated: str) -> bool:
        """
        Compare two XML SBOMs, ignoring the serial number, the timestamp and whitespace.

        An existing document that is not well-formed XML is never equivalent.
        """
        try:
            return _canonical_sbom(existing) == _canonical_sbom(generated)
        except ET.ParseError:
            return False

    @staticmethod
    def _add_component(components: Dict[str, Component], node: DependencyNode, scope: ComponentScope) -> None:
        ref = _ref(node)
        if ref in components:
            return
        purl = OutputFormatter._build_purl(node.coordinate)
        components[ref] = Component(
            name=node.artifact,
            group=node.group,
            version=node.version,
            type=ComponentType.LIBRARY,
            scope=scope,
            purl=purl,
            bom_ref=ref,
            licenses=[DisjunctiveLicense(name=name) for name in node.licenses],
        )

    @staticmethod
    def _build_purl(coordinate: ResolvedCoordinate) -> PackageURL:
        """Build a Maven Package URL for a coordinate."""
        return PackageURL(
            type='maven',
            namespace=coordinate.group or None,
            name=coordinate.artifact,
            version=coordinate.version or None,
        )


def _ref(node: DependencyNode) -> str:
    return OutputFormatter._build_purl(node.coordinate).to_string()


def _roots_in(document: BuildDocument, scopes: Sequence[str]) -> List[DependencyNode]:
    wanted = {s.lower() for s in scopes}
    roots: List[DependencyNode] = []
    for scope, nodes in document.dependencies.items():
        if scope.lower() in wanted:
            roots.extend(nodes)
    return roots


def _unique(nodes: Iterable[DependencyNode]) -> List[DependencyNode]:
    seen = set()
    result = []
    for node in nodes:
        if node.coordinate not in seen:
            seen.add(node.coordinate)
            result.append(node)
    return result


def _walk_all(roots: Iterable[DependencyNode]) -> Iterable[DependencyNode]:
    for root in roots:
        yield from root.walk()


def _cell(value) -> str:
    if value is None:
        return ""
    return str(value).replace('\n', ' ')


def _canonical_sbom(text: str) -> str:
    root = ET.fromstring(text)
    root.attrib.pop('serialNumber', None)
    for parent in root.iter():
        if _local_name(parent.tag) != 'metadata':
            continue
        for child in list(parent):
            if _local_name(child.tag) == 'timestamp':
                parent.remove(child)
    return ET.canonicalize(ET.tostring(root, encoding='unicode'), strip_text=True)
