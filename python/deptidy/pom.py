"""Reading dependency declarations out of downloaded POM documents."""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional

from .models import Coordinate, ResolvedCoordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyDeclaration:
    """A <dependency> entry as written in a POM, before version resolution."""

    group: str
    artifact: str
    version: Optional[str] = None
    scope: str = "compile"
    optional: bool = False
    type: str = "jar"
    exclusions: FrozenSet[Coordinate] = frozenset()

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.group, self.artifact)


@dataclass
class PomMetadata:
    """
    The parts of a POM needed to walk its dependency graph.

    Attributes:
        coordinate: The artifact this POM describes
        parent: Coordinate of the parent POM, if any
        properties: <properties> merged with the parent hierarchy
        managed_versions: <dependencyManagement> versions keyed by group:artifact
        dependencies: Declared dependencies with properties and managed versions applied
        licenses: License names declared in the POM
    """
    coordinate: ResolvedCoordinate
    parent: Optional[ResolvedCoordinate] = None
    properties: Dict[str, str] = field(default_factory=dict)
    managed_versions: Dict[Coordinate, str] = field(default_factory=dict)
    managed_scopes: Dict[Coordinate, str] = field(default_factory=dict)
    imports: List[ResolvedCoordinate] = field(default_factory=list)
    dependencies: List[DependencyDeclaration] = field(default_factory=list)
    licenses: List[str] = field(default_factory=list)

    def dependencies_in_scope(self, scope: str = "compile", include_optional: bool = False) -> List[DependencyDeclaration]:
        """Return declarations in the given scope, skipping optional ones unless asked."""
        return [
            dep for dep in self.dependencies
            if dep.scope == scope and (include_optional or not dep.optional)
        ]

    def import_managed_versions(self, imported: Dict[Coordinate, str]) -> None:
        """
        Merge versions managed by an imported BOM.

        Versions managed by this POM itself win, and declarations that had no version
        pick one up from the import.
        """
        for key, version in imported.items():
            self.managed_versions.setdefault(key, version)
        self.dependencies = [
            dep if dep.version else replace(dep, version=self.managed_versions.get(dep.coordinate))
            for dep in self.dependencies
        ]


def _strip_namespaces(root: ET.Element) -> ET.Element:
    """Drop XML namespaces so POMs with and without xmlns read the same."""
    for elem in root.iter():
        if isinstance(elem.tag, str) and '}' in elem.tag:
            elem.tag = elem.tag.split('}', 1)[1]
    return root


def get_element_text(parent: ET.Element, tag_name: str) -> Optional[str]:
    """Get text content of a child element."""
    elem = parent.find(tag_name)
    if elem is not None and elem.text:
        return elem.text.strip()
    return None


def resolve_property(value: Optional[str], properties: Dict[str, str], max_iterations: int = 10) -> Optional[str]:
    """
    Resolve ${property} references in a string with nesting support.
    Returns None if unresolvable.
    """
    if not value or '${' not in value:
        return value

    resolved = value
    iterations = 0

    while '${' in resolved and iterations < max_iterations:
        start_idx = resolved.find('${')
        end_idx = resolved.find('}', start_idx)

        if end_idx == -1:
            break

        prop_name = resolved[start_idx + 2:end_idx]
        prop_value = properties.get(prop_name)

        if prop_value is None:
            return None

        resolved = resolved[:start_idx] + prop_value + resolved[end_idx + 1:]
        iterations += 1

    if '${' in resolved:
        return None

    return resolved


def parse_properties(root: ET.Element) -> Dict[str, str]:
    """Parse all properties from <properties> section."""
    properties = {}

    props_elem = root.find('properties')
    if props_elem is not None:
        for prop in props_elem:
            if isinstance(prop.tag, str) and prop.text:
                properties[prop.tag] = prop.text.strip()

    return properties


def parse_exclusions(dep_elem: ET.Element) -> FrozenSet[Coordinate]:
    """Parse <exclusions> from a dependency element."""
    exclusions = set()

    exclusions_elem = dep_elem.find('exclusions')
    if exclusions_elem is None:
        return frozenset()

    for exclusion in exclusions_elem.findall('exclusion'):
        ex_group = get_element_text(exclusion, 'groupId')
        ex_artifact = get_element_text(exclusion, 'artifactId')

        if ex_group and ex_artifact:
            exclusions.add(Coordinate(ex_group, ex_artifact))

    return frozenset(exclusions)


def parse_pom(content: bytes, inherited: Optional[PomMetadata] = None) -> PomMetadata:
    """
    Parse a POM into PomMetadata.

    Args:
        content: Raw POM bytes
        inherited: Already-parsed metadata of the parent POM, whose properties and
            dependency management are inherited (the child overrides)

    Returns:
        PomMetadata with properties resolved where possible

    Raises:
        ET.ParseError: If the document is not well-formed XML
        ValueError: If the POM does not identify its own coordinate
    """
    root = _strip_namespaces(ET.fromstring(content))

    parent = None
    parent_elem = root.find('parent')
    if parent_elem is not None:
        p_group = get_element_text(parent_elem, 'groupId')
        p_artifact = get_element_text(parent_elem, 'artifactId')
        p_version = get_element_text(parent_elem, 'version')
        if p_group and p_artifact and p_version:
            parent = ResolvedCoordinate(p_group, p_artifact, p_version)

    group = get_element_text(root, 'groupId') or (parent.group if parent else None)
    artifact = get_element_text(root, 'artifactId')
    version = get_element_text(root, 'version') or (parent.version if parent else None)
    if not (group and artifact and version):
        raise ValueError("POM does not declare groupId, artifactId and version")

    properties: Dict[str, str] = dict(inherited.properties) if inherited else {}
    properties.update(parse_properties(root))
    properties['project.groupId'] = group
    properties['project.artifactId'] = artifact
    properties['project.version'] = resolve_property(version, properties) or version
    if parent:
        properties['project.parent.groupId'] = parent.group
        properties['project.parent.version'] = parent.version

    metadata = PomMetadata(
        coordinate=ResolvedCoordinate(group, artifact, properties['project.version']),
        parent=parent,
        properties=properties,
        managed_versions=dict(inherited.managed_versions) if inherited else {},
        managed_scopes=dict(inherited.managed_scopes) if inherited else {},
    )

    _parse_dependency_management(root, metadata)

    deps_elem = root.find('dependencies')
    if deps_elem is not None:
        for dep in deps_elem.findall('dependency'):
            declaration = _parse_declaration(dep, metadata)
            if declaration is not None:
                metadata.dependencies.append(declaration)

    licenses_elem = root.find('licenses')
    if licenses_elem is not None:
        for license_elem in licenses_elem.findall('license'):
            name = get_element_text(license_elem, 'name')
            if name:
                metadata.licenses.append(name)
    elif inherited:
        metadata.licenses = list(inherited.licenses)

    logger.debug(
        f"Parsed POM {metadata.coordinate}: {len(metadata.dependencies)} dependencies, "
        f"{len(metadata.managed_versions)} managed versions"
    )
    return metadata


def _parse_dependency_management(root: ET.Element, metadata: PomMetadata) -> None:
    """Parse <dependencyManagement>, recording BOM imports for the caller to fetch."""
    deps_elem = root.find('dependencyManagement/dependencies')
    if deps_elem is None:
        return

    for dep in deps_elem.findall('dependency'):
        group_id = resolve_property(get_element_text(dep, 'groupId'), metadata.properties)
        artifact_id = resolve_property(get_element_text(dep, 'artifactId'), metadata.properties)
        version = resolve_property(get_element_text(dep, 'version'), metadata.properties)
        scope = get_element_text(dep, 'scope')
        dep_type = get_element_text(dep, 'type')

        if not (group_id and artifact_id and version):
            logger.debug(f"Skipping unresolvable managed dependency in {metadata.coordinate}")
            continue

        # Handle BOM imports (scope=import, type=pom)
        if scope == 'import' and dep_type == 'pom':
            metadata.imports.append(ResolvedCoordinate(group_id, artifact_id, version))
            continue

        key = Coordinate(group_id, artifact_id)
        metadata.managed_versions[key] = version
        if scope:
            metadata.managed_scopes[key] = scope


def _parse_declaration(dep: ET.Element, metadata: PomMetadata) -> Optional[DependencyDeclaration]:
    group_id = resolve_property(get_element_text(dep, 'groupId'), metadata.properties)
    artifact_id = resolve_property(get_element_text(dep, 'artifactId'), metadata.properties)
    if not (group_id and artifact_id):
        logger.debug(f"Skipping dependency with unresolvable coordinates in {metadata.coordinate}")
        return None

    key = Coordinate(group_id, artifact_id)
    raw_version = get_element_text(dep, 'version')
    version = resolve_property(raw_version, metadata.properties)
    if raw_version and version is None:
        logger.debug(f"Could not resolve version {raw_version} for {key} in {metadata.coordinate}")
    if not version:
        version = metadata.managed_versions.get(key)

    scope = get_element_text(dep, 'scope') or metadata.managed_scopes.get(key) or 'compile'

    return DependencyDeclaration(
        group=group_id,
        artifact=artifact_id,
        version=version,
        scope=scope,
        optional=get_element_text(dep, 'optional') == 'true',
        type=get_element_text(dep, 'type') or 'jar',
        exclusions=parse_exclusions(dep),
    )
