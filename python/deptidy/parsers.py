"""Input parsers: the JSON project model and Maven dependency:tree output."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from .documents import BuildDocument, ConfigurationFailure, DocumentKind, Marker
from .models import DependencyNode, Repository, ResolvedCoordinate

logger = logging.getLogger(__name__)

# [INFO] |  +- group:artifact:jar:version:scope
TREE_LINE_PATTERN = re.compile(
    r'^(?:\[INFO\]\s)?(?P<indent>(?:[| ] {2})*)(?P<branch>[+\\]- )(?P<coordinate>\S+)(?P<rest>.*)$'
)
PROJECT_LINE_PATTERN = re.compile(r'^(?:\[INFO\]\s)?(?P<coordinate>[^\s:]+:[^\s:]+:[^\s:]+:[^\s:]+)\s*$')


class ProjectModelError(ValueError):
    """Raised when an input file does not describe a valid project."""


def _is_url(path: str) -> bool:
    """Check if a path is a URL."""
    return urlparse(path).scheme in ('http', 'https')


def _read_content(path: str) -> str:
    """
    Read content from either a file path or URL.

    Raises:
        FileNotFoundError: If file doesn't exist
        requests.RequestException: If URL fetch fails
    """
    if _is_url(path):
        logger.info(f"Fetching content from URL: {path}")
        response = requests.get(path, timeout=30)
        response.raise_for_status()
        return response.text
    logger.info(f"Reading content from file: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def kind_for_path(path: str) -> DocumentKind:
    """Guess a document's kind from its file name."""
    name = path.replace('\\', '/').rsplit('/', 1)[-1].lower()
    if name == 'pom.xml':
        return DocumentKind.MAVEN
    if name.endswith('.gradle') or name.endswith('.gradle.kts'):
        return DocumentKind.GRADLE
    return DocumentKind.TEXT


def _parse_node(data: Dict[str, Any], depth: int, where: str) -> DependencyNode:
    try:
        coordinate = ResolvedCoordinate(data['group'], data['artifact'], str(data['version']))
    except KeyError as e:
        raise ProjectModelError(f"{where}: dependency is missing {e}")
    children = tuple(
        _parse_node(child, depth + 1, f"{where} > {coordinate}")
        for child in data.get('dependencies', [])
    )
    return DependencyNode(
        coordinate=coordinate,
        depth=depth,
        children=children,
        licenses=tuple(data.get('licenses', [])),
    )


def _parse_repositories(entries: List[Dict[str, str]], where: str) -> Tuple[Repository, ...]:
    repositories = []
    for entry in entries:
        if 'uri' not in entry:
            raise ProjectModelError(f"{where}: repository is missing a uri")
        repositories.append(Repository(id=entry.get('id', entry['uri']), uri=entry['uri']))
    return tuple(repositories)


def _node_to_dict(node: DependencyNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'group': node.group,
        'artifact': node.artifact,
        'version': node.version,
    }
    if node.licenses:
        data['licenses'] = list(node.licenses)
    if node.children:
        data['dependencies'] = [_node_to_dict(child) for child in node.children]
    return data


def document_to_dict(document: BuildDocument) -> Dict[str, Any]:
    """Serialize a document back into the JSON project model."""
    data: Dict[str, Any] = {'path': document.path, 'kind': document.kind.value}
    if document.kind is DocumentKind.TEXT:
        data['text'] = document.text
    else:
        data['project'] = {
            'group': document.group,
            'artifact': document.artifact,
            'version': document.version,
        }
        data['resolved'] = document.resolved
        data['repositories'] = [{'id': r.id, 'uri': r.uri} for r in document.repositories]
        if document.plugin_repositories:
            data['pluginRepositories'] = [{'id': r.id, 'uri': r.uri} for r in document.plugin_repositories]
        data['dependencies'] = {
            scope: [_node_to_dict(node) for node in roots]
            for scope, roots in document.dependencies.items()
        }
        if document.configuration_errors:
            data['configurationErrors'] = {
                name: {'type': failure.exception_type, 'message': failure.message}
                for name, failure in document.configuration_errors.items()
            }
    if document.markers:
        data['markers'] = [{'level': m.level, 'message': m.message} for m in document.markers]
    return data


class FileParser:
    """Parser for the supported input formats."""

    @staticmethod
    def parse_document(data: Dict[str, Any]) -> BuildDocument:
        """
        Parse one document of the JSON project model.

        Example:
            {"path": "pom.xml", "project": {"group": "com.example", "artifact": "app", "version": "1.0"},
             "repositories": [{"id": "central", "uri": "https://repo.maven.apache.org/maven2"}],
             "dependencies": {"compile": [{"group": "...", "artifact": "...", "version": "...",
                                           "dependencies": [...]}]}}
        """
        path = data.get('path')
        if not path:
            raise ProjectModelError("Every document needs a path")

        kind_name = data.get('kind')
        try:
            kind = DocumentKind(kind_name) if kind_name else kind_for_path(path)
        except ValueError:
            raise ProjectModelError(f"{path}: unknown document kind '{kind_name}'")

        markers = tuple(Marker(m['level'], m['message']) for m in data.get('markers', []))
        if kind is DocumentKind.TEXT:
            return BuildDocument(path=path, kind=kind, text=data.get('text', ''), markers=markers)

        project = data.get('project', {})
        if not project.get('artifact'):
            raise ProjectModelError(f"{path}: project artifact is required")

        dependencies = {
            scope: tuple(_parse_node(node, 0, f"{path} [{scope}]") for node in nodes)
            for scope, nodes in data.get('dependencies', {}).items()
        }
        errors = {
            name: ConfigurationFailure(entry.get('type', ''), entry.get('message', ''))
            for name, entry in data.get('configurationErrors', {}).items()
        }
        return BuildDocument(
            path=path,
            kind=kind,
            group=project.get('group'),
            artifact=project['artifact'],
            version=project.get('version'),
            dependencies=dependencies,
            repositories=_parse_repositories(data.get('repositories', []), path),
            plugin_repositories=_parse_repositories(data.get('pluginRepositories', []), path),
            configuration_errors=errors,
            resolved=data.get('resolved', True),
            markers=markers,
        )

    @staticmethod
    def parse_project_model(file_path: str) -> List[BuildDocument]:
        """
        Parse a JSON project model: {"documents": [...]}.
        Supports both local files and URLs.
        """
        content = _read_content(file_path)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProjectModelError(f"{file_path} is not valid JSON: {e}")

        entries = data.get('documents') if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ProjectModelError(f"{file_path} must contain a 'documents' list")

        documents = [FileParser.parse_document(entry) for entry in entries]
        logger.info(f"Parsed {len(documents)} documents from {file_path}")
        return documents

    @staticmethod
    def parse_dependency_tree(file_path: str, document_path: str = 'pom.xml') -> List[BuildDocument]:
        """
        Parse the output of mvn dependency:tree into a Maven document.

        Example:
            [INFO] com.example:app:jar:1.0.0
            [INFO] +- com.fasterxml.jackson.core:jackson-databind:jar:2.17.0:compile
            [INFO] |  \\- com.fasterxml.jackson.core:jackson-core:jar:2.17.0:compile
            [INFO] \\- junit:junit:jar:4.13.2:test
        """
        content = _read_content(file_path)
        project: Optional[ResolvedCoordinate] = None
        # Mutable [coordinate, scope, depth, children] entries, frozen into nodes at the end
        roots: List[list] = []
        stack: List[list] = []

        for line_num, line in enumerate(content.splitlines(), 1):
            line = line.rstrip()
            if not line or re.match(r'^\[(WARNING|ERROR)\]', line, re.IGNORECASE):
                continue
            if re.match(r'^\[INFO\].*---.*---', line, re.IGNORECASE):
                continue

            match = TREE_LINE_PATTERN.match(line)
            if match is None:
                header = PROJECT_LINE_PATTERN.match(line)
                if header and project is None:
                    project = _coordinate_from_tree(header.group('coordinate'))[0]
                continue
            if project is None:
                logger.debug(f"Line {line_num}: dependency before project line, skipping")
                continue

            coordinate, scope = _coordinate_from_tree(match.group('coordinate'))
            if coordinate is None:
                logger.debug(f"Line {line_num}: Skipping non-dependency line '{line}'")
                continue
            depth = len(match.group('indent')) // 3
            entry = [coordinate, scope, depth, []]
            del stack[depth:]
            if depth == 0:
                roots.append(entry)
            elif len(stack) == depth:
                stack[-1][3].append(entry)
            else:
                logger.debug(f"Line {line_num}: no parent for '{line}', skipping")
                continue
            stack.append(entry)

        if project is None:
            raise ProjectModelError(f"{file_path} does not look like mvn dependency:tree output")

        dependencies: Dict[str, List[DependencyNode]] = {}
        for entry in roots:
            dependencies.setdefault(entry[1], []).append(_freeze(entry))
        document = BuildDocument(
            path=document_path,
            kind=DocumentKind.MAVEN,
            group=project.group,
            artifact=project.artifact,
            version=project.version,
            dependencies={scope: tuple(nodes) for scope, nodes in dependencies.items()},
        )
        logger.info(f"Parsed {len(roots)} direct dependencies of {project} from {file_path}")
        return [document]

    @staticmethod
    def detect_format(file_path: str) -> str:
        """Detect the input file format based on file extension."""
        name_lower = Path(urlparse(file_path).path if _is_url(file_path) else file_path).name.lower()
        if name_lower.endswith('.json'):
            return 'model'
        return 'tree'

    @staticmethod
    def load(file_path: str) -> List[BuildDocument]:
        """Load documents from any supported input format."""
        if FileParser.detect_format(file_path) == 'model':
            return FileParser.parse_project_model(file_path)
        return FileParser.parse_dependency_tree(file_path)


def _coordinate_from_tree(text: str) -> Tuple[Optional[ResolvedCoordinate], str]:
    """Split group:artifact:type[:classifier]:version[:scope] into a coordinate and scope."""
    parts = text.split(':')
    if len(parts) == 4:
        group, artifact, _, version = parts
        scope = 'compile'
    elif len(parts) == 5:
        group, artifact, _, version, scope = parts
    elif len(parts) == 6:
        group, artifact, _, _, version, scope = parts
    else:
        return None, ''
    return ResolvedCoordinate(group, artifact, version), scope.lower()


def _freeze(entry: list) -> DependencyNode:
    coordinate, _, depth, children = entry
    return DependencyNode(
        coordinate=coordinate,
        depth=depth,
        children=tuple(_freeze(child) for child in children),
    )


def write_project_model(documents: List[BuildDocument], file_path: str) -> None:
    """Write documents as a JSON project model."""
    data = {'documents': [document_to_dict(doc) for doc in documents]}
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)
        f.write('\n')
