"""Mark direct dependencies that bring in a known vulnerable coordinate."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Collection, Dict, List, Mapping, Optional

from ..accumulator import ProjectAccumulator
from ..config import ConfigurationError
from ..documents import BuildDocument, DocumentVisitor
from ..models import ResolvedCoordinate
from ..pipeline import ScanningRecipe
from ..reports import ReportSink, VulnerabilityRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Vulnerability:
    name: str
    description: str = ""
    score: Optional[float] = None


# Takes every coordinate in use, returns the vulnerable ones with their findings
VulnerabilityScanner = Callable[[Collection[ResolvedCoordinate]], Mapping[ResolvedCoordinate, List[Vulnerability]]]


def advisory_file_scanner(path: str) -> VulnerabilityScanner:
    """
    Build a scanner backed by a JSON advisory file.

    The file maps group:artifact:version to a list of {"name", "description", "score"}.

    Raises:
        ConfigurationError: If the file cannot be read or has the wrong shape
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read advisories from {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a JSON object keyed by group:artifact:version")

    advisories: Dict[ResolvedCoordinate, List[Vulnerability]] = {}
    for key, entries in data.items():
        try:
            coordinate = ResolvedCoordinate.parse(key)
        except ValueError as e:
            raise ConfigurationError(f"{path}: {e}")
        advisories[coordinate] = [
            Vulnerability(
                name=entry["name"],
                description=entry.get("description", ""),
                score=entry.get("score"),
            )
            for entry in entries
        ]
    logger.info(f"Loaded advisories for {len(advisories)} coordinates from {path}")

    def scan(coordinates: Collection[ResolvedCoordinate]) -> Mapping[ResolvedCoordinate, List[Vulnerability]]:
        return {c: advisories[c] for c in coordinates if c in advisories}

    return scan


class FindVulnerableDependencies(ScanningRecipe):
    """
    Find direct dependencies that bring in publicly disclosed vulnerabilities.

    Vulnerability data comes from an external scanner, called once with every resolved
    coordinate of the whole project.
    """

    name = "find-vulnerable-dependencies"
    description = "Mark dependencies that include coordinates with known vulnerabilities."

    def __init__(self, scanner: VulnerabilityScanner):
        self.vulnerability_scanner = scanner

    def validate(self) -> None:
        if not callable(self.vulnerability_scanner):
            raise ConfigurationError("A vulnerability scanner is required")

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:

        class CoordinateCollector(DocumentVisitor[None]):
            def default(self, document: BuildDocument) -> None:
                if document.is_build_file:
                    accumulator.merge_coordinates(node.coordinate for _, node in document.all_nodes())

        return CoordinateCollector()

    def generate(self, accumulator: ProjectAccumulator, documents: List[BuildDocument],
                 reports: ReportSink) -> List[BuildDocument]:
        coordinates = sorted(accumulator.coordinates, key=str)
        logger.info(f"Scanning {len(coordinates)} coordinates for vulnerabilities")
        findings = self.vulnerability_scanner(coordinates)
        accumulator.generated['vulnerabilities'] = {c: list(v) for c, v in findings.items() if v}
        return []

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        findings: Dict[ResolvedCoordinate, List[Vulnerability]] = accumulator.generated.get('vulnerabilities', {})
        if not findings:
            return DocumentVisitor()

        class VulnerabilityMarker(DocumentVisitor[BuildDocument]):
            def default(self, document: BuildDocument) -> BuildDocument:
                if not document.is_build_file:
                    return document
                result = document
                marked = set()
                for roots in document.dependencies.values():
                    for root in roots:
                        if root.coordinate in marked:
                            continue
                        marked.add(root.coordinate)
                        for vulnerable in sorted({n.coordinate for n in root.walk()} & findings.keys(), key=str):
                            vulnerabilities = findings[vulnerable]
                            for vulnerability in vulnerabilities:
                                reports.insert(VulnerabilityRow(
                                    project=document.project_id,
                                    dependency=str(vulnerable),
                                    introduced_by=str(root.coordinate),
                                    name=vulnerability.name,
                                    description=vulnerability.description,
                                    score=vulnerability.score,
                                ))
                            details = "\n".join(
                                f"{v.name} ({v.score}) - {v.description}" for v in vulnerabilities
                            )
                            result = result.with_marker(
                                "found",
                                f"{root.coordinate} includes {vulnerable} which has the following vulnerabilities:\n{details}",
                            )
                return result

        return VulnerabilityMarker()
