"""Find dependencies whose group or artifact has moved to a new coordinate."""

import csv
import io
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..accumulator import ProjectAccumulator
from ..config import ConfigurationError
from ..documents import BuildDocument, DocumentVisitor
from ..models import ResolvedCoordinate
from ..pipeline import ScanningRecipe
from ..reports import RelocatedDependencyRow, ReportSink

logger = logging.getLogger(__name__)

MIGRATION_COLUMNS = ("oldGroupId", "oldArtifactId", "newGroupId", "newArtifactId", "context")


@dataclass(frozen=True)
class Relocation:
    """
    Where a group, or one artifact of it, has moved to.

    An artifact of None means every artifact of the group moved and kept its name.
    """

    group: str
    artifact: Optional[str]
    new_group: str
    new_artifact: Optional[str]
    context: Optional[str] = None

    def target(self, artifact: str) -> str:
        return f"{self.new_group}:{self.new_artifact or artifact}"


RelocationTable = Dict[Tuple[str, Optional[str]], Relocation]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def parse_migrations(content: str, source: str = "migrations.csv") -> RelocationTable:
    """
    Parse a relocation table.

    Raises:
        ConfigurationError: If the header is missing a column or a row has no old or new group
    """
    reader = csv.DictReader(io.StringIO(content))
    missing = [c for c in MIGRATION_COLUMNS if c not in (reader.fieldnames or [])]
    if missing:
        raise ConfigurationError(f"{source} is missing column(s): {', '.join(missing)}")

    table: RelocationTable = {}
    for line_num, row in enumerate(reader, 2):
        group = _blank_to_none(row["oldGroupId"])
        new_group = _blank_to_none(row["newGroupId"])
        if group is None or new_group is None:
            raise ConfigurationError(f"{source} line {line_num}: old and new group ids are required")
        relocation = Relocation(
            group=group,
            artifact=_blank_to_none(row["oldArtifactId"]),
            new_group=new_group,
            new_artifact=_blank_to_none(row["newArtifactId"]),
            context=_blank_to_none(row["context"]),
        )
        table[(relocation.group, relocation.artifact)] = relocation
    logger.debug(f"Loaded {len(table)} relocations from {source}")
    return table


def load_migrations(path: Optional[str] = None) -> RelocationTable:
    """Load the bundled relocation table, or one from a file."""
    if path is None:
        content = (resources.files("deptidy") / "data" / "migrations.csv").read_text(encoding="utf-8")
        return parse_migrations(content)
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read migrations file {path}: {e}")
    return parse_migrations(content, path)


def find_relocation(table: RelocationTable, group: str, artifact: str) -> Optional[Relocation]:
    """Look up an artifact-specific relocation first, then a group-wide one."""
    return table.get((group, artifact)) or table.get((group, None))


class RelocatedDependencyCheck(ScanningRecipe):
    """Find dependencies that have been relocated."""

    name = "relocated-dependency-check"
    description = "Find dependencies that have been relocated."

    def __init__(self, migrations: Optional[str] = None):
        self.migrations = migrations
        self._table: Optional[RelocationTable] = None

    def validate(self) -> None:
        self._table = load_migrations(self.migrations)

    @property
    def table(self) -> RelocationTable:
        if self._table is None:
            self._table = load_migrations(self.migrations)
        return self._table

    def scanner(self, accumulator: ProjectAccumulator) -> DocumentVisitor:
        table = self.table

        class RelocationScanner(DocumentVisitor[None]):
            def default(self, document: BuildDocument) -> None:
                if not document.is_build_file:
                    return
                accumulator.merge_coordinates(
                    node.coordinate for _, node in document.all_nodes()
                    if find_relocation(table, node.group, node.artifact) is not None
                )

        return RelocationScanner()

    def visitor(self, accumulator: ProjectAccumulator, reports: ReportSink) -> DocumentVisitor:
        table = self.table
        relocated = accumulator.coordinates
        if relocated:
            logger.info(f"{len(relocated)} relocated dependency version(s) in use")

        class RelocationMarker(DocumentVisitor[BuildDocument]):
            def default(self, document: BuildDocument) -> BuildDocument:
                if not document.is_build_file:
                    return document
                found: Dict[ResolvedCoordinate, Relocation] = {}
                for _, node in document.all_nodes():
                    if node.coordinate in relocated and node.coordinate not in found:
                        found[node.coordinate] = find_relocation(table, node.group, node.artifact)

                result = document
                reported = set()
                for resolved in sorted(found, key=str):
                    relocation = found[resolved]
                    message = f"{resolved.group}:{resolved.artifact} has been relocated to {relocation.target(resolved.artifact)}"
                    if relocation.context:
                        message += f" ({relocation.context})"
                    result = result.with_marker("found", message)
                    if resolved.coordinate in reported:
                        continue
                    reported.add(resolved.coordinate)
                    reports.insert(RelocatedDependencyRow(
                        path=document.path,
                        group=resolved.group,
                        artifact=resolved.artifact,
                        relocated_group=relocation.new_group,
                        relocated_artifact=relocation.new_artifact,
                        context=relocation.context,
                    ))
                return result

        return RelocationMarker()

