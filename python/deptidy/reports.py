"""Tabular results emitted by recipes while they run."""

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Dict, List, Optional, Type, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedundantDependencyRow:
    TABLE: ClassVar[str] = "redundant-dependencies"

    project: str
    path: str
    scope: str
    group: str
    artifact: str
    version: str


@dataclass(frozen=True)
class DependencyInUseRow:
    TABLE: ClassVar[str] = "dependencies-in-use"

    project: str
    scope: str
    group: str
    artifact: str
    version: str
    depth: int


@dataclass(frozen=True)
class RepositoryAccessibilityRow:
    """
    Result of probing one repository.

    The ping columns describe the connectivity check, the resolve columns the test
    download. Both exception columns are empty for a healthy repository.
    """
    TABLE: ClassVar[str] = "repository-accessibility"

    uri: str
    ping_exception_type: str = ""
    ping_error_message: str = ""
    ping_http_code: Optional[int] = None
    resolve_exception_type: str = ""
    resolve_error_message: str = ""


@dataclass(frozen=True)
class GradleConfigurationErrorRow:
    TABLE: ClassVar[str] = "gradle-configuration-errors"

    project_path: str
    configuration: str
    exception_type: str
    exception_message: str


@dataclass(frozen=True)
class RelocatedDependencyRow:
    TABLE: ClassVar[str] = "relocated-dependencies"

    path: str
    group: str
    artifact: str
    relocated_group: str
    relocated_artifact: Optional[str]
    context: Optional[str]


@dataclass(frozen=True)
class DependencyListRow:
    TABLE: ClassVar[str] = "dependency-list"

    build_tool: str
    group: str
    artifact: str
    version: str
    dependency_group: str
    dependency_artifact: str
    dependency_version: str
    direct: bool
    resolution_failure: str = ""


@dataclass(frozen=True)
class VulnerabilityRow:
    TABLE: ClassVar[str] = "vulnerabilities"

    project: str
    dependency: str
    introduced_by: str
    name: str
    description: str
    score: Optional[float]


@dataclass(frozen=True)
class LicenseReportRow:
    TABLE: ClassVar[str] = "license-report"

    group: str
    artifact: str
    version: str
    license_name: str
    license_type: str


Row = TypeVar('Row')


class ReportSink:
    """
    Collects report rows, grouped by table, in insertion order.

    Rows may be inserted from several threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Any]] = OrderedDict()
        self._types: Dict[str, type] = {}

    def insert(self, row: Any) -> None:
        table = type(row).TABLE
        with self._lock:
            self._tables.setdefault(table, []).append(row)
            self._types.setdefault(table, type(row))
        logger.debug(f"[{table}] {row}")

    def rows(self, row_type: Type[Row]) -> List[Row]:
        """Return the rows of one type, in the order they were inserted."""
        with self._lock:
            return list(self._tables.get(row_type.TABLE, []))

    def tables(self) -> List[str]:
        with self._lock:
            return list(self._tables)

    def row_types(self) -> List[type]:
        """Row types that have at least one row, in the order their tables were created."""
        with self._lock:
            return [self._types[table] for table in self._tables]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(rows) for rows in self._tables.values())

    def __bool__(self) -> bool:
        return len(self) > 0

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            return {table: [asdict(row) for row in rows] for table, rows in self._tables.items()}

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def columns(row_type: type) -> List[str]:
    """Column names of a row type, in declaration order."""
    return [f.name for f in fields(row_type)]
