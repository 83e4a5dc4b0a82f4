"""Core data models for deptidy."""

from dataclasses import dataclass, field
from typing import Iterator, Tuple


@dataclass(frozen=True)
class Coordinate:
    """Version-independent identity of a dependency (group:artifact)."""

    group: str
    artifact: str

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}"


@dataclass(frozen=True)
class ResolvedCoordinate:
    """A specific resolved point: group, artifact and version."""

    group: str
    artifact: str
    version: str

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.group, self.artifact)

    @property
    def full_name(self) -> str:
        """Return the coordinate in group:artifact:version format."""
        return f"{self.group}:{self.artifact}:{self.version}"

    @classmethod
    def parse(cls, text: str) -> 'ResolvedCoordinate':
        """
        Parse a group:artifact:version string.

        Raises:
            ValueError: If the string does not have exactly three non-empty parts
        """
        parts = text.strip().split(':')
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Expected group:artifact:version, got '{text}'")
        return cls(*parts)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Repository:
    """A Maven-layout artifact repository."""

    id: str
    uri: str

    @property
    def normalized_uri(self) -> str:
        """Return the URI without a trailing slash."""
        return self.uri[:-1] if self.uri.endswith('/') else self.uri

    @property
    def is_local(self) -> bool:
        return self.uri.startswith('file:')

    def __eq__(self, other) -> bool:
        if not isinstance(other, Repository):
            return False
        return self.normalized_uri == other.normalized_uri

    def __hash__(self) -> int:
        return hash(self.normalized_uri)


@dataclass(frozen=True, eq=False)
class DependencyNode:
    """
    A resolved dependency and the dependencies it brings in.

    Nodes are owned by the resolution that produced them and never change afterwards,
    so equality is identity. Depth 0 marks a dependency declared directly by the project.
    """

    coordinate: ResolvedCoordinate
    depth: int = 0
    children: Tuple['DependencyNode', ...] = field(default=())
    licenses: Tuple[str, ...] = field(default=())

    @property
    def direct(self) -> bool:
        return self.depth == 0

    @property
    def group(self) -> str:
        return self.coordinate.group

    @property
    def artifact(self) -> str:
        return self.coordinate.artifact

    @property
    def version(self) -> str:
        return self.coordinate.version

    def walk(self) -> Iterator['DependencyNode']:
        """Yield this node and every node below it, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def tree_representation(self, prefix: str = "", is_last: bool = True) -> str:
        """Generate a tree visualization string for this subtree."""
        lines = []
        connector = "└── " if is_last else "├── "
        if self.depth == 0 and not prefix:
            lines.append(self.coordinate.full_name)
        else:
            lines.append(f"{prefix}{connector}{self.coordinate.full_name}")

        child_prefix = prefix + ("    " if is_last else "│   ") if (prefix or self.depth > 0) else ""
        for i, child in enumerate(self.children):
            is_last_child = (i == len(self.children) - 1)
            lines.append(child.tree_representation(child_prefix, is_last_child))

        return "\n".join(lines)

