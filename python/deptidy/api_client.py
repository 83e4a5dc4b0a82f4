"""Client for downloading POM metadata from Maven-layout repositories."""

import logging
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from .config import Settings
from .models import Repository, ResolvedCoordinate
from .pom import PomMetadata, parse_pom
from .session import create_session

logger = logging.getLogger(__name__)

# Parent and BOM chains deeper than this are treated as broken metadata
MAX_INHERITANCE_DEPTH = 16


class MetadataFetchError(Exception):
    """Raised when a coordinate's POM cannot be downloaded or understood."""

    def __init__(self, coordinate: ResolvedCoordinate, message: str):
        super().__init__(f"{coordinate}: {message}")
        self.coordinate = coordinate


class RepositoryUnreachableError(Exception):
    """Raised when a repository refuses or fails a connectivity check."""

    def __init__(self, uri: str, status_code: Optional[int] = None, message: str = ""):
        super().__init__(message or f"{uri} responded with HTTP {status_code}")
        self.uri = uri
        self.status_code = status_code


class PackageMetadataFetcher(Protocol):
    """Anything that can produce a coordinate's own dependency declarations."""

    def fetch(self, coordinate: ResolvedCoordinate, repositories: Sequence[Repository]) -> PomMetadata:
        ...


def pom_path(coordinate: ResolvedCoordinate) -> str:
    """Return the repository-relative path of a coordinate's POM."""
    group_path = coordinate.group.replace('.', '/')
    return (
        f"{group_path}/{coordinate.artifact}/{coordinate.version}/"
        f"{coordinate.artifact}-{coordinate.version}.pom"
    )


def _local_path(uri: str) -> Path:
    return Path(url2pathname(urlparse(uri).path))


class MavenRepositoryClient:
    """
    Downloads and parses POMs, following parent POMs and BOM imports.

    Parsed metadata is cached for the lifetime of the client, so each coordinate is
    downloaded at most once per run. The session and cache are shared between threads
    and guarded by a lock.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.session = session or create_session(self.settings.user_agent, self.settings.ca_bundle)
        self._lock = threading.RLock()
        self._cache: Dict[ResolvedCoordinate, PomMetadata] = {}
        self._failures: Dict[ResolvedCoordinate, str] = {}

    def fetch(self, coordinate: ResolvedCoordinate, repositories: Sequence[Repository]) -> PomMetadata:
        """
        Get the effective dependency metadata for a coordinate.

        Args:
            coordinate: The artifact whose POM to fetch
            repositories: Repositories to try, in order

        Returns:
            Parsed PomMetadata with parent properties and dependency management applied

        Raises:
            MetadataFetchError: If no repository serves a usable POM
        """
        return self._fetch(coordinate, tuple(repositories), ())

    def _fetch(self, coordinate: ResolvedCoordinate, repositories: Tuple[Repository, ...],
               chain: Tuple[ResolvedCoordinate, ...]) -> PomMetadata:
        with self._lock:
            if coordinate in self._cache:
                return self._cache[coordinate]
            if coordinate in self._failures:
                raise MetadataFetchError(coordinate, self._failures[coordinate])

        if coordinate in chain or len(chain) > MAX_INHERITANCE_DEPTH:
            raise MetadataFetchError(coordinate, "cyclic or too deep parent/import chain")

        try:
            content = self.download_pom(coordinate, repositories)
            metadata = self._parse_with_inheritance(content, coordinate, repositories, chain + (coordinate,))
        except MetadataFetchError as e:
            with self._lock:
                self._failures[coordinate] = str(e)
            raise

        with self._lock:
            self._cache[coordinate] = metadata
        return metadata

    def _parse_with_inheritance(self, content: bytes, coordinate: ResolvedCoordinate,
                                repositories: Tuple[Repository, ...],
                                chain: Tuple[ResolvedCoordinate, ...]) -> PomMetadata:
        try:
            metadata = parse_pom(content)
            if metadata.parent is not None:
                parent = self._fetch(metadata.parent, repositories, chain)
                metadata = parse_pom(content, inherited=parent)
        except (ET.ParseError, ValueError) as e:
            raise MetadataFetchError(coordinate, f"unreadable POM ({e})")

        for bom in metadata.imports:
            try:
                imported = self._fetch(bom, repositories, chain)
            except MetadataFetchError as e:
                logger.warning(f"Failed to import BOM {bom} into {coordinate}: {e}")
                continue
            metadata.import_managed_versions(imported.managed_versions)
            logger.debug(f"Imported {len(imported.managed_versions)} managed versions from BOM {bom}")

        return metadata

    def download_pom(self, coordinate: ResolvedCoordinate, repositories: Sequence[Repository]) -> bytes:
        """
        Download a POM from the first repository that has it.

        Raises:
            MetadataFetchError: If no repository serves the POM
        """
        if not repositories:
            raise MetadataFetchError(coordinate, "no repositories to download from")

        path = pom_path(coordinate)
        reasons: List[str] = []
        for repository in repositories:
            location = f"{repository.normalized_uri}/{path}"
            logger.debug(f"Fetching POM for {coordinate} from {location}")
            if repository.is_local:
                local = _local_path(location)
                if local.is_file():
                    return local.read_bytes()
                reasons.append(f"{repository.id}: not found")
                continue

            try:
                with self._lock:
                    response = self.session.get(location, timeout=self.settings.http_timeout)
            except requests.RequestException as e:
                logger.debug(f"Error fetching {location}: {e}")
                reasons.append(f"{repository.id}: {e}")
                continue

            if response.status_code == 200:
                return response.content
            reasons.append(f"{repository.id}: HTTP {response.status_code}")

        raise MetadataFetchError(coordinate, "; ".join(reasons))

    def ping(self, repository: Repository) -> int:
        """
        Check that a repository responds.

        Returns:
            The HTTP status code (200 for a readable local repository)

        Raises:
            RepositoryUnreachableError: If the repository refuses access or is unavailable
            requests.RequestException: If the connection itself fails
        """
        if repository.is_local:
            if _local_path(repository.uri).is_dir():
                return 200
            raise RepositoryUnreachableError(repository.uri, message=f"{repository.uri} is not a directory")

        with self._lock:
            response = self.session.head(
                repository.normalized_uri + '/',
                timeout=self.settings.http_timeout,
                allow_redirects=True,
            )
        # Authentication problems and server errors mean nothing can be resolved from it
        if response.status_code in (401, 403, 407) or response.status_code >= 500:
            raise RepositoryUnreachableError(repository.uri, response.status_code)
        return response.status_code

    def close(self):
        """Close the session and clean up resources."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
