"""Runtime settings and well-known repositories."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import __version__
from .models import Repository, ResolvedCoordinate

logger = logging.getLogger(__name__)

MAVEN_CENTRAL = Repository(id="central", uri="https://repo.maven.apache.org/maven2")

# URI fragments that identify Maven Central or one of its aliases
MAVEN_CENTRAL_HOSTS = ("repo.maven.apache.org", "repo1.maven.org")

MAVEN_LOCAL_DEFAULT = Repository(
    id="local",
    uri=(Path.home() / ".m2" / "repository").as_uri(),
)

# Artifact downloaded from each repository to prove it can serve dependencies
DEFAULT_PROBE_COORDINATE = ResolvedCoordinate("com.fasterxml.jackson.core", "jackson-core", "2.16.0")


class ConfigurationError(ValueError):
    """Raised when options or settings are invalid and cannot be safely defaulted."""


def _int_from_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


@dataclass
class Settings:
    """
    Tunables shared by the fetcher, resolver and pipeline.

    Attributes:
        http_timeout: Seconds to wait for a repository response
        ca_bundle: Optional CA bundle for corporate SSL inspection proxies
        max_depth: Deepest level explored when resolving a transitive closure
        max_workers: Threads used for the scan phase
        user_agent: User-Agent header sent to repositories
    """
    http_timeout: int = 30
    ca_bundle: Optional[str] = None
    max_depth: int = 50
    max_workers: int = 1
    user_agent: str = f"deptidy/{__version__}"

    @classmethod
    def from_env(cls) -> 'Settings':
        """
        Build settings from DEPTIDY_* environment variables.

        Raises:
            ConfigurationError: If a variable is present but malformed
        """
        settings = cls(
            http_timeout=_int_from_env("DEPTIDY_HTTP_TIMEOUT", cls.http_timeout),
            ca_bundle=os.environ.get("DEPTIDY_CA_BUNDLE") or None,
            max_depth=_int_from_env("DEPTIDY_MAX_DEPTH", cls.max_depth),
            max_workers=_int_from_env("DEPTIDY_WORKERS", cls.max_workers),
        )
        if settings.ca_bundle and not os.path.exists(settings.ca_bundle):
            raise ConfigurationError(f"DEPTIDY_CA_BUNDLE points to a missing file: {settings.ca_bundle}")
        logger.debug(f"Settings: {settings}")
        return settings
