"""Partial order over Maven scopes and Gradle configurations."""

from enum import Enum
from typing import Dict, List

from .config import ConfigurationError


class BuildTool(Enum):
    MAVEN = "maven"
    GRADLE = "gradle"


# Scope whose dependency set is never checked against a narrower one
ALL_SCOPES = "all"

MAVEN_SCOPES = ("compile", "runtime", "provided", "test", "system", "import")

# scope -> scopes whose dependency sets are supersets of it
_MAVEN_BROADER: Dict[str, List[str]] = {
    "compile": [],
    "runtime": ["compile"],
    "provided": ["compile", "runtime"],
    "test": ["compile", "runtime", "provided"],
}

_GRADLE_BROADER: Dict[str, List[str]] = {
    "runtimeonly": ["implementation", "api"],
    "runtimeclasspath": ["implementation", "api"],
    "implementation": ["api"],
    "testimplementation": ["implementation", "api", "testImplementation"],
    "testruntimeonly": ["implementation", "api", "testImplementation"],
}


def broader_scopes(scope: str, build_tool: BuildTool = BuildTool.MAVEN) -> List[str]:
    """
    Return the scopes whose dependencies are guaranteed to be visible in the given scope.

    Args:
        scope: Maven scope or Gradle configuration name (case-insensitive)
        build_tool: Which lattice to consult

    Returns:
        Broader scope names, empty when nothing is broader
    """
    table = _GRADLE_BROADER if build_tool is BuildTool.GRADLE else _MAVEN_BROADER
    return list(table.get(scope.lower(), []))


def scope_view(scope: str, build_tool: BuildTool = BuildTool.MAVEN) -> List[str]:
    """Return the scope itself followed by every broader scope."""
    return [scope] + broader_scopes(scope, build_tool)


def validate_scope(scope: str, build_tool: BuildTool = BuildTool.MAVEN) -> str:
    """
    Check a scope name before any analysis starts.

    Returns:
        The scope, lower-cased for Maven

    Raises:
        ConfigurationError: If the scope is blank or unknown to Maven
    """
    if scope is None or not scope.strip():
        raise ConfigurationError("Scope must not be blank")
    if build_tool is BuildTool.GRADLE:
        return scope.strip()
    normalized = scope.strip().lower()
    if normalized not in MAVEN_SCOPES:
        raise ConfigurationError(
            f"Unknown Maven scope '{scope}', expected one of {', '.join(MAVEN_SCOPES)}"
        )
    return normalized
