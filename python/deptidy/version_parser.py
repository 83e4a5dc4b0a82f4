"""Version tokenization for arbitrary, non-semver dependency version strings."""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

# Separators end a part and are never stored as one
SEPARATORS = frozenset('._-+')

# Parts that do not fit a signed 64-bit integer are compared as strings
MAX_NUMERIC_PART = 2 ** 63 - 1


@dataclass(frozen=True)
class Version:
    """
    Tokenized version string.

    Attributes:
        source: The original version string as-is
        parts: Every part of the version, e.g. 1.2-beta4 gives ('1', '2', 'beta', '4')
        numeric_parts: Parsed integers aligned with parts, None in non-numeric positions
    """
    source: str
    parts: Tuple[str, ...]
    numeric_parts: Tuple[Optional[int], ...]

    def __str__(self) -> str:
        return self.source


def _parse_numeric(part: str) -> Optional[int]:
    if not part or not all('0' <= ch <= '9' for ch in part):
        return None
    value = int(part)
    if value > MAX_NUMERIC_PART:
        return None
    return value


class VersionParser:
    """Tokenizer for version strings, caching every token it produces."""

    def __init__(self):
        self._cache: Dict[str, Version] = {}
        self._lock = threading.Lock()

    def transform(self, original: str) -> Version:
        """
        Tokenize a version string.

        The same input always yields the same cached Version object.

        Args:
            original: The version string to tokenize

        Returns:
            The tokenized Version
        """
        version = self._cache.get(original)
        if version is None:
            parsed = self._parse(original)
            with self._lock:
                version = self._cache.setdefault(original, parsed)
        return version

    @staticmethod
    def _parse(original: str) -> Version:
        parts: List[str] = []
        digit = False
        start = 0
        pos = 0
        for pos, ch in enumerate(original):
            if ch in SEPARATORS:
                parts.append(original[start:pos])
                start = pos + 1
                digit = False
            elif '0' <= ch <= '9':
                if not digit and pos > start:
                    parts.append(original[start:pos])
                    start = pos
                digit = True
            else:
                if digit:
                    parts.append(original[start:pos])
                    start = pos
                digit = False
        if len(original) > start:
            parts.append(original[start:])

        return Version(
            source=original,
            parts=tuple(parts),
            numeric_parts=tuple(_parse_numeric(part) for part in parts),
        )

    def __len__(self) -> int:
        return len(self._cache)


_default_parser = VersionParser()


def parse_version(version: str) -> Version:
    """Tokenize a version string with the shared, process-wide parser."""
    return _default_parser.transform(version)
