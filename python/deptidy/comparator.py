"""Ordering of tokenized version strings."""

import functools
import logging
from typing import Callable, Dict, Iterable, Optional, Union

from .version_parser import Version, VersionParser, parse_version

logger = logging.getLogger(__name__)

VersionLike = Union[str, Version]


class StaticVersionComparator:
    """
    Orders versions part by part without consulting any repository metadata.

    Qualifiers with a special meaning rank against each other and against plain
    literals (which rank 0): dev < (any literal) < rc < snapshot < final < ga < release < sp.
    Release candidates therefore order above milestones, and a numeric part always
    outranks a literal in the same position.
    """

    SPECIAL_MEANINGS: Dict[str, int] = {
        'dev': -1,
        'rc': 1,
        'snapshot': 2,
        'final': 3,
        'ga': 4,
        'release': 5,
        'sp': 6,
    }

    def __init__(self, parser: Optional[VersionParser] = None):
        self._parse: Callable[[str], Version] = parser.transform if parser else parse_version

    def _token(self, version: VersionLike) -> Version:
        if isinstance(version, Version):
            return version
        return self._parse(version)

    def compare(self, version1: VersionLike, version2: VersionLike) -> int:
        """
        Compare two versions.

        Returns:
            -1, 0 or 1 as version1 is older than, equivalent to, or newer than version2
        """
        v1 = self._token(version1)
        v2 = self._token(version2)
        if v1.source == v2.source:
            return 0

        parts1, parts2 = v1.parts, v2.parts
        numeric1, numeric2 = v1.numeric_parts, v2.numeric_parts

        for i in range(min(len(parts1), len(parts2))):
            part1, part2 = parts1[i], parts2[i]
            if part1 == part2:
                continue

            is1_number = numeric1[i] is not None
            is2_number = numeric2[i] is not None
            if is1_number and not is2_number:
                return 1
            if is2_number and not is1_number:
                return -1
            if is1_number and is2_number:
                if numeric1[i] == numeric2[i]:
                    continue
                return 1 if numeric1[i] > numeric2[i] else -1

            special1 = self.SPECIAL_MEANINGS.get(part1.lower())
            special2 = self.SPECIAL_MEANINGS.get(part2.lower())
            if special1 is not None or special2 is not None:
                rank1 = special1 or 0
                rank2 = special2 or 0
                if rank1 == rank2:
                    continue
                return 1 if rank1 > rank2 else -1
            return 1 if part1 > part2 else -1

        # A trailing numeric part means a newer release, a trailing qualifier an older one
        if len(parts1) > len(parts2):
            return 1 if numeric1[len(parts2)] is not None else -1
        if len(parts1) < len(parts2):
            return -1 if numeric2[len(parts1)] is not None else 1
        return 0

    __call__ = compare

    def sort_key(self):
        """Return a key function usable with sorted(), min() and max()."""
        return functools.cmp_to_key(self.compare)

    def min_version(self, versions: Iterable[str]) -> Optional[str]:
        """Return the oldest version, or None when there are none."""
        versions = sorted(set(versions))
        if not versions:
            return None
        return min(versions, key=self.sort_key())


_default_comparator = StaticVersionComparator()


def compare_versions(version1: VersionLike, version2: VersionLike) -> int:
    """Compare two versions with the shared comparator."""
    return _default_comparator.compare(version1, version2)
