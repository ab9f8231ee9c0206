"""NuGet version parsing, comparison and version range matching."""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum

logger = logging.getLogger(__name__)

# major[.minor[.patch[.revision]]][-release][+metadata]
VERSION_PATTERN = re.compile(
    r"^(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?(?:\.(?P<revision>\d+))?"
    r"(?:-(?P<release>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def _compare_release_labels(left: tuple[str, ...], right: tuple[str, ...]) -> int:
    """Compare prerelease labels using SemVer 2.0 precedence."""
    # A version without a prerelease label has higher precedence
    if not left and not right:
        return 0
    if not left:
        return 1
    if not right:
        return -1

    for a, b in zip(left, right):
        a_numeric = a.isdigit()
        b_numeric = b.isdigit()
        if a_numeric and b_numeric:
            if int(a) != int(b):
                return -1 if int(a) < int(b) else 1
        elif a_numeric != b_numeric:
            return -1 if a_numeric else 1
        else:
            a_lower = a.lower()
            b_lower = b.lower()
            if a_lower != b_lower:
                return -1 if a_lower < b_lower else 1

    if len(left) != len(right):
        return -1 if len(left) < len(right) else 1
    return 0


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class NuGetVersion:
    """Package version with NuGet comparison semantics.

    Build metadata is kept for display but ignored by comparisons.
    """

    major: int
    minor: int = 0
    patch: int = 0
    revision: int = 0
    release_labels: tuple[str, ...] = ()
    metadata: str | None = None
    raw: str = field(default="", compare=False)

    @property
    def is_prerelease(self) -> bool:
        """Whether the version carries a prerelease label."""
        return bool(self.release_labels)

    @property
    def release(self) -> str:
        """Prerelease label, dot separated."""
        return ".".join(self.release_labels)

    def _key(self) -> tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch, self.revision)

    def _compare(self, other: NuGetVersion) -> int:
        if self._key() != other._key():
            return -1 if self._key() < other._key() else 1
        return _compare_release_labels(self.release_labels, other.release_labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._compare(other) == 0

    def __lt__(self, other: NuGetVersion) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        return hash((self._key(), tuple(label.lower() for label in self.release_labels)))

    def to_normalized_string(self) -> str:
        """Normalized form used in package file names, e.g. '1.2.0-beta.1'."""
        result = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision > 0:
            result += f".{self.revision}"
        if self.release_labels:
            result += f"-{self.release}"
        return result

    def __str__(self) -> str:
        result = self.to_normalized_string()
        if self.metadata:
            result += f"+{self.metadata}"
        return result

    @classmethod
    def parse(cls, version_str: str) -> NuGetVersion:
        """Parse a version string like '1.2', '1.2.3' or '1.2.3-beta.1+sha'.

        Raises:
            ValueError: If the string is not a valid version
        """
        version = cls.from_string(version_str)
        if version is None:
            raise ValueError(f"Invalid version: '{version_str}'")
        return version

    @classmethod
    def from_string(cls, version_str: str | None) -> NuGetVersion | None:
        """Parse a version string, returning None when it is not valid."""
        if not version_str:
            return None

        match = VERSION_PATTERN.match(version_str.strip())
        if not match:
            return None

        release = match.group("release")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            revision=int(match.group("revision") or 0),
            release_labels=tuple(release.split(".")) if release else (),
            metadata=match.group("metadata"),
            raw=version_str,
        )


def max_version(versions: list[NuGetVersion | None]) -> NuGetVersion | None:
    """Highest of the given versions, ignoring missing ones."""
    known = [v for v in versions if v is not None]
    return max(known) if known else None


def is_newer(version: NuGetVersion | None, than: NuGetVersion | None) -> bool:
    """Whether ``version`` is strictly greater than ``than``.

    A missing ``than`` means nothing was published yet, so any known version
    is newer. A missing ``version`` is never newer.
    """
    if version is None:
        return False
    if than is None:
        return True
    return version > than


def is_older(version: NuGetVersion | None, than: NuGetVersion | None) -> bool:
    """Whether ``version`` is strictly lower than ``than``; False if either is missing."""
    if version is None or than is None:
        return False
    return version < than


@dataclass(frozen=True)
class VersionRange:
    """NuGet version range, e.g. '1.0', '[1.0]', '[1.0,2.0)', '(,2.0]' or '1.*'."""

    min_version: NuGetVersion | None = None
    max_version: NuGetVersion | None = None
    include_min: bool = True
    include_max: bool = False
    original: str = ""

    def satisfies(self, version: NuGetVersion) -> bool:
        """Whether the version falls within the range."""
        if self.min_version is not None:
            if self.include_min:
                if version < self.min_version:
                    return False
            elif version <= self.min_version:
                return False
        if self.max_version is not None:
            if self.include_max:
                if version > self.max_version:
                    return False
            elif version >= self.max_version:
                return False
        return True

    def __str__(self) -> str:
        return self.original or self.to_interval_string()

    def to_interval_string(self) -> str:
        """Interval notation of the range."""
        low = "[" if self.include_min else "("
        high = "]" if self.include_max else ")"
        min_str = str(self.min_version) if self.min_version else ""
        max_str = str(self.max_version) if self.max_version else ""
        if self.min_version and self.max_version and self.min_version == self.max_version:
            return f"[{min_str}]"
        return f"{low}{min_str}, {max_str}{high}"

    @classmethod
    def parse(cls, range_str: str) -> VersionRange:
        """Parse NuGet version range syntax.

        Raises:
            ValueError: If the range is malformed
        """
        text = (range_str or "").strip()
        if not text:
            raise ValueError("Empty version range")

        # Bare version: minimum inclusive
        if text[0] not in "[(":
            return cls(
                min_version=cls._parse_bound(text, floating=True),
                include_min=True,
                original=range_str,
            )

        if len(text) < 3 or text[-1] not in "])":
            raise ValueError(f"Invalid version range: '{range_str}'")

        include_min = text[0] == "["
        include_max = text[-1] == "]"
        body = text[1:-1]

        if "," not in body:
            # Exact match: [1.0]
            if not (include_min and include_max):
                raise ValueError(f"Invalid version range: '{range_str}'")
            exact = cls._parse_bound(body, floating=False)
            return cls(exact, exact, True, True, original=range_str)

        parts = body.split(",")
        if len(parts) != 2:
            raise ValueError(f"Invalid version range: '{range_str}'")

        low = parts[0].strip()
        high = parts[1].strip()
        min_version = cls._parse_bound(low, floating=False) if low else None
        max_version = cls._parse_bound(high, floating=False) if high else None
        if min_version is None and max_version is None:
            raise ValueError(f"Invalid version range: '{range_str}'")
        if min_version is not None and max_version is not None and min_version > max_version:
            raise ValueError(f"Invalid version range: '{range_str}'")

        return cls(
            min_version=min_version,
            max_version=max_version,
            include_min=include_min if min_version is not None else False,
            include_max=include_max if max_version is not None else False,
            original=range_str,
        )

    @classmethod
    def from_string(cls, range_str: str | None) -> VersionRange | None:
        """Parse a version range, returning None when it is not valid."""
        try:
            return cls.parse(range_str or "")
        except ValueError:
            return None

    @staticmethod
    def _parse_bound(text: str, floating: bool) -> NuGetVersion:
        text = text.strip()
        if floating and "*" in text:
            # Floating versions resolve to the lowest matching version
            if text == "*":
                return NuGetVersion(0)
            stem = text.split("*", 1)[0].rstrip(".-")
            if "-" in text and text.endswith("-*"):
                return NuGetVersion.parse(f"{stem}-0")
            return NuGetVersion.parse(stem)
        return NuGetVersion.parse(text)


class PackageChangeType(IntEnum):
    """Magnitude of a version bump."""

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3


def get_change_type(current: NuGetVersion, next_version: NuGetVersion) -> PackageChangeType:
    """Classify the bump from ``current`` to ``next_version``.

    Prerelease versions and non-increasing pairs are not classified.
    """
    if current.is_prerelease or next_version.is_prerelease or current >= next_version:
        return PackageChangeType.NONE
    if next_version.major > current.major:
        return PackageChangeType.MAJOR
    if next_version.minor > current.minor:
        return PackageChangeType.MINOR
    return PackageChangeType.PATCH


def get_next_version(version: NuGetVersion, change_type: PackageChangeType) -> NuGetVersion:
    """Version following ``version`` for the given bump."""
    if change_type == PackageChangeType.PATCH:
        return NuGetVersion(version.major, version.minor, version.patch + 1)
    if change_type == PackageChangeType.MINOR:
        return NuGetVersion(version.major, version.minor + 1, 0)
    if change_type == PackageChangeType.MAJOR:
        return NuGetVersion(version.major + 1, 0, 0)
    return version
