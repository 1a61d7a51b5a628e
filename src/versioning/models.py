"""Data models for versions, identities and package resolution."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import semantic_version


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class NuGetVersion:
    """A NuGet SemVer 2.0 version with an optional fourth (revision) part.

    Equality and ordering ignore build metadata; prerelease labels compare
    case-insensitively using SemVer precedence rules.
    """

    major: int
    minor: int
    patch: int = 0
    revision: int = 0
    release_labels: Tuple[str, ...] = ()
    metadata: Optional[str] = None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.release_labels)

    def _release(self) -> Tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch, self.revision)

    def _labels(self) -> Tuple[str, ...]:
        return tuple(label.lower() for label in self.release_labels)

    def _precedence(self) -> semantic_version.Version:
        # Release parts are compared separately; only label precedence is delegated.
        return semantic_version.Version(major=0, minor=0, patch=0, prerelease=self._labels())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._release() == other._release() and self._labels() == other._labels()

    def __lt__(self, other: "NuGetVersion") -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        if self._release() != other._release():
            return self._release() < other._release()
        return self._precedence() < other._precedence()

    def __hash__(self) -> int:
        return hash((self._release(), self._labels()))

    def to_normalized_string(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.release_labels:
            text += "-" + ".".join(self.release_labels)
        return text

    def __str__(self) -> str:
        return self.to_normalized_string()


@dataclass(frozen=True)
class VersionRange:
    """A constraint on acceptable versions; ``None`` bounds are open-ended."""

    min_version: Optional[NuGetVersion] = None
    max_version: Optional[NuGetVersion] = None
    min_inclusive: bool = True
    max_inclusive: bool = False

    @classmethod
    def all(cls) -> "VersionRange":
        return cls()

    @classmethod
    def exact(cls, version: NuGetVersion) -> "VersionRange":
        return cls(version, version, True, True)

    def satisfies(self, version: NuGetVersion) -> bool:
        """Return True when ``version`` lies within the bounds."""
        if self.min_version is not None:
            if self.min_inclusive:
                if version < self.min_version:
                    return False
            elif version <= self.min_version:
                return False
        if self.max_version is not None:
            if self.max_inclusive:
                if version > self.max_version:
                    return False
            elif version >= self.max_version:
                return False
        return True

    def intersect(self, other: "VersionRange") -> Optional["VersionRange"]:
        """Return the range accepted by both, or None when nothing is."""
        low, low_inc = _tighter_bound(
            (self.min_version, self.min_inclusive), (other.min_version, other.min_inclusive), upper=False
        )
        high, high_inc = _tighter_bound(
            (self.max_version, self.max_inclusive), (other.max_version, other.max_inclusive), upper=True
        )
        if low is not None and high is not None:
            if low > high or (low == high and not (low_inc and high_inc)):
                return None
        return VersionRange(low, high, low_inc, high_inc)

    def __str__(self) -> str:
        if (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.min_inclusive
            and self.max_inclusive
        ):
            return f"[{self.min_version}]"
        left = "[" if self.min_inclusive and self.min_version is not None else "("
        right = "]" if self.max_inclusive and self.max_version is not None else ")"
        low = str(self.min_version) if self.min_version is not None else ""
        high = str(self.max_version) if self.max_version is not None else ""
        return f"{left}{low}, {high}{right}"


def _tighter_bound(a, b, upper: bool):
    """Pick the more restrictive of two (version, inclusive) bounds."""
    (va, ia), (vb, ib) = a, b
    if va is None:
        return vb, ib
    if vb is None:
        return va, ia
    if va == vb:
        return va, ia and ib
    if upper:
        return (va, ia) if va < vb else (vb, ib)
    return (va, ia) if va > vb else (vb, ib)


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """Package id plus exact version; ids compare case-insensitively."""

    id: str
    version: NuGetVersion

    def key(self) -> Tuple[str, NuGetVersion]:
        return (self.id.lower(), self.version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


@dataclass(frozen=True)
class PackageDependency:
    """A single outgoing dependency edge."""

    id: str
    range: VersionRange


@dataclass(frozen=True, eq=False)
class DependencyInfo:
    """One node of the dependency graph plus the source that served it.

    Compared and hashed by identity, so a set holds one entry per id+version.
    """

    identity: PackageIdentity
    dependencies: Tuple[PackageDependency, ...] = ()
    listed: bool = True
    source_repository: Optional[str] = None
    download_url: Optional[str] = None

    @property
    def id(self) -> str:
        return self.identity.id

    @property
    def version(self) -> NuGetVersion:
        return self.identity.version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyInfo):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)


@dataclass
class MaterializedPackage:
    """On-disk result of installing a package."""

    identity: PackageIdentity
    install_path: str
    binary_files: List[str] = field(default_factory=list)
    framework: Optional[str] = None
