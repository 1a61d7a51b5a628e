"""Target framework monikers and the "nearest compatible" relation.

Framework folder names found in packages (``lib/netstandard2.0``,
``lib/net462``, ``lib/netcoreapp3.1`` ...) are parsed into ``Framework``
values. ``get_nearest`` picks the group a consumer targeting a given
framework would load, never choosing a group newer than the target.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

NETFRAMEWORK = ".NETFramework"
NETCOREAPP = ".NETCoreApp"
NETSTANDARD = ".NETStandard"
UAP = "UAP"
ANY = "Any"
UNSUPPORTED = "Unsupported"

_SHORT_NAMES = {
    "netstandard": NETSTANDARD,
    "netcoreapp": NETCOREAPP,
    "net": NETFRAMEWORK,
    "uap": UAP,
}

# Long identifiers used by registration metadata and nuspec files
_LONG_NAMES = {
    ".netstandard": NETSTANDARD,
    ".netframework": NETFRAMEWORK,
    ".netcoreapp": NETCOREAPP,
    "uap": UAP,
}

_LONG_RE = re.compile(r'^(?P<name>\.[a-z]+|uap)(?:,version=v|)(?P<version>\d+(?:\.\d+)*)$')

_TFM_RE = re.compile(r'^(?P<name>[a-z]+)(?P<version>\d+(?:\.\d+)*)?(?:-(?P<platform>[a-z][a-z0-9\.]*))?$')

Version = Tuple[int, int, int, int]


def _pad(parts) -> Version:
    parts = list(parts)[:4]
    return tuple(parts + [0] * (4 - len(parts)))  # type: ignore[return-value]


@dataclass(frozen=True)
class Framework:
    """A parsed target framework."""

    family: str
    version: Version = (0, 0, 0, 0)
    platform: Optional[str] = None
    raw: str = field(default="", compare=False)

    @property
    def is_any(self) -> bool:
        return self.family == ANY

    @property
    def is_unsupported(self) -> bool:
        return self.family == UNSUPPORTED

    def short_folder_name(self) -> str:
        if self.is_any:
            return "any"
        if self.is_unsupported:
            return self.raw
        major, minor, build, rev = self.version
        if self.family == NETFRAMEWORK:
            return "net" + "".join(str(p) for p in [major, minor] + ([build] if build else []))
        dotted = f"{major}.{minor}" + (f".{build}" if build or rev else "") + (f".{rev}" if rev else "")
        if self.family == NETCOREAPP:
            name = "net" if major >= 5 else "netcoreapp"
        elif self.family == NETSTANDARD:
            name = "netstandard"
        elif self.family == UAP:
            name = "uap"
        else:
            name = self.family.lower()
        text = f"{name}{dotted}"
        if self.platform:
            text += f"-{self.platform}"
        return text

    def __str__(self) -> str:
        return self.short_folder_name()


ANY_FRAMEWORK = Framework(ANY, raw="any")


def _parse_version_digits(text: str, dotted_style: bool) -> Version:
    if "." in text or dotted_style:
        return _pad(int(p) for p in text.split("."))
    # Compact style: "462" -> 4.6.2, "20" -> 2.0
    return _pad(int(ch) for ch in text)


def parse_framework(folder: Optional[str]) -> Framework:
    """Parse a framework folder name or moniker.

    Unrecognized names (portable profiles, typos) become an ``Unsupported``
    framework that nothing is compatible with.
    """
    raw = (folder or "").strip()
    text = raw.lower()
    if text in ("", "any"):
        return Framework(ANY, raw=raw or "any")

    long_match = _LONG_RE.match(text)
    if long_match and long_match.group("name") in _LONG_NAMES:
        family = _LONG_NAMES[long_match.group("name")]
        version = _pad(int(p) for p in long_match.group("version").split("."))
        return Framework(family, version, None, raw)

    m = _TFM_RE.match(text)
    if not m or not m.group("version"):
        return Framework(UNSUPPORTED, raw=raw)
    if m.group("name") not in _SHORT_NAMES:
        # Other single-family monikers (monoandroid10, xamarinios10) only match themselves.
        return Framework(m.group("name"), _parse_version_digits(m.group("version"), False),
                         m.group("platform"), raw)

    name = m.group("name")
    version_text = m.group("version")
    family = _SHORT_NAMES[name]
    version = _parse_version_digits(version_text, dotted_style=(name == "uap"))

    if family == NETFRAMEWORK and "." in version_text and version[0] >= 5:
        # net5.0 and later are .NETCoreApp
        family = NETCOREAPP
    return Framework(family, version, m.group("platform"), raw)


def _max_netstandard(target: Framework) -> Optional[Version]:
    """Highest .NETStandard version a target framework implements."""
    v = target.version
    if target.family == NETSTANDARD:
        return v
    if target.family == NETFRAMEWORK:
        if v >= (4, 6, 1, 0):
            return (2, 0, 0, 0)
        if v >= (4, 6, 0, 0):
            return (1, 3, 0, 0)
        if v >= (4, 5, 1, 0):
            return (1, 2, 0, 0)
        if v >= (4, 5, 0, 0):
            return (1, 1, 0, 0)
        return None
    if target.family == NETCOREAPP:
        if v >= (3, 0, 0, 0):
            return (2, 1, 0, 0)
        if v >= (2, 0, 0, 0):
            return (2, 0, 0, 0)
        if v >= (1, 0, 0, 0):
            return (1, 6, 0, 0)
        return None
    if target.family == UAP:
        if v >= (10, 0, 16299, 0):
            return (2, 0, 0, 0)
        if v >= (10, 0, 0, 0):
            return (1, 4, 0, 0)
    return None


def is_compatible(target: Framework, candidate: Framework) -> bool:
    """Return True when a project targeting ``target`` can load ``candidate``."""
    if target.is_unsupported or candidate.is_unsupported:
        return False
    if candidate.is_any:
        return True
    if candidate.platform and candidate.platform != target.platform:
        return False
    if candidate.family == target.family:
        return candidate.version <= target.version
    if candidate.family == NETSTANDARD:
        limit = _max_netstandard(target)
        return limit is not None and candidate.version <= limit
    return False


def get_nearest(target: Framework, candidates: Iterable[Framework]) -> Optional[Framework]:
    """Pick the most specific compatible candidate, or None.

    Preference: same family (highest version), then .NETStandard (highest),
    then the framework-agnostic ``any`` group.
    """
    compatible = [c for c in set(candidates) if is_compatible(target, c)]
    if not compatible:
        return None

    def best(pool):
        return max(pool, key=lambda c: (c.version, c.platform == target.platform)) if pool else None

    same_family = [c for c in compatible if c.family == target.family]
    if same_family:
        return best(same_family)
    standard = [c for c in compatible if c.family == NETSTANDARD]
    if standard:
        return best(standard)
    return next(c for c in compatible if c.is_any)
