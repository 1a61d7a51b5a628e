"""Parsing of NuGet version strings and version range notation."""

import re
from typing import Optional

import semantic_version

from .models import NuGetVersion, VersionRange

_VERSION_RE = re.compile(
    r'^\s*v?(?P<release>\d+(?:\.\d+){0,3})'
    r'(?:-(?P<pre>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?'
    r'(?:\+(?P<meta>[0-9A-Za-z\-\.]+))?\s*$'
)


def parse_version(text: str) -> NuGetVersion:
    """Parse a NuGet version such as ``1.0``, ``4.3.0.1`` or ``2.0.0-beta.1+sha``.

    Raises:
        ValueError: if ``text`` is not a valid NuGet version.
    """
    if not isinstance(text, str):
        raise ValueError(f"Invalid version: {text!r}")
    m = _VERSION_RE.match(text)
    if not m:
        raise ValueError(f"Invalid version: {text!r}")

    parts = [int(p) for p in m.group("release").split(".")]
    if len(parts) < 2:
        parts.append(0)
    parts += [0] * (4 - len(parts))

    labels = tuple(m.group("pre").split(".")) if m.group("pre") else ()
    if labels:
        # Reject labels SemVer precedence cannot order (e.g. numeric "01").
        try:
            semantic_version.Version(major=0, minor=0, patch=0, prerelease=tuple(l.lower() for l in labels))
        except ValueError as exc:
            raise ValueError(f"Invalid version: {text!r}") from exc

    return NuGetVersion(parts[0], parts[1], parts[2], parts[3], labels, m.group("meta"))


def try_parse_version(text: Optional[str]) -> Optional[NuGetVersion]:
    """Return the parsed version or None instead of raising."""
    if not text:
        return None
    try:
        return parse_version(text)
    except ValueError:
        return None


def parse_range(text: Optional[str]) -> VersionRange:
    """Parse NuGet range notation.

    ``1.0`` means ``>= 1.0``; ``[1.0]`` is exact; interval notation uses
    ``[``/``]`` for inclusive and ``(``/``)`` for exclusive bounds, with
    either side optionally empty: ``[1.0,2.0)``, ``(,2.0]``, ``(1.0,)``.
    Empty input and ``*`` accept any version.

    Raises:
        ValueError: on malformed ranges.
    """
    s = (text or "").strip()
    if s in ("", "*"):
        return VersionRange.all()

    if s[0] not in "[(":
        return VersionRange(min_version=parse_version(s), min_inclusive=True)

    if len(s) < 3 or s[-1] not in "])":
        raise ValueError(f"Invalid version range: {text!r}")

    min_inclusive = s[0] == "["
    max_inclusive = s[-1] == "]"
    inner = s[1:-1]

    if "," not in inner:
        if not (min_inclusive and max_inclusive):
            raise ValueError(f"Invalid version range: {text!r}")
        return VersionRange.exact(parse_version(inner))

    low_text, _, high_text = inner.partition(",")
    if "," in high_text:
        raise ValueError(f"Invalid version range: {text!r}")
    low = parse_version(low_text) if low_text.strip() else None
    high = parse_version(high_text) if high_text.strip() else None
    if low is None and high is None:
        return VersionRange.all()

    result = VersionRange(
        min_version=low,
        max_version=high,
        min_inclusive=min_inclusive if low is not None else True,
        max_inclusive=max_inclusive if high is not None else False,
    )
    if low is not None and high is not None and result.intersect(result) is None:
        raise ValueError(f"Invalid version range: {text!r}")
    return result
