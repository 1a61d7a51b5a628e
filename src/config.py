"""Runtime settings assembled from constants, an optional YAML file and the CLI.

Precedence is CLI > config file > ``Constants``. The result is an immutable
``Settings`` value handed to each component; nothing here mutates globals.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from constants import Constants, DependencyBehavior
from errors import NuGet2UnityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one run."""

    sources: Tuple[str, ...] = (Constants.REGISTRY_URL_NUGET_V3,)
    framework: str = Constants.DEFAULT_FRAMEWORK
    packages_dir: str = Constants.DEFAULT_PACKAGES_DIR
    max_workers: int = Constants.DEFAULT_MAX_WORKERS
    dependency_behavior: DependencyBehavior = DependencyBehavior.LOWEST
    excluded_packages: Tuple[str, ...] = field(default_factory=lambda: tuple(Constants.EXCLUDED_PACKAGES))


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML (or JSON) configuration file.

    Args:
        config_path: Path to the file, or None.

    Returns:
        The parsed mapping; empty when no path is given.

    Raises:
        NuGet2UnityError: if the file is missing or malformed.
    """
    if not config_path:
        return {}
    if not os.path.isfile(config_path):
        raise NuGet2UnityError(f"Config file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise NuGet2UnityError(f"Failed to load config {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise NuGet2UnityError(f"Config file {config_path} must contain a mapping")
    return data


def load_nuget_config_sources(path: str) -> List[str]:
    """Read enabled package source URLs from a NuGet.Config file.

    Honors ``<clear />`` inside ``<packageSources>`` and skips sources listed
    under ``<disabledPackageSources>`` with ``value="true"``.
    """
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise NuGet2UnityError(f"Couldn't parse NuGet config {path}: {e}") from e

    disabled = set()
    disabled_node = root.find("disabledPackageSources")
    if disabled_node is not None:
        for add in disabled_node.findall("add"):
            if (add.get("value") or "").lower() == "true" and add.get("key"):
                disabled.add(add.get("key"))

    sources: List[str] = []
    node = root.find("packageSources")
    if node is None:
        return sources
    for child in node:
        if child.tag == "clear":
            sources.clear()
        elif child.tag == "add" and child.get("value") and child.get("key") not in disabled:
            value = child.get("value")
            if value.startswith(("http://", "https://")):
                sources.append(value)
            else:
                logger.warning("Ignoring non-HTTP package source %s", value)
    return sources


def _coerce_behavior(value: Any) -> DependencyBehavior:
    try:
        return DependencyBehavior(str(value).lower())
    except ValueError as e:
        choices = ", ".join(b.value for b in DependencyBehavior)
        raise NuGet2UnityError(f"Invalid dependency_behavior {value!r}; expected one of: {choices}") from e


def build_settings(args: Any = None, config: Optional[Dict[str, Any]] = None) -> Settings:
    """Merge CLI arguments over config-file values over defaults."""
    config = dict(config or {})
    defaults = Settings()

    sources: List[str] = list(config.get("sources") or [])
    if config.get("nuget_config"):
        sources.extend(load_nuget_config_sources(config["nuget_config"]))
    cli_sources = getattr(args, "SOURCES", None)
    if cli_sources:
        sources = list(cli_sources)

    framework = getattr(args, "FRAMEWORK", None) or config.get("framework") or defaults.framework
    packages_dir = getattr(args, "PACKAGES_DIR", None) or config.get("packages_dir") or defaults.packages_dir

    max_workers = config.get("max_workers", defaults.max_workers)
    try:
        max_workers = max(1, int(max_workers))
    except (TypeError, ValueError) as e:
        raise NuGet2UnityError(f"Invalid max_workers {max_workers!r}") from e

    behavior = config.get("dependency_behavior")
    return Settings(
        sources=tuple(sources) or defaults.sources,
        framework=str(framework),
        packages_dir=os.path.abspath(os.path.expanduser(str(packages_dir))),
        max_workers=max_workers,
        dependency_behavior=_coerce_behavior(behavior) if behavior else defaults.dependency_behavior,
        excluded_packages=defaults.excluded_packages,
    )
