"""NuGet registry client: versions, dependency manifests and downloads via the V3 API."""
from __future__ import annotations

import logging
import threading
import urllib.parse
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from constants import Constants
from errors import DownloadError, PackageNotFoundError
from common.cancellation import CancellationToken
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from common.http_client import get_json, stream_get
from versioning.frameworks import Framework, get_nearest, parse_framework
from versioning.models import DependencyInfo, NuGetVersion, PackageDependency, PackageIdentity, VersionRange
from versioning.parser import parse_range, try_parse_version

logger = logging.getLogger(__name__)

# Shared HTTP JSON headers for this module
HEADERS_JSON = {"Accept": "application/json"}


def _get_v3_resource_url(service_index: Dict[str, Any], resource_type: str) -> Optional[str]:
    """Return the ``@id`` of the first resource of ``resource_type``.

    Falls back to any resource sharing the type's prefix (e.g. another
    ``RegistrationsBaseUrl`` flavour) when the exact version is absent.
    """
    resources = service_index.get("resources", [])
    prefix = resource_type.split("/", 1)[0]
    fallback = None
    for resource in resources:
        rtype = resource.get("@type")
        if isinstance(rtype, list):
            rtype = next((t for t in rtype if isinstance(t, str)), "")
        if not isinstance(rtype, str):
            continue
        if rtype == resource_type and resource.get("@id"):
            return resource["@id"]
        if fallback is None and rtype.startswith(prefix) and resource.get("@id"):
            fallback = resource["@id"]
    return fallback


def _join(base: str, *parts: str) -> str:
    if not base.endswith("/"):
        base += "/"
    return base + "/".join(urllib.parse.quote(p, safe="") for p in parts)


def _raise_if_unreachable(status_code: int, url: str) -> None:
    """Transport failures and exhausted 5xx responses are errors, not absence."""
    if status_code == 0 or status_code >= 500:
        raise DownloadError(f"NuGet source unreachable: {safe_url(url)} (status {status_code})")


def _parse_dependency_groups(groups: Any, framework: Framework) -> List[PackageDependency]:
    """Return the edges of the dependency group nearest to ``framework``."""
    if not isinstance(groups, list) or not groups:
        return []

    by_framework: Dict[Framework, List[Dict[str, Any]]] = {}
    for group in groups:
        if not isinstance(group, dict):
            continue
        fw = parse_framework(group.get("targetFramework"))
        by_framework.setdefault(fw, []).extend(group.get("dependencies") or [])

    nearest = get_nearest(framework, by_framework.keys())
    if nearest is None:
        return []

    deps: List[PackageDependency] = []
    for dep in by_framework[nearest]:
        dep_id = dep.get("id")
        if not dep_id:
            continue
        try:
            dep_range = parse_range(dep.get("range"))
        except ValueError:
            logger.warning("Ignoring malformed range %r on dependency %s", dep.get("range"), dep_id)
            dep_range = VersionRange.all()
        deps.append(PackageDependency(dep_id, dep_range))
    return deps


class NuGetClient:
    """Client for one or more NuGet V3 sources, queried in configured order.

    Service indexes and registration leaves are cached per instance so a
    single resolution run asks each source about a package id only once.
    """

    def __init__(self, sources: Optional[Sequence[str]] = None, cancel_token: Optional[CancellationToken] = None):
        self.sources: List[str] = list(sources or [Constants.REGISTRY_URL_NUGET_V3])
        self._cancel = cancel_token or CancellationToken()
        self._lock = threading.Lock()
        self._service_indexes: Dict[str, Optional[Dict[str, Any]]] = {}
        self._registrations: Dict[str, Optional[List[Dict[str, Any]]]] = {}

    # Service index / registration plumbing

    def _fetch_v3_service_index(self, source: str) -> Optional[Dict[str, Any]]:
        """Fetch and cache the service index of ``source``; None if the source has none.

        Raises:
            DownloadError: when the source cannot be reached.
        """
        with self._lock:
            if source in self._service_indexes:
                return self._service_indexes[source]

        self._cancel.raise_if_cancelled()
        status_code, _, data = get_json(source, headers=HEADERS_JSON)
        _raise_if_unreachable(status_code, source)
        index = data if status_code == 200 and isinstance(data, dict) else None
        if index is None:
            logger.warning("NuGet source unavailable: %s (status %s)", safe_url(source), status_code)

        with self._lock:
            self._service_indexes[source] = index
        return index

    def _registration_leaves(self, source: str, package_id: str) -> List[Dict[str, Any]]:
        """Return all registration leaves for ``package_id`` on ``source``.

        Pages listed without inline ``items`` are fetched individually. Only a
        404 means the package is absent; unreachable sources raise
        ``DownloadError`` and nothing is cached.
        """
        cache_key = f"{source}|{package_id.lower()}"
        with self._lock:
            if cache_key in self._registrations:
                return self._registrations[cache_key] or []

        leaves: List[Dict[str, Any]] = []
        index = self._fetch_v3_service_index(source)
        base = _get_v3_resource_url(index, Constants.RESOURCE_REGISTRATIONS) if index else None
        if base:
            self._cancel.raise_if_cancelled()
            reg_url = _join(base, package_id.lower(), "index.json")
            status_code, _, reg_data = get_json(reg_url, headers=HEADERS_JSON)
            _raise_if_unreachable(status_code, reg_url)
            if status_code == 200 and isinstance(reg_data, dict):
                for page in reg_data.get("items", []):
                    items = page.get("items")
                    if items is None and page.get("@id"):
                        self._cancel.raise_if_cancelled()
                        page_status, _, page_data = get_json(page["@id"], headers=HEADERS_JSON)
                        _raise_if_unreachable(page_status, page["@id"])
                        items = page_data.get("items", []) if page_status == 200 and isinstance(page_data, dict) else []
                    leaves.extend(item for item in items or [] if isinstance(item, dict))

        if is_debug_enabled(logger):
            logger.debug(
                "NuGet registration fetched",
                extra=extra_context(
                    event="function_exit",
                    component="client",
                    action="fetch_registration",
                    outcome="found" if leaves else "not_found",
                    count=len(leaves),
                    target=package_id,
                    package_manager="nuget",
                ),
            )

        with self._lock:
            self._registrations[cache_key] = leaves
        return leaves

    def _download_url(self, source: str, package_id: str, version: NuGetVersion, leaf: Dict[str, Any]) -> Optional[str]:
        if leaf.get("packageContent"):
            return leaf["packageContent"]
        index = self._fetch_v3_service_index(source)
        base = _get_v3_resource_url(index, Constants.RESOURCE_PACKAGE_BASE) if index else None
        if not base:
            return None
        lower_id = package_id.lower()
        lower_ver = version.to_normalized_string().lower()
        return _join(base, lower_id, lower_ver, f"{lower_id}.{lower_ver}.nupkg")

    def _leaf_to_info(self, source: str, package_id: str, leaf: Dict[str, Any], framework: Framework) -> Optional[DependencyInfo]:
        entry = leaf.get("catalogEntry") or {}
        if not isinstance(entry, dict):
            return None
        version = try_parse_version(entry.get("version"))
        if version is None:
            return None
        identity = PackageIdentity(entry.get("id") or package_id, version)
        return DependencyInfo(
            identity=identity,
            dependencies=tuple(_parse_dependency_groups(entry.get("dependencyGroups"), framework)),
            listed=entry.get("listed", True) is not False,
            source_repository=source,
            download_url=self._download_url(source, identity.id, version, leaf),
        )

    def _infos_from_source(self, source: str, package_id: str, framework: Framework) -> List[DependencyInfo]:
        infos = []
        for leaf in self._registration_leaves(source, package_id):
            info = self._leaf_to_info(source, package_id, leaf, framework)
            if info is not None:
                infos.append(info)
        return infos

    # Public API

    def list_versions(self, package_id: str, framework: Framework) -> List[DependencyInfo]:
        """All versions of ``package_id`` from the first source that knows it."""
        for source in self.sources:
            infos = self._infos_from_source(source, package_id, framework)
            if infos:
                return sorted(infos, key=lambda i: i.version)
        return []

    def resolve_latest_version(self, package_id: str, framework: Framework) -> NuGetVersion:
        """Highest listed, stable version from the first source that has one.

        Raises:
            PackageNotFoundError: if no source lists a stable version.
        """
        for source in self.sources:
            candidates = [
                info.version
                for info in self._infos_from_source(source, package_id, framework)
                if info.listed and not info.version.is_prerelease
            ]
            if candidates:
                latest = max(candidates)
                logger.info("Latest version of %s is %s (%s)", package_id, latest, safe_url(source))
                return latest
        raise PackageNotFoundError(f"Package {package_id} has no listed stable version in any source")

    def resolve_dependency_info(self, identity: PackageIdentity, framework: Framework) -> Optional[DependencyInfo]:
        """Manifest of ``identity`` from the first source that has it, else None."""
        for source in self.sources:
            for info in self._infos_from_source(source, identity.id, framework):
                if info.version == identity.version:
                    return info
            if is_debug_enabled(logger):
                logger.debug(
                    "Package version not in source",
                    extra=extra_context(
                        event="decision",
                        component="client",
                        action="resolve_dependency_info",
                        outcome="not_found",
                        target=str(identity),
                        source=safe_url(source),
                    ),
                )
        return None

    def download(self, info: DependencyInfo) -> Iterator[bytes]:
        """Stream the ``.nupkg`` of ``info`` from the source that resolved it.

        Raises:
            DownloadError: when no URL is known or the transfer fails.
        """
        if not info.download_url:
            raise DownloadError(f"No download location for {info.identity}", info.identity)
        self._cancel.raise_if_cancelled()
        logger.debug("Downloading %s from %s", info.identity, safe_url(info.download_url))
        try:
            for chunk in stream_get(info.download_url):
                self._cancel.raise_if_cancelled()
                yield chunk
        except requests.RequestException as exc:
            raise DownloadError(f"Failed to download {info.identity}: {exc}", info.identity) from exc
