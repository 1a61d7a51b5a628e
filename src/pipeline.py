"""Fetch a package and its dependency closure and return the binaries to vendor."""

from __future__ import annotations

import logging
from typing import List, Optional

from config import Settings
from errors import FrameworkMismatchError, NuGet2UnityError, PackageNotFoundError
from common.cancellation import CancellationToken
from registry.nuget.client import NuGetClient
from registry.nuget.exclusion import filter_excluded
from registry.nuget.materializer import PackageMaterializer
from registry.nuget.walker import DependencyWalker
from versioning.frameworks import parse_framework
from versioning.models import PackageIdentity
from versioning.parser import parse_version
from versioning.resolver import PackageResolver

logger = logging.getLogger(__name__)


def fetch_package_binaries(
    package_id: str,
    version: Optional[str],
    settings: Settings,
    client: Optional[NuGetClient] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> List[str]:
    """Resolve, download and filter ``package_id`` and its dependencies.

    Args:
        package_id: Root package id.
        version: Exact version, or None for the latest stable listed version.
        settings: Run configuration.
        client: Registry client; built from ``settings.sources`` when omitted.
        cancel_token: Run-scoped cancellation signal.

    Returns:
        Sorted absolute paths of the binaries to copy.

    Raises:
        NuGet2UnityError: any fatal fetch, resolve or extraction failure.
    """
    cancel_token = cancel_token or CancellationToken()
    framework = parse_framework(settings.framework)
    if framework.is_unsupported or framework.is_any:
        raise NuGet2UnityError(f"Unsupported target framework: {settings.framework}")
    client = client or NuGetClient(settings.sources, cancel_token)

    if version:
        try:
            root_version = parse_version(version)
        except ValueError as e:
            raise NuGet2UnityError(str(e)) from e
    else:
        root_version = client.resolve_latest_version(package_id, framework)
    root = PackageIdentity(package_id, root_version)
    logger.info("Resolving %s for %s", root, framework)

    walker = DependencyWalker(client, framework, cancel_token, settings.max_workers)
    available_packages = walker.walk(root)
    if not any(info.identity == root for info in available_packages):
        raise PackageNotFoundError(f"Package {root} was not found in any source", root)

    resolved = PackageResolver(settings.dependency_behavior).resolve(root, available_packages)
    to_install = filter_excluded(resolved, settings.excluded_packages)
    if root.id.lower() not in to_install:
        raise NuGet2UnityError(f"{root.id} is provided by the Unity runtime; nothing to package", root)

    materializer = PackageMaterializer(
        client, settings.packages_dir, framework, cancel_token, settings.max_workers
    )
    packages = materializer.materialize_all(to_install.values())

    root_package = next(p for p in packages if p.identity.id.lower() == root.id.lower())
    if not root_package.binary_files:
        raise FrameworkMismatchError(f"{root_package.identity} has no binaries for {framework}", root_package.identity)

    return sorted(path for package in packages for path in package.binary_files)
