"""Dependency graph discovery: expand a root identity into every reachable manifest."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Set

from common.cancellation import CancellationToken
from common.logging_utils import extra_context, is_debug_enabled
from versioning.frameworks import Framework
from versioning.models import DependencyInfo, PackageDependency, PackageIdentity

logger = logging.getLogger(__name__)


class DependencyWalker:
    """Collects the candidate pool the resolver chooses from.

    Every edge is seeded with the lowest version its range admits; the pool may
    therefore hold several versions of one id and version arbitration is left
    to ``PackageResolver``. Each identity is expanded at most once, which makes
    cycles and diamonds safe.

    Expansion proceeds in waves: all pending identities are marked visited and
    fetched (concurrently when ``max_workers`` > 1), then the calling thread
    alone merges the results and schedules the next wave.
    """

    def __init__(self, client, framework: Framework, cancel_token: Optional[CancellationToken] = None,
                 max_workers: int = 1):
        self._client = client
        self._framework = framework
        self._cancel = cancel_token or CancellationToken()
        self._max_workers = max(1, int(max_workers))

    def walk(self, root: PackageIdentity) -> Set[DependencyInfo]:
        visited: Set[PackageIdentity] = set()
        available_packages: Set[DependencyInfo] = set()
        pending: List[PackageIdentity] = [root]

        pool = ThreadPoolExecutor(max_workers=self._max_workers) if self._max_workers > 1 else None
        try:
            while pending:
                self._cancel.raise_if_cancelled()
                batch: List[PackageIdentity] = []
                while pending:
                    identity = pending.pop()
                    if identity in visited:
                        continue
                    visited.add(identity)
                    batch.append(identity)

                results = pool.map(self._expand, batch) if pool else map(self._expand, batch)
                for identity, info in zip(batch, results):
                    if info is None:
                        logger.warning("No manifest found for %s in any source; skipping its dependencies", identity)
                        continue
                    available_packages.add(info)
                    for dependency in info.dependencies:
                        next_identity = self._seed_identity(dependency)
                        if next_identity is not None and next_identity not in visited:
                            pending.append(next_identity)
        finally:
            if pool is not None:
                pool.shutdown(wait=True, cancel_futures=True)

        if is_debug_enabled(logger):
            logger.debug(
                "Dependency walk complete",
                extra=extra_context(
                    event="function_exit",
                    component="walker",
                    action="walk",
                    target=str(root),
                    count=len(available_packages),
                    visited=len(visited),
                ),
            )
        return available_packages

    def _expand(self, identity: PackageIdentity) -> Optional[DependencyInfo]:
        self._cancel.raise_if_cancelled()
        return self._client.resolve_dependency_info(identity, self._framework)

    def _seed_identity(self, dependency: PackageDependency) -> Optional[PackageIdentity]:
        """Identity to expand for an edge: the floor of its range.

        Ranges without an inclusive lower bound are seeded with the lowest
        listed version they accept.
        """
        if dependency.range.min_version is not None and dependency.range.min_inclusive:
            return PackageIdentity(dependency.id, dependency.range.min_version)

        self._cancel.raise_if_cancelled()
        for info in self._client.list_versions(dependency.id, self._framework):
            if info.listed and dependency.range.satisfies(info.version):
                return PackageIdentity(dependency.id, info.version)
        logger.warning("No listed version of %s satisfies %s", dependency.id, dependency.range)
        return None
