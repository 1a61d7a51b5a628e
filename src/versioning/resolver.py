"""Version arbitration over the candidate pool collected by the dependency walker."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple, Union

from constants import DependencyBehavior
from errors import PackageNotFoundError, UnsatisfiableError
from .models import DependencyInfo, PackageIdentity, VersionRange

logger = logging.getLogger(__name__)

# Mapping from lower-cased package id to the single chosen manifest.
ResolvedSet = Dict[str, DependencyInfo]

Constraint = Tuple[str, VersionRange]


class PackageResolver:
    """Pick exactly one version per package id.

    The resolver folds range intersection over the graph reachable from the
    root through the packages chosen so far and repeats until the choice is
    stable. Each pass picks from the current constraints alone, so a version
    chosen under ranges that later disappear can move back down. A choice that
    revisits an earlier unstable state cannot converge and is reported as
    unsatisfiable.
    """

    def __init__(self, policy: DependencyBehavior = DependencyBehavior.LOWEST):
        self.policy = policy

    def resolve(
        self,
        root: Union[str, PackageIdentity],
        available_packages: Iterable[DependencyInfo],
    ) -> ResolvedSet:
        """Resolve ``root`` against ``available_packages``.

        Raises:
            PackageNotFoundError: when the pool holds no candidate for the root.
            UnsatisfiableError: when the ranges imposed on some id admit no
                available version.
        """
        candidates: Dict[str, List[DependencyInfo]] = defaultdict(list)
        for info in available_packages:
            candidates[info.id.lower()].append(info)
        for pool in candidates.values():
            pool.sort(key=lambda i: i.version)

        if isinstance(root, PackageIdentity):
            root_key, root_range = root.id.lower(), VersionRange.exact(root.version)
            root_name = root.id
        else:
            root_key, root_range, root_name = root.lower(), VersionRange.all(), root
        if root_key not in candidates:
            raise PackageNotFoundError(f"Package {root} is not available in any source")

        chosen: ResolvedSet = {}
        seen_states = set()
        max_passes = sum(len(pool) for pool in candidates.values()) * 2 + 2

        for _ in range(max_passes):
            constraints = self._collect_constraints(root_key, root_name, root_range, chosen)
            picked: ResolvedSet = {}
            for key, ranges in constraints.items():
                info = self._pick(key, ranges, candidates.get(key, []))
                if info is not None:
                    picked[key] = info

            if {k: v.identity for k, v in picked.items()} == {k: v.identity for k, v in chosen.items()}:
                logger.info(
                    "Resolved %d package(s): %s",
                    len(picked),
                    ", ".join(sorted(str(info.identity) for info in picked.values())),
                )
                return picked

            state = frozenset(info.identity for info in picked.values())
            if state in seen_states:
                break
            seen_states.add(state)
            chosen = picked

        raise UnsatisfiableError(root_name, message=f"Resolution of {root_name} did not converge")

    @staticmethod
    def _collect_constraints(
        root_key: str, root_name: str, root_range: VersionRange, chosen: ResolvedSet
    ) -> Dict[str, List[Constraint]]:
        """Ranges imposed on each id reachable from the root through ``chosen``."""
        constraints: Dict[str, List[Constraint]] = {root_key: [("<root>", root_range)]}
        stack = [root_key]
        seen = set()
        while stack:
            key = stack.pop()
            if key in seen:
                continue
            seen.add(key)
            info = chosen.get(key)
            if info is None:
                continue
            for dependency in info.dependencies:
                dep_key = dependency.id.lower()
                constraints.setdefault(dep_key, []).append((str(info.identity), dependency.range))
                stack.append(dep_key)
        return constraints

    def _pick(
        self,
        key: str,
        ranges: List[Constraint],
        pool: List[DependencyInfo],
    ) -> Optional[DependencyInfo]:
        display_id = pool[0].id if pool else key
        intersection: Optional[VersionRange] = VersionRange.all()
        for _, version_range in ranges:
            intersection = intersection.intersect(version_range)
            if intersection is None:
                raise UnsatisfiableError(display_id, [f"{r} (from {src})" for src, r in ranges])

        if not pool:
            logger.warning("No manifest available for %s; it contributes nothing", key)
            return None

        matching = [
            info for info in pool
            if intersection.satisfies(info.version)
        ]
        if not matching:
            raise UnsatisfiableError(display_id, [f"{r} (from {src})" for src, r in ranges])
        return matching[0] if self.policy == DependencyBehavior.LOWEST else matching[-1]
