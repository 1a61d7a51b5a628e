"""Drop packages the Unity runtime already provides."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from constants import Constants
from versioning.models import DependencyInfo

logger = logging.getLogger(__name__)


def filter_excluded(
    resolved: Dict[str, DependencyInfo],
    exclusion_list: Optional[Iterable[str]] = None,
) -> Dict[str, DependencyInfo]:
    """Return ``resolved`` minus packages whose id exactly matches the exclusion list.

    Matching is case-sensitive. Resolution is not redone: excluded packages
    have already constrained their dependents.
    """
    excluded = set(Constants.EXCLUDED_PACKAGES if exclusion_list is None else exclusion_list)
    kept = {}
    for key, info in resolved.items():
        if info.id in excluded:
            logger.info("Skipping %s: provided by the Unity runtime", info.identity)
            continue
        kept[key] = info
    return kept
