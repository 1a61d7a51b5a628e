"""NuGet registry package.

This package provides the package-fetch pipeline stages:
- client.py: HTTP interactions with NuGet V3 sources (versions, manifests, downloads)
- walker.py: transitive dependency discovery seeded at each range's floor
- exclusion.py: removal of packages provided by the Unity runtime
- materializer.py: idempotent download/extract into the package folder and binary selection
"""

from .client import NuGetClient  # noqa: F401
from .walker import DependencyWalker  # noqa: F401
from .exclusion import filter_excluded  # noqa: F401
from .materializer import PackageMaterializer, get_lib_groups  # noqa: F401

__all__ = [
    "NuGetClient",
    "DependencyWalker",
    "filter_excluded",
    "PackageMaterializer",
    "get_lib_groups",
]
