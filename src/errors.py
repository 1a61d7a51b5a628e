"""Exception hierarchy for fetch, resolve and packaging failures."""

from typing import Iterable, Optional

__all__ = [
    "NuGet2UnityError",
    "PackageNotFoundError",
    "UnsatisfiableError",
    "DownloadError",
    "ExtractionError",
    "FrameworkMismatchError",
    "OperationCancelledError",
    "PackagingError",
]


class NuGet2UnityError(Exception):
    """Base class for all errors raised by the tool."""

    def __init__(self, message: str, identity=None):
        super().__init__(message)
        self.identity = identity


class PackageNotFoundError(NuGet2UnityError):
    """Raised when the root package or a required version exists in no configured source."""


class UnsatisfiableError(NuGet2UnityError):
    """Raised when the collected version ranges for a package id cannot all be met."""

    def __init__(self, package_id: str, ranges: Iterable = (), message: Optional[str] = None):
        self.package_id = package_id
        self.ranges = list(ranges)
        if message is None:
            shown = ", ".join(str(r) for r in self.ranges) or "<none>"
            message = f"No version of {package_id} satisfies all constraints: {shown}"
        super().__init__(message)


class DownloadError(NuGet2UnityError):
    """Raised when a package archive cannot be fetched."""


class ExtractionError(NuGet2UnityError):
    """Raised when a downloaded package archive cannot be unpacked."""


class FrameworkMismatchError(NuGet2UnityError):
    """Raised when the root package has no binaries for the target framework."""


class OperationCancelledError(NuGet2UnityError):
    """Raised at a suspension point after the run was cancelled."""


class PackagingError(NuGet2UnityError):
    """Raised when the Unity project tree or archive cannot be written."""
