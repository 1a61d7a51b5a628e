"""In-memory registry fakes shared by the pipeline tests."""

import io
import zipfile

from errors import PackageNotFoundError
from versioning.models import DependencyInfo, PackageDependency, PackageIdentity
from versioning.parser import parse_range, parse_version

SOURCE = "https://api.test/v3/index.json"


def ident(package_id, version):
    """Shorthand PackageIdentity constructor."""
    return PackageIdentity(package_id, parse_version(version))


def info(package_id, version, deps=None, listed=True):
    """Shorthand DependencyInfo constructor; ``deps`` maps id -> range text."""
    edges = tuple(PackageDependency(dep_id, parse_range(rng)) for dep_id, rng in (deps or {}).items())
    return DependencyInfo(
        identity=ident(package_id, version),
        dependencies=edges,
        listed=listed,
        source_repository=SOURCE,
        download_url=f"https://api.test/flat/{package_id.lower()}.{version}.nupkg",
    )


def build_nupkg(files):
    """Zip ``files`` (name -> bytes/str) the way nuget.org packages are laid out."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types />")
        zf.writestr("_rels/.rels", "<Relationships />")
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeRegistry:
    """Stands in for NuGetClient and records every call made to it."""

    def __init__(self, packages=(), archives=None):
        self.packages = {p.identity: p for p in packages}
        self.archives = dict(archives or {})
        self.manifest_calls = []
        self.download_calls = []

    def resolve_dependency_info(self, identity, framework):
        self.manifest_calls.append(identity)
        return self.packages.get(identity)

    def list_versions(self, package_id, framework):
        found = [p for p in self.packages.values() if p.id.lower() == package_id.lower()]
        return sorted(found, key=lambda p: p.version)

    def resolve_latest_version(self, package_id, framework):
        stable = [p.version for p in self.list_versions(package_id, framework)
                  if p.listed and not p.version.is_prerelease]
        if not stable:
            raise PackageNotFoundError(f"Package {package_id} not found")
        return max(stable)

    def download(self, dep_info):
        self.download_calls.append(dep_info.identity)
        data = self.archives[dep_info.identity]
        yield data[:16]
        yield data[16:]
