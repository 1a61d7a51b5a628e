"""Install resolved packages into the on-disk package folder and pick their binaries.

Layout: ``<install_root>/<id lowercase>/<normalized version>/``. A version
folder only ever appears through an atomic rename of a fully extracted
temporary folder, so its presence means the install is complete; interrupted
or concurrent installs leave at most hidden ``.tmp-*`` entries behind.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import urllib.parse
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

from constants import Constants
from errors import DownloadError, ExtractionError
from common.cancellation import CancellationToken
from common.logging_utils import extra_context, is_debug_enabled, Timer
from versioning.frameworks import ANY_FRAMEWORK, Framework, get_nearest, parse_framework
from versioning.models import DependencyInfo, MaterializedPackage, PackageIdentity

logger = logging.getLogger(__name__)

# Packaging artifacts of the OPC container, not package content
_SKIPPED_PREFIXES = ("_rels/", "package/services/metadata/")
_SKIPPED_FILES = ("[Content_Types].xml",)


def get_lib_groups(install_path: str) -> Dict[Framework, List[str]]:
    """Group the files under ``lib/`` by target framework folder.

    Files placed directly in ``lib/`` form the framework-agnostic group. The
    folder name is matched case-insensitively (older packages ship ``Lib/``).
    """
    groups: Dict[Framework, List[str]] = {}
    if not os.path.isdir(install_path):
        return groups
    lib_dir = next(
        (os.path.join(install_path, entry) for entry in sorted(os.listdir(install_path))
         if entry.lower() == "lib" and os.path.isdir(os.path.join(install_path, entry))),
        None,
    )
    if lib_dir is None:
        return groups
    for entry in sorted(os.listdir(lib_dir)):
        full = os.path.join(lib_dir, entry)
        if os.path.isdir(full):
            files = [os.path.join(full, f) for f in sorted(os.listdir(full)) if os.path.isfile(os.path.join(full, f))]
            groups.setdefault(parse_framework(entry), []).extend(files)
        else:
            groups.setdefault(ANY_FRAMEWORK, []).append(full)
    return groups


class PackageMaterializer:
    """Download, extract and select binaries for resolved packages."""

    def __init__(self, client, install_root: str, framework: Framework,
                 cancel_token: Optional[CancellationToken] = None,
                 max_workers: int = Constants.DEFAULT_MAX_WORKERS):
        self._client = client
        self.install_root = os.path.abspath(install_root)
        self._framework = framework
        self._cancel = cancel_token or CancellationToken()
        self._max_workers = max(1, int(max_workers))

    def get_install_path(self, identity: PackageIdentity) -> str:
        return os.path.join(
            self.install_root,
            identity.id.lower(),
            identity.version.to_normalized_string().lower(),
        )

    def materialize(self, info: DependencyInfo) -> MaterializedPackage:
        """Ensure ``info`` is installed and return its framework-nearest binaries."""
        self._cancel.raise_if_cancelled()
        install_path = self.get_install_path(info.identity)
        if os.path.isdir(install_path):
            logger.debug("Reusing installed package %s at %s", info.identity, install_path)
        else:
            with Timer() as t:
                self._install(info, install_path)
            logger.info("Installed %s (%d ms)", info.identity, t.duration_ms())
        return self._select_binaries(info.identity, install_path)

    def materialize_all(self, infos: Iterable[DependencyInfo]) -> List[MaterializedPackage]:
        """Materialize independent packages concurrently; the first failure aborts the rest."""
        infos = list(infos)
        results: List[MaterializedPackage] = []
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            futures = [pool.submit(self.materialize, info) for info in infos]
            try:
                for future in as_completed(futures):
                    results.append(future.result())
            except BaseException:
                for future in futures:
                    future.cancel()
                self._cancel.cancel()
                raise
        return sorted(results, key=lambda m: m.identity.id.lower())

    # Installation

    def _install(self, info: DependencyInfo, install_path: str) -> None:
        parent = os.path.dirname(install_path)
        tmp_dir = archive_path = None
        try:
            try:
                os.makedirs(parent, exist_ok=True)
                tmp_dir = tempfile.mkdtemp(prefix=".tmp-", dir=parent)
                archive_fd, archive_path = tempfile.mkstemp(prefix=".tmp-", suffix=".nupkg", dir=parent)
            except OSError as exc:
                raise ExtractionError(f"Failed to prepare {install_path}: {exc}", info.identity) from exc

            try:
                with os.fdopen(archive_fd, "wb") as fh:
                    for chunk in self._client.download(info):
                        fh.write(chunk)
            except OSError as exc:
                raise DownloadError(f"Failed to save {info.identity}: {exc}", info.identity) from exc

            self._extract(info.identity, archive_path, tmp_dir)
            self._cancel.raise_if_cancelled()
            self._publish(info.identity, tmp_dir, install_path)
        finally:
            if archive_path and os.path.exists(archive_path):
                os.remove(archive_path)
            if tmp_dir and os.path.isdir(tmp_dir):
                shutil.rmtree(tmp_dir, ignore_errors=True)

    def _extract(self, identity: PackageIdentity, archive_path: str, dest: str) -> None:
        dest_root = os.path.realpath(dest)
        try:
            with zipfile.ZipFile(archive_path) as zf:
                for member in zf.infolist():
                    self._cancel.raise_if_cancelled()
                    name = urllib.parse.unquote(member.filename)
                    if member.is_dir() or name in _SKIPPED_FILES or name.startswith(_SKIPPED_PREFIXES):
                        continue
                    target = os.path.realpath(os.path.join(dest_root, name))
                    if os.path.commonpath([dest_root, target]) != dest_root:
                        raise ExtractionError(f"{identity} contains an unsafe path: {name}", identity)
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    with zf.open(member) as src, open(target, "wb") as out:
                        shutil.copyfileobj(src, out)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
            raise ExtractionError(f"Failed to extract {identity}: {exc}", identity) from exc

    @staticmethod
    def _publish(identity: PackageIdentity, tmp_dir: str, install_path: str) -> None:
        try:
            os.rename(tmp_dir, install_path)
        except OSError as exc:
            if os.path.isdir(install_path):
                logger.debug("%s was installed concurrently; keeping the existing copy", identity)
                return
            raise ExtractionError(f"Failed to publish {identity}: {exc}", identity) from exc

    # Binary selection

    def _select_binaries(self, identity: PackageIdentity, install_path: str) -> MaterializedPackage:
        groups = get_lib_groups(install_path)
        nearest = get_nearest(self._framework, groups.keys())
        if nearest is None:
            logger.warning(
                "%s has no lib group compatible with %s (available: %s)",
                identity,
                self._framework,
                ", ".join(sorted(str(fw) for fw in groups)) or "none",
            )
            return MaterializedPackage(identity, install_path, [], None)

        binaries = [f for f in groups[nearest] if f.lower().endswith(Constants.BINARY_EXT)]
        if is_debug_enabled(logger):
            logger.debug(
                "Selected lib group",
                extra=extra_context(
                    event="decision",
                    component="materializer",
                    action="select_binaries",
                    target=str(identity),
                    framework=str(nearest),
                    count=len(binaries),
                ),
            )
        return MaterializedPackage(identity, install_path, binaries, str(nearest))
