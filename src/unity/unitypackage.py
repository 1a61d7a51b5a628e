"""Write a project tree out as a ``.unitypackage`` archive.

A .unitypackage is a gzip-compressed tar holding one folder per asset, named
by the asset's GUID, with three members::

    <guid>/pathname     project-relative path, e.g. Assets/Plugins/Foo.dll
    <guid>/asset.meta   the Unity .meta YAML carrying the same GUID
    <guid>/asset        file content (absent for folders)
"""
from __future__ import annotations

import io
import logging
import os
import re
import tarfile
import tempfile
import textwrap
import uuid
from typing import List, Optional, Sequence, Tuple

from constants import Constants
from errors import PackagingError

logger = logging.getLogger(__name__)

_GUID_RE = re.compile(r"^guid:\s*([0-9a-fA-F]{32})\s*$", re.MULTILINE)

_FOLDER_META_TEMPLATE = textwrap.dedent("""\
    fileFormatVersion: 2
    guid: {guid}
    folderAsset: yes
    DefaultImporter:
      externalObjects: {{}}
      userData:
      assetBundleName:
      assetBundleVariant:
""")

_PLUGIN_META_TEMPLATE = textwrap.dedent("""\
    fileFormatVersion: 2
    guid: {guid}
    PluginImporter:
      externalObjects: {{}}
      serializedVersion: 2
      iconMap: {{}}
      executionOrder: {{}}
      defineConstraints: []
      isPreloaded: 0
      isOverridable: 0
      isExplicitlyReferenced: 0
      validateReferences: 1
      platformData:
      - first:
          Any:
        second:
          enabled: 1
          settings: {{}}
      userData:
      assetBundleName:
      assetBundleVariant:
""")

_DEFAULT_META_TEMPLATE = textwrap.dedent("""\
    fileFormatVersion: 2
    guid: {guid}
    DefaultImporter:
      externalObjects: {{}}
      userData:
      assetBundleName:
      assetBundleVariant:
""")


def asset_guid(pathname: str) -> str:
    """Stable GUID for a project path so re-imports update instead of duplicating."""
    return uuid.uuid5(uuid.NAMESPACE_URL, f"nuget2unity:{pathname}").hex


def generate_meta(pathname: str, is_dir: bool, guid: str) -> str:
    if is_dir:
        return _FOLDER_META_TEMPLATE.format(guid=guid)
    if pathname.lower().endswith(Constants.BINARY_EXT):
        return _PLUGIN_META_TEMPLATE.format(guid=guid)
    return _DEFAULT_META_TEMPLATE.format(guid=guid)


def read_meta_guid(meta_path: str) -> Optional[str]:
    """GUID recorded in an existing .meta file, or None if unreadable."""
    try:
        with open(meta_path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        logger.warning("Couldn't read %s: %s", meta_path, e)
        return None
    m = _GUID_RE.search(text)
    return m.group(1).lower() if m else None


class UnityPackageWriter:
    """Archive selected top-level folders of a Unity project."""

    def __init__(self, include_dirs: Sequence[str] = ("Assets",)):
        self.include_dirs = tuple(include_dirs)

    def collect_assets(self, project_dir: str) -> List[Tuple[str, str, bool]]:
        """Return ``(pathname, absolute path, is_dir)`` for every asset, sorted.

        The include roots themselves and ``.meta`` files are not assets.
        """
        assets = []
        for include in self.include_dirs:
            base = os.path.join(project_dir, include)
            if not os.path.isdir(base):
                continue
            for dirpath, dirnames, filenames in os.walk(base):
                dirnames.sort()
                for name in dirnames:
                    full = os.path.join(dirpath, name)
                    assets.append((os.path.relpath(full, project_dir).replace(os.sep, "/"), full, True))
                for name in sorted(filenames):
                    if name.endswith(".meta"):
                        continue
                    full = os.path.join(dirpath, name)
                    assets.append((os.path.relpath(full, project_dir).replace(os.sep, "/"), full, False))
        return sorted(assets)

    def write(self, project_dir: str, package_name: str, include_meta: bool, output_dir: str) -> str:
        """Write ``<output_dir>/<package_name>.unitypackage`` and return its path.

        Args:
            project_dir: Root of the Unity project tree.
            package_name: Base name of the archive.
            include_meta: Reuse existing ``.meta`` files (and their GUIDs)
                instead of generating fresh ones.
            output_dir: Destination folder, created if missing.

        Raises:
            PackagingError: when nothing can be archived or writing fails.
        """
        project_dir = os.path.abspath(project_dir)
        assets = self.collect_assets(project_dir)
        if not assets:
            raise PackagingError(f"No assets found under {project_dir} in {', '.join(self.include_dirs)}")

        output_path = os.path.join(os.path.abspath(output_dir), package_name + Constants.UNITYPACKAGE_EXT)
        try:
            os.makedirs(os.path.dirname(output_path), exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=Constants.UNITYPACKAGE_EXT,
                                            dir=os.path.dirname(output_path))
            os.close(fd)
            try:
                with tarfile.open(tmp_path, "w:gz") as tar:
                    for pathname, full, is_dir in assets:
                        self._add_asset(tar, pathname, full, is_dir, include_meta)
                os.replace(tmp_path, output_path)
            finally:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
        except (OSError, tarfile.TarError) as e:
            raise PackagingError(f"Unity package couldn't be written to disk: {e}") from e

        logger.info("Unity package with %d assets written to %s", len(assets), output_path)
        return output_path

    def _add_asset(self, tar: tarfile.TarFile, pathname: str, full: str, is_dir: bool, include_meta: bool) -> None:
        meta_path = full + ".meta"
        guid = None
        meta_text = None
        if include_meta and os.path.isfile(meta_path):
            guid = read_meta_guid(meta_path)
            if guid:
                with open(meta_path, "r", encoding="utf-8") as f:
                    meta_text = f.read()
        if not guid:
            guid = asset_guid(pathname)
            meta_text = generate_meta(pathname, is_dir, guid)

        _add_bytes(tar, f"{guid}/pathname", pathname.encode("utf-8"))
        _add_bytes(tar, f"{guid}/asset.meta", meta_text.encode("utf-8"))
        if not is_dir:
            tar.add(full, arcname=f"{guid}/asset", recursive=False)


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))
