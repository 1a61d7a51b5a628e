"""Working Unity project tree preparation."""
from __future__ import annotations

import logging
import os
import shutil
from typing import Iterable, List

from constants import Constants
from errors import PackagingError

logger = logging.getLogger(__name__)


def prepare_plugins_dir(project_dir: str) -> str:
    """Create ``Assets/Plugins`` under ``project_dir`` and empty it.

    Returns:
        Absolute path of the plugins folder.
    """
    plugins = os.path.join(os.path.abspath(project_dir), Constants.PLUGINS_DIR)
    try:
        os.makedirs(plugins, exist_ok=True)
        for entry in os.listdir(plugins):
            full = os.path.join(plugins, entry)
            if os.path.isdir(full) and not os.path.islink(full):
                shutil.rmtree(full)
            else:
                os.remove(full)
    except OSError as e:
        raise PackagingError(f"Couldn't prepare {plugins}: {e}") from e
    return plugins


def copy_binaries(binaries: Iterable[str], plugins_dir: str) -> List[str]:
    """Copy each binary into ``plugins_dir`` by file name.

    Returns:
        Sorted assembly names (file names without extension) now present.
    """
    names = {}
    for path in binaries:
        file_name = os.path.basename(path)
        name = os.path.splitext(file_name)[0]
        if name in names and names[name] != path:
            logger.warning("%s overrides %s in %s", path, names[name], plugins_dir)
        try:
            shutil.copyfile(path, os.path.join(plugins_dir, file_name))
        except OSError as e:
            raise PackagingError(f"Couldn't copy {path}: {e}") from e
        names[name] = path
    logger.info("Copied %d binaries into %s", len(names), plugins_dir)
    return sorted(names)
