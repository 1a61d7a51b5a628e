"""Unity project assembly: plugin folder, link.xml and .unitypackage output.

- project.py: prepares Assets/Plugins and copies vendored binaries
- linkxml.py: writes the managed code stripping manifest
- unitypackage.py: archives the project tree as a .unitypackage
"""

from .linkxml import build_link_xml, write_link_xml  # noqa: F401
from .project import copy_binaries, prepare_plugins_dir  # noqa: F401
from .unitypackage import UnityPackageWriter  # noqa: F401

__all__ = [
    "build_link_xml",
    "write_link_xml",
    "copy_binaries",
    "prepare_plugins_dir",
    "UnityPackageWriter",
]
