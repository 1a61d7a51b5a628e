"""link.xml generation: keep vendored assemblies from being stripped by IL2CPP."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Iterable

from errors import PackagingError

logger = logging.getLogger(__name__)

SYSTEM_CORE = "System.Core"
LIGHT_LAMBDA = "System.Linq.Expressions.Interpreter.LightLambda"


def build_link_xml(assembly_names: Iterable[str]) -> str:
    """Render the ``<linker>`` document.

    The fixed System.Core entry comes first, followed by one preserved
    ``<assembly>`` per name in sorted order.
    """
    root = ET.Element("linker")
    core = ET.SubElement(root, "assembly", fullname=SYSTEM_CORE)
    ET.SubElement(core, "type", fullname=LIGHT_LAMBDA, preserve="all")
    for name in sorted(set(assembly_names) - {SYSTEM_CORE}):
        ET.SubElement(root, "assembly", fullname=name, preserve="all")
    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode") + "\n"


def write_link_xml(path: str, assembly_names: Iterable[str]) -> str:
    names = list(assembly_names)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(build_link_xml(names))
    except OSError as e:
        raise PackagingError(f"link.xml couldn't be written to disk: {e}") from e
    logger.info("link.xml written with %d assemblies: %s", len(names), path)
    return path
