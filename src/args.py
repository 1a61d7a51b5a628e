"""Argument parsing functionality for NuGet2Unity."""

import argparse
from constants import Constants


def build_parser():
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="nuget2unity",
        description=(
            "NuGet2Unity - Repackage a NuGet package and its dependencies as a .unitypackage"
        ),
        add_help=True,
    )

    parser.add_argument("-n", "--nugetpackage",
                        dest="PACKAGE",
                        help="NuGet package to repackage",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-v", "--version",
                        dest="VERSION",
                        help="Version of NuGet package to use (default: latest stable)",
                        action="store", type=str)
    parser.add_argument("-p", "--unityproject",
                        dest="UNITY_PROJECT",
                        help="Path to the Unity project to include with this package",
                        action="store", type=str)
    parser.add_argument("-m", "--includemeta",
                        dest="INCLUDE_META",
                        help="Include .meta files from the Unity project",
                        action="store_true")
    parser.add_argument("-o", "--outputpath",
                        dest="OUTPUT_PATH",
                        help="Directory to save the .unitypackage (default: current directory)",
                        action="store", type=str,
                        default=".")
    parser.add_argument("--skiplinkxml",
                        dest="SKIP_LINK_XML",
                        help="Do not add a link.xml to the package",
                        action="store_true")
    parser.add_argument("--verbose",
                        dest="VERBOSE",
                        help="Maximum verbosity",
                        action="store_true")

    parser.add_argument("--framework",
                        dest="FRAMEWORK",
                        help=f"Target framework of the Unity project (default: {Constants.DEFAULT_FRAMEWORK})",
                        action="store", type=str)
    parser.add_argument("-s", "--source",
                        dest="SOURCES",
                        help="NuGet V3 service index URL; repeat to query several sources in order",
                        action="append", type=str)
    parser.add_argument("--packagesdir",
                        dest="PACKAGES_DIR",
                        help="Folder caching extracted packages between runs",
                        action="store", type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store", type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help=f"Set the logging level (default: {Constants.LOG_LEVEL_ENV} or INFO)",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
