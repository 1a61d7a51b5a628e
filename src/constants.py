"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 4
    CANCELLED = 130


class DependencyBehavior(Enum):
    """Version selection policy applied by the resolver.

    Args:
        Enum (string): Policy name as accepted in configuration files.
    """

    LOWEST = "lowest"
    HIGHEST = "highest"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NUGET_V3 = "https://api.nuget.org/v3/index.json"
    DEFAULT_FRAMEWORK = "netstandard2.0"
    DEFAULT_PACKAGES_DIR = os.path.join(os.path.expanduser("~"), ".nuget2unity", "packages")
    DEFAULT_MAX_WORKERS = 4

    # Packages shipped by the Unity runtime; never copied into the output.
    EXCLUDED_PACKAGES = ["System.Runtime.Serialization.Primitives"]

    PLUGINS_DIR = os.path.join("Assets", "Plugins")
    LINK_XML_FILE = "link.xml"
    UNITYPACKAGE_EXT = ".unitypackage"
    BINARY_EXT = ".dll"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "NUGET2UNITY_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024

    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300

    # NuGet V3 service index resource types
    RESOURCE_REGISTRATIONS = "RegistrationsBaseUrl/3.6.0"
    RESOURCE_REGISTRATIONS_PREFIX = "RegistrationsBaseUrl"
    RESOURCE_PACKAGE_BASE = "PackageBaseAddress/3.0.0"
