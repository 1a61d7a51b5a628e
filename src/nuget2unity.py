"""NuGet2Unity - repackage a NuGet package and its dependencies for Unity.

    Returns:
        int: Exit code
"""
import logging
import os
import shutil
import signal
import sys
import tempfile

from args import parse_args
from config import build_settings, load_config_file
from constants import Constants, ExitCodes
from errors import (
    DownloadError,
    FrameworkMismatchError,
    NuGet2UnityError,
    OperationCancelledError,
    PackageNotFoundError,
    UnsatisfiableError,
)
from common.cancellation import CancellationToken
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from pipeline import fetch_package_binaries
from unity import UnityPackageWriter, copy_binaries, prepare_plugins_dir, write_link_xml

logger = logging.getLogger(__name__)


def run(args, cancel_token=None):
    """Fetch, copy and archive one package.

    Args:
        args: Parsed CLI arguments.
        cancel_token: Run-scoped cancellation signal.

    Returns:
        str: Path of the written .unitypackage.
    """
    cancel_token = cancel_token or CancellationToken()
    settings = build_settings(args, load_config_file(getattr(args, "CONFIG", None)))
    output_dir = os.path.abspath(args.OUTPUT_PATH or os.getcwd())

    logger.info("Packaging %s for Unity...", args.PACKAGE)
    if is_debug_enabled(logger):
        logger.debug(
            "Settings resolved",
            extra=extra_context(
                event="decision",
                component="cli",
                action="build_settings",
                sources=",".join(settings.sources),
                framework=settings.framework,
                packages_dir=settings.packages_dir,
            ),
        )

    if args.UNITY_PROJECT:
        working = os.path.abspath(args.UNITY_PROJECT)
    else:
        working = tempfile.mkdtemp(prefix="nuget2unity-")

    try:
        logger.info("Downloading NuGet package and dependencies...")
        binaries = fetch_package_binaries(args.PACKAGE, args.VERSION, settings, cancel_token=cancel_token)

        logger.info("Copying files...")
        plugins = prepare_plugins_dir(working)
        assemblies = copy_binaries(binaries, plugins)
        if not args.SKIP_LINK_XML:
            write_link_xml(os.path.join(plugins, Constants.LINK_XML_FILE), assemblies)

        logger.info("Creating Unity package (this may take a few minutes)...")
        return UnityPackageWriter().write(working, args.PACKAGE, args.INCLUDE_META, output_dir)
    except KeyboardInterrupt:
        cancel_token.cancel()
        raise
    finally:
        if not args.UNITY_PROJECT:
            shutil.rmtree(working, ignore_errors=True)


def _exit_code_for(error):
    if isinstance(error, OperationCancelledError):
        return ExitCodes.CANCELLED
    if isinstance(error, DownloadError):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(error, (PackageNotFoundError, UnsatisfiableError, FrameworkMismatchError)):
        return ExitCodes.RESOLUTION_ERROR
    return ExitCodes.FILE_ERROR


def _raise_interrupt(signum, frame):  # pylint: disable=unused-argument
    raise KeyboardInterrupt


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging("DEBUG" if args.VERBOSE else args.LOG_LEVEL)
    if args.LOG_FILE:
        add_file_handler(args.LOG_FILE)
    signal.signal(signal.SIGTERM, _raise_interrupt)

    try:
        output_path = run(args)
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        sys.exit(ExitCodes.CANCELLED.value)
    except NuGet2UnityError as e:
        logger.error("%s", e)
        sys.exit(_exit_code_for(e).value)

    logger.info("Complete: %s", output_path)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
