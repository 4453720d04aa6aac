#!/usr/bin/env python3
# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
kernel_installer.py

This script downloads, compiles and installs the latest stable Linux kernel from kernel.org.
It handles the following tasks:
- Detects the distribution and installs the build dependencies.
- Fetches the latest stable version and its tarball, reusing a verified local copy.
- Configures the kernel from the running system's config, with a custom local version tag.
- Compiles and packages the kernel while displaying a progress dashboard.
- Installs the packages, updates the bootloader and offers Secure Boot enrollment where relevant.

Usage:
------
- Run this script as a regular user with sudo rights. Every flag is optional.
"""

import os
import sys
import logging
import argparse
import traceback

import requests

from checksum import ChecksumVerifier
from color_logger import logger
from constants import APP_NAME, APP_VERSION, BUILD_DIR_NAME, KERNEL_TAG, LOG_FILE_NAME
from dialogs import Dialog, WELCOME_PROMPT, ensure_dialog_tool
from distro import detect_host_operations, UnsupportedDistroError
from helpers import (run_command, create_new_directory, get_home_directory,
                     CommandFailedError, EnvironmentSetupError)
from kernel_org import KernelVersion, KernelOrgError, fetch_latest_version
from pipeline import BuildPipeline, StageFailedError
from progress_monitor import ProgressMonitor

def parse_arguments(argv=None):
    """
    Parses command-line arguments.

    Returns:
    --------
    argparse.Namespace: The parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(description=f"{APP_NAME}: build and install the latest stable kernel.")

    parser.add_argument('--build-root', type=str, required=False,
                        help=f'Build directory (default: $HOME/{BUILD_DIR_NAME})')
    parser.add_argument('--headless', action='store_true', default=False,
                        help='Show plain compiler output instead of the progress dashboard')
    parser.add_argument('--no-color', action='store_true', default=False,
                        help='Disable coloured log output')
    parser.add_argument('--debug', action='store_true', default=False,
                        help='Show debug messages, including every command run')
    parser.add_argument('--version', action='version', version=f"{APP_NAME} {APP_VERSION}")

    args = parser.parse_args(argv)

    if args.build_root and not os.path.isabs(args.build_root):
        args.build_root = os.path.abspath(args.build_root)

    return args

def install(args, operations=None, dialog=None, runner=run_command, http_session=None, monitor=None) -> int:
    """
    Runs the whole installation.

    Returns:
    --------
    - int: 0 on completion or when the user declines to continue.

    Raises:
    -------
    - EnvironmentSetupError, UnsupportedDistroError, KernelOrgError, CommandFailedError, StageFailedError
    """
    home = get_home_directory()

    operations = operations or detect_host_operations(runner=runner)
    logger.info(f"Detected distribution: {operations.name}")

    if dialog is None:
        ensure_dialog_tool(operations, runner)
        dialog = Dialog()

    if not dialog.yes_no(WELCOME_PROMPT):
        logger.info("Installation cancelled by user.")
        return 0

    build_root = args.build_root or os.path.join(home, BUILD_DIR_NAME)
    logger.info(f"Creating build directory: {build_root}")
    create_new_directory(build_root, delete_if_exists=False)
    logger.add_file_handler(os.path.join(build_root, LOG_FILE_NAME))

    operations.install_dependencies()
    operations.prepare_host()

    logger.info("Fetching latest kernel version from kernel.org...")
    http_session = http_session or requests.Session()
    version = KernelVersion(fetch_latest_version(http_session), KERNEL_TAG)
    logger.info(f"Latest stable kernel: {version.version}")

    pipeline = BuildPipeline(build_root, version, operations,
                             runner=runner,
                             dialog=dialog,
                             monitor=monitor or ProgressMonitor(headless=args.headless),
                             verifier=ChecksumVerifier(http_session))
    pipeline.run()
    return 0

def main(argv=None):
    args = parse_arguments(argv)

    if args.no_color:
        logger.disable_color()
    if args.debug:
        logger.set_level(logging.DEBUG)

    try:
        ret = install(args)
    except KeyboardInterrupt:
        logger.critical("Interrupted by user.")
        ret = 130
    except (StageFailedError, CommandFailedError, EnvironmentSetupError,
            UnsupportedDistroError, KernelOrgError) as e:
        # Expected failures: the message already names the failing command and exit code
        logger.critical(str(e))
        logger.critical("Installation failed. Fix the problem and run the installer again to resume.")
        ret = 1
    except Exception as e:
        logger.critical(f"Uncaught exception : {e}")
        traceback.print_exc()
        ret = 1
    finally:
        logger.remove_file_handler()

    sys.exit(ret)

if __name__ == "__main__":
    main()
