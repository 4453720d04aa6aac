# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
helpers.py

This module provides utilities shared by the kernel installer stages.
It includes functions for executing commands, managing files and directories,
and the exceptions raised when the environment or a command lets the build down.
"""

import os
import shutil
import subprocess

from color_logger import logger

class CommandFailedError(Exception):
    """
    Exception raised when an external command exits with a non-zero status.
    """
    def __init__(self, command, returncode):
        self.command = command
        self.returncode = returncode
        super().__init__(f"Command failed: {command.render()} (exit {returncode})")

class EnvironmentSetupError(Exception):
    """
    Exception raised when the host does not provide what the build needs (home directory, build root).
    """
    pass

def run_command(command, check=True) -> int:
    """
    Executes a command with the terminal attached, so the user sees its output live.

    Args:
    -----
    - command (Command): The command to execute.
    - check (bool): If True, raises CommandFailedError on a non-zero exit code.

    Returns:
    --------
    - int: The exit code of the command.

    Raises:
    -------
    - CommandFailedError: If the command fails (or cannot be started) and check is True.
    """
    logger.debug(f"Running command: {command.render()}" + (f" (in {command.cwd})" if command.cwd else ""))

    try:
        result = subprocess.run(list(command.argv), cwd=command.cwd, check=False)
        returncode = result.returncode
    except OSError as e:
        logger.error(f"Could not start {command.argv[0]}: {e}")
        returncode = 127

    if returncode != 0:
        logger.error(f"Command failed: {command.render()} (exit {returncode})")
        if check:
            raise CommandFailedError(command, returncode)

    return returncode

def cleanup_directory(dirname):
    """
    Removes a directory and its contents.

    Args:
    -----
    - dirname (str): The path to the directory to clean up.

    Raises:
    -------
    - OSError: If an error occurs while trying to remove the directory.
    """
    try:
        if os.path.exists(dirname):
            shutil.rmtree(dirname)
    except OSError as e:
        logger.error(f"Error cleaning directory {dirname}: {e}")
        raise

def cleanup_file(file_path):
    """
    Deletes a specified file.

    Args:
    -----
    - file_path (str): The path to the file to delete.

    Raises:
    -------
    - OSError: If an error occurs while trying to delete the file.
    """

    logger.debug(f"Cleaning file {file_path}")

    try:
        if os.path.lexists(file_path):
            os.remove(file_path)
    except OSError as e:
        logger.error(f"Error cleaning file {file_path}: {e}")
        raise

def create_new_directory(dirname, delete_if_exists=True):
    """
    Creates a new directory, optionally deleting it if it already exists.

    Args:
    -----
    - dirname (str): The path to the directory to create.
    - delete_if_exists (bool): If True, deletes the directory if it already exists.

    Raises:
    -------
    - EnvironmentSetupError: If the path exists but is not a directory, or cannot be created.
    """
    if os.path.lexists(dirname) and not os.path.isdir(dirname):
        raise EnvironmentSetupError(f"Path exists but is not a directory: {dirname}")

    try:
        if os.path.exists(dirname):
            # Check if the directory exists, if so delete it
            if delete_if_exists:
                cleanup_directory(dirname)
        # Create the destination directory
        os.makedirs(dirname, exist_ok=not delete_if_exists)
    except OSError as e:
        raise EnvironmentSetupError(f"Failed to create build directory {dirname}: {e}") from e

def get_home_directory() -> str:
    """
    Returns the user's home directory from $HOME.

    Raises:
    -------
    - EnvironmentSetupError: If $HOME is not set.
    """
    home = os.environ.get("HOME")
    if not home:
        raise EnvironmentSetupError("Could not determine home directory")
    return home

def cpu_count() -> int:
    return os.cpu_count() or 1
