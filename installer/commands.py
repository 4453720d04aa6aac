# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
commands.py

Every external program the installer runs is described here as a Command: a kind tag,
an argument vector and a working directory. Commands are assembled only by CommandBuilder,
from typed parameters, and are executed without a shell. Nothing is ever interpolated into
a shell string, so a version number or a path cannot change the meaning of a command.
"""

import os
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

class CommandKind(Enum):
    DOWNLOAD = "download"
    EXTRACT = "extract"
    COPY_CONFIG = "copy-config"
    ACCEPT_CONFIG_DEFAULTS = "accept-config-defaults"
    SET_CONFIG = "set-config"
    CLEAN = "clean"
    PACKAGE = "package"
    REFRESH_INDEX = "refresh-index"
    INSTALL_DEPENDENCIES = "install-dependencies"
    INSTALL_PACKAGE_FILES = "install-package-files"
    UPDATE_BOOTLOADER = "update-bootloader"
    MAKE_DIRECTORY = "make-directory"
    GENERATE_CERTIFICATE = "generate-certificate"
    SET_PERMISSIONS = "set-permissions"
    ENROLL_KEY = "enroll-key"
    REBOOT = "reboot"

@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argv: Tuple[str, ...]
    cwd: Optional[str] = None

    def render(self) -> str:
        return shlex.join(self.argv)

    def __str__(self):
        return self.render()

def _checked(*values):
    for value in values:
        if not isinstance(value, str) or not value:
            raise ValueError(f"Invalid command argument: {value!r}")
        if "\0" in value or "\n" in value:
            raise ValueError(f"Command argument contains a control character: {value!r}")
    return values

class PackageManager(Enum):
    APT = "apt"
    DNF = "dnf"

class CommandBuilder:
    """
    Builds the closed set of commands used by the pipeline and the distribution backends.

    Commands that modify the system are prefixed with sudo unless the installer already
    runs as root.
    """

    def __init__(self, privileged=None):
        if privileged is None:
            privileged = os.geteuid() != 0
        self.privileged_prefix = ("sudo",) if privileged else ()

    def _privileged(self, kind, *argv, cwd=None):
        return Command(kind, self.privileged_prefix + _checked(*argv), cwd)

    def download(self, url: str, destination: str) -> Command:
        _checked(url, destination)
        return Command(CommandKind.DOWNLOAD, ("wget", "-O", destination, url), os.path.dirname(destination) or None)

    def extract(self, tarball: str, build_root: str) -> Command:
        return Command(CommandKind.EXTRACT, ("tar", "-xf") + _checked(tarball), build_root)

    def copy_running_config(self, source_dir: str, kernel_release: str) -> Command:
        return Command(CommandKind.COPY_CONFIG, ("cp",) + _checked(f"/boot/config-{kernel_release}", ".config"), source_dir)

    def accept_config_defaults(self, source_dir: str) -> Command:
        # olddefconfig answers every new option with its default, without prompting
        return Command(CommandKind.ACCEPT_CONFIG_DEFAULTS, ("make", "olddefconfig"), source_dir)

    def set_config_string(self, source_dir: str, option: str, value: str) -> Command:
        _checked(option)
        if "\0" in value or "\n" in value:
            raise ValueError(f"Config value contains a control character: {value!r}")
        return Command(CommandKind.SET_CONFIG,
                       ("scripts/config", "--file", ".config", "--set-str", option, value), source_dir)

    def clean(self, source_dir: str) -> Command:
        return Command(CommandKind.CLEAN, ("make", "mrproper"), source_dir)

    def package(self, source_dir: str, target: str, jobs: int, fakeroot: bool = False) -> Command:
        _checked(target)
        prefix = ("fakeroot",) if fakeroot else ()
        return Command(CommandKind.PACKAGE, prefix + ("make", f"-j{int(jobs)}", target), source_dir)

    def refresh_package_index(self, manager: PackageManager) -> Command:
        if manager is PackageManager.APT:
            return self._privileged(CommandKind.REFRESH_INDEX, "apt", "update")
        return self._privileged(CommandKind.REFRESH_INDEX, "dnf", "makecache")

    def install_dependencies(self, manager: PackageManager, packages) -> Command:
        return self._privileged(CommandKind.INSTALL_DEPENDENCIES, manager.value, "install", "-y", *packages)

    def install_package_files(self, manager: PackageManager, files) -> Command:
        files = [os.path.abspath(f) for f in files]
        if not files:
            raise ValueError("No package files to install")
        if manager is PackageManager.APT:
            return self._privileged(CommandKind.INSTALL_PACKAGE_FILES, "dpkg", "-i", *files)
        return self._privileged(CommandKind.INSTALL_PACKAGE_FILES, "dnf", "install", "-y", *files)

    def update_bootloader(self, grub_config: Optional[str] = None) -> Command:
        if grub_config is None:
            return self._privileged(CommandKind.UPDATE_BOOTLOADER, "update-grub")
        return self._privileged(CommandKind.UPDATE_BOOTLOADER, "grub2-mkconfig", "-o", grub_config)

    def make_directory(self, path: str) -> Command:
        return self._privileged(CommandKind.MAKE_DIRECTORY, "mkdir", "-p", path)

    def generate_certificate(self, private_key: str, certificate: str, subject: str, days: int) -> Command:
        return self._privileged(CommandKind.GENERATE_CERTIFICATE,
                                "openssl", "req", "-nodes", "-new", "-x509", "-newkey", "rsa:2048",
                                "-keyout", private_key, "-outform", "DER", "-out", certificate,
                                "-days", str(int(days)), "-subj", subject)

    def set_permissions(self, path: str, mode: int) -> Command:
        return self._privileged(CommandKind.SET_PERMISSIONS, "chmod", format(mode, "o"), path)

    def enroll_key(self, certificate: str) -> Command:
        return self._privileged(CommandKind.ENROLL_KEY, "mokutil", "--import", certificate)

    def reboot(self) -> Command:
        return self._privileged(CommandKind.REBOOT, "reboot")
