# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
distro.py

Distribution specific operations: installing build dependencies, packaging the compiled
kernel, installing the packages and updating the bootloader.

One DistroOperations implementation exists per distribution family. The family is
detected once at startup from /etc/os-release; the rest of the installer only talks
to the selected implementation.
"""

import os
import shutil
from enum import Enum

from artifact_probe import find_files
from color_logger import logger
from commands import CommandBuilder, PackageManager
from constants import (APT_BUILD_DEPENDENCIES, MINT_EXTRA_DEPENDENCIES, DNF_BUILD_DEPENDENCIES,
                       BUILD_DIR_NAME, CONFIG_BACKUP_NAME, MOK_DIR, MOK_PRIVATE_KEY, MOK_CERTIFICATE, MOK_SUBJECT,
                       MOK_VALIDITY_DAYS, DIALOG_TOOL)
from dialogs import SECURE_BOOT_PROMPT
from helpers import run_command, cpu_count, CommandFailedError
from kernel_org import KernelVersion
from progress_monitor import ProgressMonitor, count_source_files

OS_RELEASE = "/etc/os-release"

class DistroFamily(Enum):
    DEBIAN = "debian"
    MINT = "mint"
    FEDORA = "fedora"

DISTRO_MAP = {
    "debian":     DistroFamily.DEBIAN,
    "linuxmint":  DistroFamily.MINT,
    "ubuntu":     DistroFamily.MINT,
    "elementary": DistroFamily.MINT,
    "pop":        DistroFamily.MINT,
    "zorin":      DistroFamily.MINT,
    "fedora":     DistroFamily.FEDORA,
}

class UnsupportedDistroError(Exception):
    """
    Exception raised when the running distribution has no implementation.
    """
    pass

class MissingPackagesError(Exception):
    """
    Exception raised when the install step finds no built packages.
    """
    pass

def parse_os_release(text: str) -> dict:
    """
    Parses the KEY=value lines of an os-release file. Quotes around values are removed.
    """
    fields = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        fields[key.strip()] = value
    return fields

def detect_distro(identifier):
    return DISTRO_MAP.get(identifier.strip().lower()) if identifier else None

def resolve_distro(os_release: dict):
    """
    Maps an os-release ID to a family, falling back to the entries of ID_LIKE.
    """
    family = detect_distro(os_release.get("ID", ""))
    if family:
        return family
    for identifier in os_release.get("ID_LIKE", "").split():
        family = detect_distro(identifier)
        if family:
            return family
    return None

def clean_keeping_config(runner, builder, build_root, source_dir):
    """
    Runs `make mrproper` on a configured source tree. mrproper deletes .config along with
    every build product, so the config is parked in the build root and moved back afterwards.

    Raises:
    -------
    - OSError: If .config is missing or cannot be moved.
    - CommandFailedError: If the clean fails.
    """
    config = os.path.join(source_dir, ".config")
    backup = os.path.join(build_root, CONFIG_BACKUP_NAME)
    shutil.copy2(config, backup)
    runner(builder.clean(source_dir))
    shutil.move(backup, config)

def read_os_release(path=OS_RELEASE) -> dict:
    try:
        with open(path, "r") as f:
            return parse_os_release(f.read())
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return {}

class DistroOperations:
    """
    Base class of the distribution backends.

    Subclasses describe their commands; running them goes through `runner`, which defaults
    to helpers.run_command and raises CommandFailedError on a non-zero exit.
    """

    name = None
    family = None
    manager = None
    packaging_target = None
    packaging_with_fakeroot = False

    def __init__(self, builder=None, runner=run_command):
        self.builder = builder or CommandBuilder()
        self.runner = runner

    def run_all(self, commands):
        for command in commands:
            self.runner(command)

    def dependencies(self):
        raise NotImplementedError

    def dependency_commands(self):
        return [self.builder.refresh_package_index(self.manager),
                self.builder.install_dependencies(self.manager, self.dependencies())]

    def install_dependencies(self):
        logger.info(f"Installing required packages for {self.name}...")
        self.run_all(self.dependency_commands())

    def bootstrap_tool_install_commands(self):
        raise NotImplementedError

    def prepare_host(self):
        pass

    def prepare_config(self, source_dir):
        """Commands adjusting the kernel .config for this distribution."""
        return []

    def package_command(self, source_dir):
        return self.builder.package(source_dir, self.packaging_target, cpu_count(), fakeroot=self.packaging_with_fakeroot)

    def package_patterns(self, build_root, version):
        raise NotImplementedError

    def package_files(self, build_root, version):
        return find_files(self.package_patterns(build_root, version))

    def install_commands(self, files):
        return [self.builder.install_package_files(self.manager, files)]

    def install_packages(self, build_root, version):
        files = self.package_files(build_root, version)
        if not files:
            raise MissingPackagesError(f"No {version.full} packages found in {build_root}")
        logger.info(f"Installing {len(files)} package(s): {', '.join(os.path.basename(f) for f in files)}")
        self.run_all(self.install_commands(files))

    def build_and_install(self, home_dir, version, tag, monitor=None):
        """
        Cleans, packages and installs an already configured source tree, the same way the
        pipeline's compile stage does.

        Args:
        -----
        - home_dir (str): The user's home directory; the build root is <home_dir>/kernel_build.
        - version (str): Kernel release, e.g. '6.11.7'.
        - tag (str): Custom local version tag.
        - monitor (ProgressMonitor, optional): Progress display for the compile.

        Raises:
        -------
        - OSError: If the source tree has no .config.
        - CommandFailedError: If a command or the compile fails.
        """
        kernel = KernelVersion(version, tag)
        build_root = os.path.join(home_dir, BUILD_DIR_NAME)
        source_dir = os.path.join(build_root, kernel.source_dir_name)
        monitor = monitor or ProgressMonitor()

        self.run_all(self.prepare_config(source_dir))
        clean_keeping_config(self.runner, self.builder, build_root, source_dir)
        command = self.package_command(source_dir)
        status = monitor.run(command, count_source_files(source_dir))
        if status != 0:
            raise CommandFailedError(command, status)
        self.install_packages(build_root, kernel)

    def bootloader_commands(self):
        raise NotImplementedError

    def update_bootloader(self):
        logger.info(f"Updating bootloader for {self.name}...")
        self.run_all(self.bootloader_commands())

    def post_install(self, dialog):
        pass

    def reboot_reminder(self):
        return None

class DebianOperations(DistroOperations):
    name = "Debian"
    family = DistroFamily.DEBIAN
    manager = PackageManager.APT
    packaging_target = "bindeb-pkg"
    packaging_with_fakeroot = True

    def dependencies(self):
        return list(APT_BUILD_DEPENDENCIES)

    def bootstrap_tool_install_commands(self):
        return [self.builder.refresh_package_index(self.manager),
                self.builder.install_dependencies(self.manager, [DIALOG_TOOL])]

    def package_patterns(self, build_root, version):
        return [os.path.join(build_root, f"linux-image-{version.full}_*.deb"),
                os.path.join(build_root, f"linux-headers-{version.full}_*.deb")]

    def package_files(self, build_root, version):
        image, headers = self.package_patterns(build_root, version)
        images = find_files([image])
        if not images:
            return []
        return images + find_files([headers])

    def bootloader_commands(self):
        return [self.builder.update_bootloader()]

class MintOperations(DebianOperations):
    """
    Linux Mint, Ubuntu and their derivatives.

    Canonical signs its kernels with a key trusted through Microsoft's Secure Boot chain.
    A self built kernel cannot use it, so the installer creates its own Machine Owner Key
    and offers to enroll it, and strips Canonical's trusted key lists from the config.
    """

    name = "Linux Mint/Ubuntu"
    family = DistroFamily.MINT

    def dependencies(self):
        return list(APT_BUILD_DEPENDENCIES) + list(MINT_EXTRA_DEPENDENCIES)

    def prepare_config(self, source_dir):
        logger.info("Configuring GoldendogLinux Signature...")
        return [self.builder.set_config_string(source_dir, "SYSTEM_TRUSTED_KEYS", ""),
                self.builder.set_config_string(source_dir, "SYSTEM_REVOCATION_KEYS", "")]

    def certificate_commands(self):
        return [self.builder.make_directory(MOK_DIR),
                self.builder.generate_certificate(MOK_PRIVATE_KEY, MOK_CERTIFICATE, MOK_SUBJECT, MOK_VALIDITY_DAYS),
                self.builder.set_permissions(MOK_PRIVATE_KEY, 0o600),
                self.builder.set_permissions(MOK_CERTIFICATE, 0o644)]

    def prepare_host(self):
        if os.path.exists(MOK_CERTIFICATE):
            logger.info(f"Secure Boot certificate already present at {MOK_CERTIFICATE}")
            return
        logger.info("Generating GoldenDogLinux Secure Boot certificate...")
        self.run_all(self.certificate_commands())
        logger.info("GoldenDogLinux certificate generated successfully.")

    def post_install(self, dialog):
        if not dialog.yes_no(SECURE_BOOT_PROMPT):
            logger.info("Secure Boot enrollment skipped.")
            logger.info(f"You can enroll the certificate later with: sudo mokutil --import {MOK_CERTIFICATE}")
            return

        logger.info("Enrolling GoldenDogLinux certificate for Secure Boot...")
        self.runner(self.builder.enroll_key(MOK_CERTIFICATE))

        print("\n=== IMPORTANT SECURE BOOT INSTRUCTIONS ===")
        print("1. You will be asked to set a enrollment password now")
        print("2. During the next reboot, a blue screen (MOK Manager) will appear")
        print("3. Select 'Enroll MOK' > 'Continue' > 'Yes' > Enter the password")
        print("4. Select 'Reboot' to complete the enrollment")
        print("5. After enrollment, your kernel will work with Secure Boot")
        print("==========================================")

    def reboot_reminder(self):
        return "If you enrolled Secure Boot, complete the enrollment during reboot"

class FedoraOperations(DistroOperations):
    name = "Fedora"
    family = DistroFamily.FEDORA
    manager = PackageManager.DNF
    packaging_target = "binrpm-pkg"
    grub_config = "/boot/grub2/grub.cfg"

    def dependencies(self):
        return list(DNF_BUILD_DEPENDENCIES)

    def bootstrap_tool_install_commands(self):
        # whiptail ships in the newt package on Fedora
        return [self.builder.install_dependencies(self.manager, ["newt"])]

    def package_patterns(self, build_root, version):
        source_dir = os.path.join(build_root, version.source_dir_name)
        # RPM versions cannot contain '-', so the build may turn the tag's dashes into underscores
        names = {f"kernel-{version.full}*.rpm", f"kernel-{version.release}{version.tag.replace('-', '_')}*.rpm"}
        directories = [build_root,
                       os.path.join(source_dir, "rpmbuild", "RPMS", "*"),
                       os.path.join(os.path.expanduser("~"), "rpmbuild", "RPMS", "*")]
        return [os.path.join(d, n) for d in directories for n in sorted(names)]

    def bootloader_commands(self):
        return [self.builder.update_bootloader(self.grub_config)]

OPERATIONS = {
    DistroFamily.DEBIAN: DebianOperations,
    DistroFamily.MINT:   MintOperations,
    DistroFamily.FEDORA: FedoraOperations,
}

def get_distro_operations(family, builder=None, runner=run_command):
    """
    Returns the operations for a distribution family.

    Raises:
    -------
    - UnsupportedDistroError: If the family is None or unknown.
    """
    operations = OPERATIONS.get(family)
    if operations is None:
        raise UnsupportedDistroError("Unsupported Linux distribution. Supported: Debian, Linux Mint/Ubuntu, Fedora.")
    return operations(builder=builder, runner=runner)

def detect_host_operations(builder=None, runner=run_command, os_release_path=OS_RELEASE):
    os_release = read_os_release(os_release_path)
    family = resolve_distro(os_release)
    if family is None:
        logger.error(f"Unrecognised distribution ID '{os_release.get('ID', 'unknown')}'")
    return get_distro_operations(family, builder=builder, runner=runner)
