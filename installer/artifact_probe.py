# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
artifact_probe.py

Looks at the build root and reports which build artifacts already exist and are valid.
The result is recomputed on every run; nothing is persisted between invocations.

Every filesystem error is treated as "artifact absent", so a failed probe can only
cause work to be redone, never skipped.
"""

import os
import glob
import platform
from dataclasses import dataclass

from color_logger import logger
from constants import BOOT_IMAGES, DEFAULT_BOOT_IMAGE, SYMBOL_MAP

CHUNK_SIZE = 1024 * 1024

@dataclass(frozen=True)
class BuildState:
    tarball_present: bool = False
    tarball_verified: bool = False
    source_extracted: bool = False
    kernel_built: bool = False
    packages_built: bool = False

    def __post_init__(self):
        if (self.kernel_built or self.packages_built) and not self.source_extracted:
            raise ValueError("A built kernel or package set requires an extracted source tree")

def boot_image_path(source_dir, machine=None):
    machine = machine or platform.machine()
    return os.path.join(source_dir, BOOT_IMAGES.get(machine, DEFAULT_BOOT_IMAGE))

def file_contains(path, marker: bytes) -> bool:
    """
    Searches a binary file for a byte string, reading it in chunks.

    Returns False if the file cannot be read.
    """
    overlap = len(marker) - 1
    tail = b""
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                window = tail + chunk
                if marker in window:
                    return True
                tail = window[-overlap:] if overlap > 0 else b""
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
    return False

def _exists(path, directory=False) -> bool:
    try:
        return os.path.isdir(path) if directory else os.path.isfile(path)
    except OSError:
        return False

class ArtifactProbe:
    """
    Classifies the current build state for one kernel version and distribution.

    Args:
    -----
    - machine (str, optional): Machine architecture used to locate the boot image.
                               Defaults to the running host's.
    """

    def __init__(self, machine=None):
        self.machine = machine or platform.machine()

    def tarball_path(self, build_root, version):
        return os.path.join(build_root, version.tarball_name)

    def source_dir(self, build_root, version):
        return os.path.join(build_root, version.source_dir_name)

    def is_kernel_built(self, source_dir, version) -> bool:
        image = boot_image_path(source_dir, self.machine)
        if not _exists(image) or not _exists(os.path.join(source_dir, SYMBOL_MAP)):
            return False

        # File presence alone cannot tell a stale build from the wanted one
        if not file_contains(image, version.banner.encode()):
            logger.info(f"{image} does not belong to {version.full}")
            return False
        return True

    def probe(self, build_root, version, distro, expected_digest=None, verifier=None) -> BuildState:
        """
        Computes the BuildState of `build_root`.

        Args:
        -----
        - build_root (str): Directory holding the tarball, source tree and packages.
        - version (KernelVersion): The release being built.
        - distro (DistroOperations): The active distribution backend, which knows its package names.
        - expected_digest (str, optional): Published digest of the tarball, if known.
        - verifier (ChecksumVerifier, optional): Used to check the tarball against expected_digest.

        Returns:
        --------
        - BuildState: The classified state.
        """
        tarball = self.tarball_path(build_root, version)
        source_dir = self.source_dir(build_root, version)

        tarball_present = _exists(tarball)
        tarball_verified = bool(tarball_present and expected_digest and verifier
                                and verifier.verify(tarball, expected_digest))
        source_extracted = _exists(source_dir, directory=True)

        kernel_built = False
        packages_built = False
        if source_extracted:
            kernel_built = self.is_kernel_built(source_dir, version)
            try:
                packages_built = bool(distro.package_files(build_root, version))
            except OSError as e:
                logger.debug(f"Could not look for packages in {build_root}: {e}")

        state = BuildState(tarball_present, tarball_verified, source_extracted, kernel_built, packages_built)
        logger.debug(f"Build state: {state}")
        return state

def find_files(patterns):
    """Expands glob patterns into a sorted, de-duplicated list of files."""
    found = set()
    for pattern in patterns:
        found.update(p for p in glob.glob(pattern) if os.path.isfile(p))
    return sorted(found)
