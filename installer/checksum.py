# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
checksum.py

Confirms that a previously downloaded tarball is intact before it is reused.

kernel.org publishes one signed 'sha256sums.asc' manifest per major version line.
The manifest is only used to read the expected digest; the PGP signature around it
is not verified. If the manifest cannot be fetched, the digest is reported as
unavailable (None) instead of failing, and the pipeline decides what to do.
"""

import hashlib

import requests

from color_logger import logger
from constants import HTTP_TIMEOUT

CHUNK_SIZE = 1024 * 1024

def parse_manifest(manifest: str, filename: str):
    """
    Returns the hash field of the manifest line whose file name is exactly `filename`.
    """
    for line in manifest.splitlines():
        fields = line.split()
        if len(fields) == 2 and fields[1] == filename:
            return fields[0]
    return None

def file_digest(path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()

class ChecksumVerifier:
    def __init__(self, session=None):
        self.session = session or requests.Session()

    def fetch_expected_digest(self, version):
        """
        Fetches the checksum manifest for the version's major line.

        Args:
        -----
        - version (KernelVersion): The release being built.

        Returns:
        --------
        - str or None: The published SHA-256 of the tarball, or None if it is unavailable.
        """
        logger.debug(f"GET {version.checksum_url}")
        try:
            response = self.session.get(version.checksum_url, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Checksum manifest unavailable ({e})")
            return None

        digest = parse_manifest(response.text, version.tarball_name)
        if digest is None:
            logger.warning(f"{version.tarball_name} is not listed in {version.checksum_url}")
        return digest

    def verify(self, file_path, digest) -> bool:
        try:
            actual = file_digest(file_path)
        except OSError as e:
            logger.warning(f"Could not read {file_path}: {e}")
            return False

        if actual != digest:
            logger.warning(f"Checksum mismatch for {file_path}: expected {digest}, got {actual}")
            return False
        return True
