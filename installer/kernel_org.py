# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
kernel_org.py

This module knows where kernel.org publishes its releases. It discovers the latest stable
version from the front page, and derives the tarball, source directory and checksum manifest
names for that version.
"""

import re
from dataclasses import dataclass

import requests
from lxml import etree, html

from color_logger import logger
from constants import KERNEL_ORG_URL, KERNEL_CDN_URL, CHECKSUM_MANIFEST, HTTP_TIMEOUT

VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")
VERSION_SEARCH_RE = re.compile(r"\d+\.\d+(?:\.\d+)?")

class KernelOrgError(Exception):
    """
    Exception raised when the latest kernel version cannot be determined.
    """
    pass

@dataclass(frozen=True)
class KernelVersion:
    """A release number plus the custom tag appended to the local version."""
    version: str
    tag: str

    def __post_init__(self):
        if not VERSION_RE.match(self.version):
            raise ValueError(f"Invalid kernel version: {self.version!r}")

    @property
    def major(self) -> str:
        return self.version.split(".")[0]

    @property
    def release(self) -> str:
        """The release as kbuild stamps it: the first release of a series gets a '.0' patch level."""
        if self.version.count(".") == 1:
            return f"{self.version}.0"
        return self.version

    @property
    def full(self) -> str:
        return f"{self.release}{self.tag}"

    @property
    def tarball_name(self) -> str:
        return f"linux-{self.version}.tar.xz"

    @property
    def source_dir_name(self) -> str:
        return f"linux-{self.version}"

    @property
    def tarball_url(self) -> str:
        return f"{KERNEL_CDN_URL}/v{self.major}.x/{self.tarball_name}"

    @property
    def checksum_url(self) -> str:
        return f"{KERNEL_CDN_URL}/v{self.major}.x/{CHECKSUM_MANIFEST}"

    @property
    def banner(self) -> str:
        """The string the kernel embeds in its boot image."""
        return f"Linux version {self.full}"

def parse_latest_version(page: str) -> str:
    """
    Extracts the latest stable version from the kernel.org front page.

    The release sits in the table cell with id 'latest_link'. If the markup changes,
    the first version-looking string after the 'latest_link' marker is used instead.

    Args:
    -----
    - page (str): HTML of https://www.kernel.org/

    Returns:
    --------
    - str: The version, e.g. '6.11.7'

    Raises:
    -------
    - KernelOrgError: If no version can be found.
    """
    try:
        tree = html.fromstring(page)
        for text in tree.xpath('//*[@id="latest_link"]//text()'):
            match = VERSION_SEARCH_RE.search(text)
            if match:
                return match.group(0)
    except (ValueError, etree.ParserError) as e:
        logger.debug(f"kernel.org page could not be parsed as HTML: {e}")

    marker = page.find("latest_link")
    if marker != -1:
        match = VERSION_SEARCH_RE.search(page, marker)
        if match:
            return match.group(0)

    raise KernelOrgError("Could not find the latest kernel version on kernel.org")

def fetch_latest_version(session=None, url=KERNEL_ORG_URL) -> str:
    """
    Downloads the kernel.org front page and returns the latest stable version.

    Raises:
    -------
    - KernelOrgError: On any network error or if the page holds no version.
    """
    session = session or requests.Session()
    logger.debug(f"GET {url}")
    try:
        response = session.get(url, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise KernelOrgError(f"Could not fetch latest kernel version from {url}: {e}") from e

    return parse_latest_version(response.text)
