# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

APP_NAME = "Alexia Kernel Installer"
APP_VERSION = "1.2.5"

KERNEL_TAG = "-lexi-amd64"

BUILD_DIR_NAME = "kernel_build"
LOG_FILE_NAME = "kernel-installer.log"
CONFIG_BACKUP_NAME = ".config.pre-clean"

KERNEL_ORG_URL = "https://www.kernel.org/"
KERNEL_CDN_URL = "https://cdn.kernel.org/pub/linux/kernel"
CHECKSUM_MANIFEST = "sha256sums.asc"
HTTP_TIMEOUT = 30

# Boot image and symbol map, relative to the source tree, per machine architecture
BOOT_IMAGES = {
    "x86_64": "arch/x86/boot/bzImage",
    "i686":   "arch/x86/boot/bzImage",
    "aarch64": "arch/arm64/boot/Image",
    "riscv64": "arch/riscv/boot/Image",
}
DEFAULT_BOOT_IMAGE = "arch/x86/boot/bzImage"
SYMBOL_MAP = "System.map"

COMPILE_MARKERS = (" CC ", " LD ", " AR ")

DEB_PACKAGING_MARKER = "dpkg-deb: building package"
RPM_PACKAGING_MARKER = "Processing files:"
DEB_PACKAGING_MESSAGE = "Building kernel and kernel headers .deb package. Please wait..."
RPM_PACKAGING_MESSAGE = "Building kernel .rpm package. Please wait..."

# Used when the source tree cannot be counted
SOURCE_COUNT_FALLBACK = 20000

LOG_HISTORY_LINES = 5000
MIN_LOG_HEIGHT = 5
HEADLESS_PROGRESS_STEP = 10

DIALOG_TOOL = "whiptail"

MOK_DIR = "/var/lib/shim-signed/mok"
MOK_PRIVATE_KEY = f"{MOK_DIR}/MOK_goldendoglinux.priv"
MOK_CERTIFICATE = f"{MOK_DIR}/MOK_goldendoglinux.der"
MOK_SUBJECT = "/CN=GoldenDogLinux Secure Boot Key/"
MOK_VALIDITY_DAYS = 3650

APT_BUILD_DEPENDENCIES = [
    "build-essential", "libncurses-dev", "bison", "flex", "libssl-dev", "libelf-dev",
    "bc", "wget", "tar", "xz-utils", "fakeroot", "curl", "git", "debhelper", "libdw-dev",
    "rsync", "locales", "gawk", "gettext", "dwarves", "cpio", "kmod",
]

MINT_EXTRA_DEPENDENCIES = ["mokutil", "openssl"]

DNF_BUILD_DEPENDENCIES = [
    "gcc", "make", "ncurses-devel", "bison", "flex", "elfutils-libelf-devel",
    "elfutils-devel", "openssl-devel", "openssl", "bc", "wget", "tar", "xz", "rpm-build",
    "dwarves", "perl", "rsync", "git", "kmod", "cpio", "newt",
]
