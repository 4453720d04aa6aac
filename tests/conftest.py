import hashlib
import os

import pytest
import requests

from artifact_probe import ArtifactProbe
from checksum import ChecksumVerifier
from commands import CommandBuilder, CommandKind
from distro import DebianOperations
from helpers import CommandFailedError
from kernel_org import KernelVersion

TARBALL_CONTENT = b"linux source tarball"
TAG = "-lexi-amd64"


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Stands in for requests.Session; maps URLs to page texts or exceptions."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(page, Exception):
            raise page
        if isinstance(page, FakeResponse):
            return page
        return FakeResponse(page)


class FakeRunner:
    """Records commands instead of running them."""

    def __init__(self):
        self.commands = []
        self.effects = {}
        self.failures = {}

    def on(self, kind, effect):
        self.effects[kind] = effect

    def fail(self, kind, returncode=1):
        self.failures[kind] = returncode

    def kinds(self):
        return [command.kind for command in self.commands]

    def __call__(self, command, check=True):
        self.commands.append(command)
        if command.kind in self.failures:
            raise CommandFailedError(command, self.failures[command.kind])
        effect = self.effects.get(command.kind)
        if effect:
            effect(command)
        return 0


class FakeDialog:
    def __init__(self, answers=None, default=False):
        self.answers = dict(answers or {})
        self.default = default
        self.asked = []

    def yes_no(self, prompt):
        self.asked.append(prompt.title)
        return self.answers.get(prompt.title, self.default)


class FakeMonitor:
    def __init__(self, status=0, on_run=None):
        self.status = status
        self.on_run = on_run
        self.runs = []

    def run(self, command, estimated_units):
        self.runs.append((command, estimated_units))
        if self.on_run:
            self.on_run(command)
        return self.status


def sha256(data):
    return hashlib.sha256(data).hexdigest()


def write(path, data=b""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    return path


def make_built_kernel(source_dir, banner):
    write(os.path.join(source_dir, "arch/x86/boot/bzImage"), b"\x00\x01HdrS" + banner.encode() + b" (gcc) #1 SMP\x00")
    write(os.path.join(source_dir, "System.map"), b"ffffffff81000000 T _text\n")
    write(os.path.join(source_dir, ".config"), b"CONFIG_LOCALVERSION=\"-lexi-amd64\"\n")


def make_debs(build_root, version):
    write(os.path.join(build_root, f"linux-image-{version.full}_{version.release}-1_amd64.deb"), b"deb")
    write(os.path.join(build_root, f"linux-headers-{version.full}_{version.release}-1_amd64.deb"), b"deb")


@pytest.fixture
def version():
    return KernelVersion("6.11.7", TAG)


@pytest.fixture
def build_root(tmp_path):
    root = tmp_path / "kernel_build"
    root.mkdir()
    return str(root)


@pytest.fixture
def builder():
    return CommandBuilder(privileged=False)


@pytest.fixture
def runner(build_root, version):
    """A runner whose download, extract and configure commands leave the files the real ones would."""
    fake = FakeRunner()
    source_dir = os.path.join(build_root, version.source_dir_name)

    fake.on(CommandKind.DOWNLOAD, lambda command: write(command.argv[2], TARBALL_CONTENT))
    fake.on(CommandKind.EXTRACT, lambda command: os.makedirs(source_dir, exist_ok=True))
    fake.on(CommandKind.COPY_CONFIG, lambda command: write(os.path.join(source_dir, ".config"), b"CONFIG_X=y\n"))
    fake.on(CommandKind.CLEAN, lambda command: os.remove(os.path.join(source_dir, ".config")))
    return fake


@pytest.fixture
def operations(builder, runner):
    return DebianOperations(builder=builder, runner=runner)


@pytest.fixture
def probe():
    return ArtifactProbe(machine="x86_64")


@pytest.fixture
def manifest_session(version):
    manifest = (f"{sha256(b'other')}  linux-6.11.6.tar.xz\n"
                f"{sha256(TARBALL_CONTENT)}  {version.tarball_name}\n")
    return FakeSession({version.checksum_url: manifest})


@pytest.fixture
def verifier(manifest_session):
    return ChecksumVerifier(manifest_session)
