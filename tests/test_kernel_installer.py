import os

import pytest

import kernel_installer
from commands import CommandKind
from conftest import FakeDialog, FakeMonitor, FakeSession, make_debs
from kernel_installer import install, main, parse_arguments
from pipeline import Stage, StageFailedError

FRONT_PAGE = '<html><body><table><tr><td id="latest_link"><a href="#">6.11.7</a></td></tr></table></body></html>'


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    return str(tmp_path)


def test_parse_arguments_defaults():
    args = parse_arguments([])

    assert args.build_root is None
    assert not args.headless
    assert not args.debug


def test_parse_arguments_makes_build_root_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert parse_arguments(["--build-root", "kb", "--headless"]).build_root == str(tmp_path / "kb")


def test_declined_welcome_does_nothing(home, operations, runner):
    dialog = FakeDialog({"Alexia Kernel Installer": False})

    build_root = os.path.join(home, "elsewhere")

    assert install(parse_arguments(["--build-root", build_root]), operations=operations, dialog=dialog,
                   runner=runner) == 0
    assert runner.commands == []
    assert not os.path.exists(build_root)


def test_full_install(home, operations, runner, version, manifest_session):
    build_root = os.path.join(home, "kernel_build")
    manifest_session.pages["https://www.kernel.org/"] = FRONT_PAGE
    monitor = FakeMonitor(on_run=lambda command: make_debs(build_root, version))
    dialog = FakeDialog({"Alexia Kernel Installer": True})

    ret = install(parse_arguments(["--build-root", build_root]), operations=operations, dialog=dialog,
                  runner=runner, http_session=manifest_session, monitor=monitor)

    assert ret == 0
    assert runner.kinds()[:2] == [CommandKind.REFRESH_INDEX, CommandKind.INSTALL_DEPENDENCIES]
    assert runner.kinds()[-1] is CommandKind.UPDATE_BOOTLOADER
    assert os.path.isfile(os.path.join(build_root, "kernel-installer.log"))
    kernel_installer.logger.remove_file_handler()


def test_unreachable_kernel_org_stops_before_building(home, operations, runner):
    dialog = FakeDialog({"Alexia Kernel Installer": True})

    with pytest.raises(kernel_installer.KernelOrgError):
        install(parse_arguments([]), operations=operations, dialog=dialog, runner=runner,
                http_session=FakeSession())

    assert CommandKind.DOWNLOAD not in runner.kinds()
    kernel_installer.logger.remove_file_handler()


def test_main_exits_non_zero_on_stage_failure(monkeypatch):
    def failing(args):
        raise StageFailedError(Stage.COMPILE, "Command failed: make -j8 bindeb-pkg (exit 2)")
    monkeypatch.setattr(kernel_installer, "install", failing)

    with pytest.raises(SystemExit) as e:
        main(["--no-color"])

    assert e.value.code == 1


def test_main_exits_non_zero_on_unexpected_error(monkeypatch):
    def broken(args):
        raise KeyError("boom")
    monkeypatch.setattr(kernel_installer, "install", broken)

    with pytest.raises(SystemExit) as e:
        main([])

    assert e.value.code == 1


def test_main_interrupted(monkeypatch):
    def interrupted(args):
        raise KeyboardInterrupt
    monkeypatch.setattr(kernel_installer, "install", interrupted)

    with pytest.raises(SystemExit) as e:
        main([])

    assert e.value.code == 130


def test_main_success(monkeypatch):
    monkeypatch.setattr(kernel_installer, "install", lambda args: 0)

    with pytest.raises(SystemExit) as e:
        main([])

    assert e.value.code == 0
