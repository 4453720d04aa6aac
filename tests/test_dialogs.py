import subprocess

import pytest

from commands import CommandBuilder, CommandKind
from conftest import FakeRunner
from dialogs import (CLEANUP_PROMPT, WELCOME_PROMPT, Dialog, completion_prompt, ensure_dialog_tool,
                     rebuild_prompt)
from distro import DebianOperations


def test_whiptail_argv():
    argv = Dialog(text_mode=False).whiptail_argv(rebuild_prompt("6.11.7-lexi-amd64"))

    assert argv[:3] == ["whiptail", "--title", "Kernel Already Built"]
    assert argv[3:7] == ["--yes-button", "Rebuild", "--no-button", "Install"]
    assert argv[7] == "--yesno"
    assert argv[-2:] == ["12", "60"]


def test_whiptail_exit_status_is_the_answer(monkeypatch):
    codes = iter([0, 1])
    monkeypatch.setattr(subprocess, "run", lambda argv: subprocess.CompletedProcess(argv, next(codes)))
    dialog = Dialog(text_mode=False)

    assert dialog.yes_no(CLEANUP_PROMPT) is True
    assert dialog.yes_no(CLEANUP_PROMPT) is False


def test_missing_whiptail_falls_back_to_text(monkeypatch, capsys):
    def broken(argv):
        raise FileNotFoundError("whiptail")
    monkeypatch.setattr(subprocess, "run", broken)
    dialog = Dialog(text_mode=False, input_func=lambda prompt: "y")

    assert dialog.yes_no(WELCOME_PROMPT)
    assert dialog.text_mode
    assert "Do you wish to continue?" in capsys.readouterr().out


@pytest.mark.parametrize("answer, expected", [("y", True), ("YES", True), (" yes ", True),
                                              ("n", False), ("", False), ("maybe", False)])
def test_text_answers(answer, expected):
    assert Dialog(text_mode=True, input_func=lambda prompt: answer).yes_no(CLEANUP_PROMPT) is expected


def test_end_of_input_declines():
    def closed(prompt):
        raise EOFError
    assert Dialog(text_mode=True, input_func=closed).yes_no(WELCOME_PROMPT) is False


def test_completion_prompt_mentions_reminder():
    prompt = completion_prompt("6.11.7-lexi-amd64", "Complete the enrollment during reboot")

    assert "6.11.7-lexi-amd64" in prompt.text
    assert "Complete the enrollment during reboot" in prompt.text
    assert (prompt.yes_button, prompt.no_button) == ("Reboot Now", "Reboot Later")


def test_dialog_tool_present(monkeypatch):
    monkeypatch.setattr("dialogs.shutil.which", lambda name: "/usr/bin/whiptail")
    runner = FakeRunner()

    assert ensure_dialog_tool(DebianOperations(CommandBuilder(privileged=False), runner), runner)
    assert runner.commands == []


def test_dialog_tool_is_installed(monkeypatch):
    monkeypatch.setattr("dialogs.shutil.which", lambda name: None)
    runner = FakeRunner()

    assert ensure_dialog_tool(DebianOperations(CommandBuilder(privileged=False), runner), runner)
    assert runner.kinds() == [CommandKind.REFRESH_INDEX, CommandKind.INSTALL_DEPENDENCIES]


def test_dialog_tool_install_failure_is_not_fatal(monkeypatch):
    monkeypatch.setattr("dialogs.shutil.which", lambda name: None)
    runner = FakeRunner()
    runner.fail(CommandKind.INSTALL_DEPENDENCIES)

    assert ensure_dialog_tool(DebianOperations(CommandBuilder(privileged=False), runner), runner) is False
