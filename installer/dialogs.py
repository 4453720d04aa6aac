# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
dialogs.py

Yes/no questions asked to the user. They are shown with whiptail when it is available,
otherwise as plain text prompts on the terminal. Answers only steer the control flow of
the installer and are never stored.
"""

import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

from color_logger import logger
from constants import APP_NAME, APP_VERSION, DIALOG_TOOL
from helpers import run_command, CommandFailedError

@dataclass(frozen=True)
class DialogPrompt:
    title: str
    text: str
    height: int = 10
    width: int = 60
    yes_button: Optional[str] = None
    no_button: Optional[str] = None

WELCOME_PROMPT = DialogPrompt(
    title=APP_NAME,
    text=(f"{APP_NAME} Version {APP_VERSION}\n\n"
          "This program will download, compile and install the latest stable kernel from kernel.org.\n\n"
          "The process may take up to three hours in some systems.\n\n"
          "Do you wish to continue?"),
    height=15, width=60)

SECURE_BOOT_PROMPT = DialogPrompt(
    title="Secure Boot Enrollment",
    text=("Do you want to enroll the GoldenDogLinux certificate for Secure Boot?\n\n"
          "This will allow your custom kernel to work with Secure Boot enabled.\n\n"
          "You will be asked to set a password and enroll the key during the next reboot.\n\n"
          "Continue with enrollment?"),
    height=16, width=60)

CLEANUP_PROMPT = DialogPrompt(
    title="Cleanup Build Files",
    text="Do you want to clean up the build files?",
    height=10, width=50)

def rebuild_prompt(kernel_version):
    return DialogPrompt(
        title="Kernel Already Built",
        text=(f"Kernel {kernel_version} has already been built in this build directory.\n\n"
              "Do you want to rebuild it anyway?"),
        height=12, width=60, yes_button="Rebuild", no_button="Install")

def completion_prompt(kernel_version, reminder=None):
    text = f"Kernel {kernel_version} has been successfully installed."
    if reminder:
        text += f"\n\n{reminder}."
    return DialogPrompt(
        title="Installation Complete",
        text=text,
        height=14, width=60, yes_button="Reboot Now", no_button="Reboot Later")

class Dialog:
    """
    Asks yes/no questions.

    Args:
    -----
    - text_mode (bool, optional): Use plain terminal prompts. Defaults to True when whiptail is missing.
    - input_func (callable, optional): Replacement for input() in text mode.
    """

    def __init__(self, text_mode=None, input_func=input):
        if text_mode is None:
            text_mode = shutil.which(DIALOG_TOOL) is None
        self.text_mode = text_mode
        self.input_func = input_func

    def whiptail_argv(self, prompt: DialogPrompt):
        argv = [DIALOG_TOOL, "--title", prompt.title]
        if prompt.yes_button:
            argv += ["--yes-button", prompt.yes_button]
        if prompt.no_button:
            argv += ["--no-button", prompt.no_button]
        argv += ["--yesno", prompt.text, str(prompt.height), str(prompt.width)]
        return argv

    def yes_no(self, prompt: DialogPrompt) -> bool:
        if not self.text_mode:
            try:
                return subprocess.run(self.whiptail_argv(prompt)).returncode == 0
            except OSError as e:
                logger.warning(f"{DIALOG_TOOL} failed ({e}), continuing in text mode")
                self.text_mode = True
        return self.ask_text(prompt)

    def ask_text(self, prompt: DialogPrompt) -> bool:
        yes = prompt.yes_button or "yes"
        no = prompt.no_button or "no"
        print(f"\n=== {prompt.title} ===\n{prompt.text}")
        try:
            answer = self.input_func(f"[y = {yes} / N = {no}]: ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")

def ensure_dialog_tool(operations, runner=run_command) -> bool:
    """
    Installs whiptail with the distribution's package manager when it is missing.

    A failure is not fatal: the dialogs fall back to text mode.

    Returns:
    --------
    - bool: True if whiptail is available afterwards.
    """
    if shutil.which(DIALOG_TOOL):
        return True

    logger.info(f"{DIALOG_TOOL} not found. Installing...")
    try:
        for command in operations.bootstrap_tool_install_commands():
            runner(command)
    except CommandFailedError as e:
        logger.error(f"Failed to install {DIALOG_TOOL}: {e}")
        logger.warning(f"{DIALOG_TOOL} installation failed. Continuing with text mode...")
        return False

    logger.info(f"{DIALOG_TOOL} installed successfully.")
    return True
