# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
pipeline.py

The build pipeline: download, extract, configure, compile+package, install, bootloader update
and post-install, run strictly in that order.

Before each stage the pipeline looks at what is already on disk (see artifact_probe.py) and
skips the stage when its artifact is present and valid. When a built kernel for the target
version is found, the user is asked whether to rebuild; declining jumps straight to the
install stage.

There are no retries and no rollback. Any failure raises StageFailedError, the caller exits,
and the next run resumes from whatever the probe finds on disk.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from artifact_probe import ArtifactProbe, BuildState
from checksum import ChecksumVerifier
from color_logger import logger
from commands import CommandBuilder
from dialogs import (Dialog, CLEANUP_PROMPT, rebuild_prompt, completion_prompt)
from distro import MissingPackagesError, clean_keeping_config
from helpers import run_command, cleanup_file, cleanup_directory, CommandFailedError
from progress_monitor import ProgressMonitor, count_source_files

class Stage(Enum):
    DOWNLOAD = "download"
    EXTRACT = "extract"
    CONFIGURE = "configure"
    COMPILE = "compile+package"
    INSTALL = "install"
    BOOTLOADER = "bootloader-update"
    POST_INSTALL = "post-install"

STAGE_ORDER = list(Stage)

class StageFailedError(Exception):
    """
    Exception raised when a stage cannot complete. The whole run stops.
    """
    def __init__(self, stage, message):
        self.stage = stage
        super().__init__(f"Stage '{stage.value}' failed: {message}")

@dataclass(frozen=True)
class StageSpec:
    stage: Stage
    # True when the stage's artifact is already in place and the stage may be skipped
    precondition: Callable[[BuildState], bool]
    action: Callable[[], None]
    skip_message: str = ""
    forced_by_rebuild: bool = False

def never(state):
    return False

class BuildPipeline:
    """
    Sequences the build stages for one kernel version.

    Args:
    -----
    - build_root (str): Directory holding the tarball, the source tree and the packages.
    - version (KernelVersion): The release to build.
    - operations (DistroOperations): Backend of the running distribution.
    - runner (callable, optional): Runs a Command, raising CommandFailedError on failure.
    - dialog (Dialog, optional): Asks the yes/no questions.
    - monitor (ProgressMonitor, optional): Runs the compile command.
    - verifier (ChecksumVerifier, optional): Checks the tarball against kernel.org's manifest.
    - probe (ArtifactProbe, optional): Classifies the build root.
    - builder (CommandBuilder, optional): Assembles the commands.
    - kernel_release (str, optional): Release of the running kernel, whose config is the baseline.
    """

    def __init__(self, build_root, version, operations, runner=run_command, dialog=None, monitor=None,
                 verifier=None, probe=None, builder=None, kernel_release=None):
        self.build_root = build_root
        self.version = version
        self.operations = operations
        self.runner = runner
        self.dialog = dialog or Dialog()
        self.monitor = monitor or ProgressMonitor()
        self.verifier = verifier or ChecksumVerifier()
        self.probe = probe or ArtifactProbe()
        self.builder = builder or operations.builder or CommandBuilder()
        self.kernel_release = kernel_release or os.uname().release

        self.expected_digest = None
        self.rebuild = False
        self.completed = []
        self.skipped = []
        self.stages = [
            StageSpec(Stage.DOWNLOAD, self.tarball_reusable, self.download,
                      f"{self.version.tarball_name} already downloaded, skipping download"),
            StageSpec(Stage.EXTRACT, lambda state: state.source_extracted, self.extract,
                      f"{self.version.source_dir_name} already extracted, skipping extraction"),
            StageSpec(Stage.CONFIGURE, never, self.configure),
            StageSpec(Stage.COMPILE, lambda state: state.kernel_built or state.packages_built, self.compile,
                      f"Kernel {self.version.full} already built, skipping compilation", forced_by_rebuild=True),
            StageSpec(Stage.INSTALL, never, self.install),
            StageSpec(Stage.BOOTLOADER, never, self.update_bootloader),
            StageSpec(Stage.POST_INSTALL, never, self.post_install),
        ]

    @property
    def tarball_path(self):
        return self.probe.tarball_path(self.build_root, self.version)

    @property
    def source_dir(self):
        return self.probe.source_dir(self.build_root, self.version)

    def probe_state(self, verify=False) -> BuildState:
        if verify and self.expected_digest is not None:
            return self.probe.probe(self.build_root, self.version, self.operations, self.expected_digest, self.verifier)
        return self.probe.probe(self.build_root, self.version, self.operations)

    def spec_for(self, stage) -> StageSpec:
        return next(spec for spec in self.stages if spec.stage is stage)

    def next_stage(self, stage):
        index = STAGE_ORDER.index(stage) + 1
        return STAGE_ORDER[index] if index < len(STAGE_ORDER) else None

    def first_stage(self, state) -> Stage:
        """
        Chooses where the run starts. A kernel already built for this version leads to the
        rebuild question; declining it takes the skip edge straight to installation.
        """
        if not (state.kernel_built or state.packages_built):
            return Stage.DOWNLOAD

        if self.dialog.yes_no(rebuild_prompt(self.version.full)):
            logger.info(f"Rebuilding kernel {self.version.full}")
            self.rebuild = True
            return Stage.DOWNLOAD

        logger.info(f"Kernel {self.version.full} already built, going straight to installation")
        return Stage.INSTALL

    def should_skip(self, spec, state) -> bool:
        if spec.forced_by_rebuild and self.rebuild:
            return False
        return spec.precondition(state)

    def run(self):
        """
        Runs the pipeline to completion.

        Raises:
        -------
        - StageFailedError: If any stage fails.
        """
        state = self.probe_state()
        stage = self.first_stage(state)

        if stage is Stage.DOWNLOAD and state.tarball_present:
            self.expected_digest = self.verifier.fetch_expected_digest(self.version)
            state = self.probe_state(verify=True)

        while stage is not None:
            spec = self.spec_for(stage)
            if self.should_skip(spec, state):
                logger.info(spec.skip_message)
                self.skipped.append(stage)
            else:
                logger.info(f"===== Stage: {stage.value} =====")
                try:
                    spec.action()
                except CommandFailedError as e:
                    raise StageFailedError(stage, str(e)) from e
                except OSError as e:
                    raise StageFailedError(stage, str(e)) from e
                self.completed.append(stage)
                state = self.probe_state()
            stage = self.next_stage(stage)

        logger.info(f"Kernel {self.version.full} installation finished")

    def tarball_reusable(self, state) -> bool:
        if not state.tarball_present:
            return False
        if self.expected_digest is None:
            logger.warning(f"Checksum unavailable, reusing existing {self.version.tarball_name} without verification")
            return True
        if state.tarball_verified:
            logger.info(f"{self.version.tarball_name} matches the published checksum")
            return True
        logger.warning(f"{self.version.tarball_name} does not match the published checksum")
        return False

    def download(self):
        tarball = self.tarball_path
        if os.path.lexists(tarball):
            logger.info(f"Removing stale {tarball}")
            cleanup_file(tarball)

        if self.expected_digest is None:
            self.expected_digest = self.verifier.fetch_expected_digest(self.version)

        logger.info(f"Downloading {self.version.tarball_url}")
        try:
            self.runner(self.builder.download(self.version.tarball_url, tarball))
        except CommandFailedError:
            # A partial download must not be mistaken for a tarball on the next run
            cleanup_file(tarball)
            raise

        if self.expected_digest is not None and not self.verifier.verify(tarball, self.expected_digest):
            raise StageFailedError(Stage.DOWNLOAD, f"Downloaded {self.version.tarball_name} does not match the published checksum")

    def extract(self):
        logger.info(f"Extracting {self.version.tarball_name}")
        self.runner(self.builder.extract(self.version.tarball_name, self.build_root))

    def configure(self):
        source_dir = self.source_dir
        logger.info(f"Configuring kernel from the running kernel's config ({self.kernel_release})")
        self.runner(self.builder.copy_running_config(source_dir, self.kernel_release))
        self.runner(self.builder.accept_config_defaults(source_dir))
        self.runner(self.builder.set_config_string(source_dir, "LOCALVERSION", self.version.tag))
        for command in self.operations.prepare_config(source_dir):
            self.runner(command)

    def compile(self):
        source_dir = self.source_dir
        config = os.path.join(source_dir, ".config")
        if not os.path.isfile(config):
            raise StageFailedError(Stage.COMPILE, f"{config} is missing; the configure stage did not produce it")

        clean_keeping_config(self.runner, self.builder, self.build_root, source_dir)

        logger.info(f"Building and installing kernel for {self.operations.name}...")
        command = self.operations.package_command(source_dir)
        status = self.monitor.run(command, count_source_files(source_dir))
        if status != 0:
            raise CommandFailedError(command, status)

    def install(self):
        try:
            self.operations.install_packages(self.build_root, self.version)
        except MissingPackagesError as e:
            raise StageFailedError(Stage.INSTALL, f"{e}. Run the installer again and choose to rebuild.") from e

    def update_bootloader(self):
        self.operations.update_bootloader()

    def post_install(self):
        self.operations.post_install(self.dialog)

        if self.dialog.yes_no(CLEANUP_PROMPT):
            # The log file lives in the build root
            logger.remove_file_handler()
            cleanup_directory(self.build_root)
            logger.info("Build files cleaned up.")

        reminder = self.operations.reboot_reminder()
        if self.dialog.yes_no(completion_prompt(self.version.full, reminder)):
            logger.info("Rebooting system...")
            if reminder:
                logger.info("Remember: If you enrolled Secure Boot, look for the blue MOK Manager screen!")
            self.runner(self.builder.reboot())
            return

        print("\nRemember to reboot the machine to boot with the latest kernel")
        if reminder:
            print(reminder)
        print("Thank you for using my software")
        print("Please keep it free for everyone")
        print("Alexia.")
