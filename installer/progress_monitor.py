# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
progress_monitor.py

Runs the kernel compile and shows its progress while it runs.

The compiler's combined stdout/stderr is read line by line. Every line goes to a scrolling
log pane; lines carrying a compile, link or archive marker (' CC ', ' LD ', ' AR ') advance
a progress bar measured against the number of C files found in the source tree. Once the
packaging backend starts (dpkg-deb or rpmbuild), the bar is replaced with a fixed
"packaging in progress" message, since packaging has no comparable unit count.

The dashboard is drawn with rich on the alternate screen:

    header   - application name and version
    rule
    log      - last lines of compiler output
    rule
    status   - progress bar or packaging message

When no terminal is attached, or the dashboard cannot be started, the monitor falls back to
a headless session that echoes the output and logs the progress now and then.
"""

import os
import sys
import time
import codecs
import signal
import selectors
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

from rich import errors as rich_errors
from rich.align import Align
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.rule import Rule
from rich.text import Text

from color_logger import logger
from constants import (APP_NAME, APP_VERSION, COMPILE_MARKERS, DEB_PACKAGING_MARKER, RPM_PACKAGING_MARKER,
                       DEB_PACKAGING_MESSAGE, RPM_PACKAGING_MESSAGE, SOURCE_COUNT_FALLBACK,
                       LOG_HISTORY_LINES, MIN_LOG_HEIGHT, HEADLESS_PROGRESS_STEP)

POLL_INTERVAL = 0.25
READ_SIZE = 64 * 1024
REFRESH_INTERVAL = 0.05
# header, two rules and the status line
CHROME_HEIGHT = 4

PACKAGING_MARKERS = (
    (DEB_PACKAGING_MARKER, DEB_PACKAGING_MESSAGE),
    (RPM_PACKAGING_MARKER, RPM_PACKAGING_MESSAGE),
)

def count_source_files(source_dir) -> int:
    """
    Counts the C files of a source tree, used as the estimated number of compile units.

    Returns:
    --------
    - int: The number of '.c' files, or SOURCE_COUNT_FALLBACK if the tree cannot be walked.
    """
    def fail(error):
        raise error

    count = 0
    try:
        for _, _, files in os.walk(source_dir, onerror=fail):
            count += sum(1 for name in files if name.endswith(".c"))
    except OSError as e:
        logger.warning(f"Could not count source files in {source_dir} ({e}), assuming {SOURCE_COUNT_FALLBACK}")
        return SOURCE_COUNT_FALLBACK
    return count

def render_bar(percent: int, width: int) -> Text:
    bar_width = max(0, width - 20)
    filled = percent * bar_width // 100
    bar = "".join("=" if i < filled else ">" if i == filled else " " for i in range(bar_width))
    return Text.assemble("Progress: [", (bar, "green"), f"] {percent}%")

@dataclass(frozen=True)
class ProgressUpdate:
    percent: Optional[int] = None
    status: Optional[str] = None

class ProgressTracker:
    """
    Turns compiler output lines into progress updates.

    The count of compile units never decreases, and the percentage is
    min(100, floor(100 * count / total)). An estimate of zero (or less) is raised to one.
    """

    def __init__(self, estimated_units: int):
        self.total = max(1, estimated_units)
        self.count = 0
        self.percent = 0
        self.packaging_message = None

    @property
    def packaging(self) -> bool:
        return self.packaging_message is not None

    def feed(self, line: str) -> Optional[ProgressUpdate]:
        if self.packaging:
            return None

        for marker, message in PACKAGING_MARKERS:
            if marker in line:
                self.packaging_message = message
                return ProgressUpdate(status=message)

        if any(marker in line for marker in COMPILE_MARKERS):
            self.count += 1
            self.percent = min(100, self.count * 100 // self.total)
            return ProgressUpdate(percent=self.percent)
        return None

class LineSplitter:
    """Reassembles lines from raw pipe chunks, which may end in the middle of a line or a character."""

    def __init__(self):
        self.decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.pending = ""

    def feed(self, chunk: bytes):
        self.pending += self.decoder.decode(chunk)
        *lines, self.pending = self.pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def close(self):
        rest = self.pending + self.decoder.decode(b"", final=True)
        self.pending = ""
        return [rest.rstrip("\r")] if rest else []

class TerminalUnavailableError(RuntimeError):
    pass

class TerminalSession:
    """
    The rich dashboard, owned by the monitor for the duration of one compile.

    The log history is kept independently of the terminal size, so a resize only changes how
    many lines are visible. SIGWINCH only marks a resize as pending; the monitor's read loop
    calls handle_resize() between reads.
    """

    def __init__(self, title=None, console=None, history=LOG_HISTORY_LINES):
        self.title = title or f"{APP_NAME} Version {APP_VERSION}"
        self.console = console or Console()
        self.log_lines = deque(maxlen=history)
        self.percent = None
        self.status_message = None
        self.resize_pending = False
        self.width, self.height = self.console.size
        self._live = None
        self._previous_handler = None
        self._dirty = False
        self._last_refresh = 0.0

    @property
    def log_height(self) -> int:
        return max(MIN_LOG_HEIGHT, self.height - CHROME_HEIGHT)

    def open(self):
        if not self.console.is_terminal:
            raise TerminalUnavailableError("stdout is not a terminal")
        try:
            self._live = Live(console=self.console, screen=True, auto_refresh=False,
                              redirect_stdout=False, redirect_stderr=False, get_renderable=self.render)
            self._live.start()
            self._install_resize_handler()
            self.refresh()
        except BaseException:
            self.close()
            raise
        return self

    def close(self):
        self._restore_resize_handler()
        if self._live is not None:
            live, self._live = self._live, None
            live.stop()

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()
        return False

    def _install_resize_handler(self):
        if not hasattr(signal, "SIGWINCH") or threading.current_thread() is not threading.main_thread():
            return
        self._previous_handler = signal.signal(signal.SIGWINCH, self.on_resize_signal)

    def _restore_resize_handler(self):
        if self._previous_handler is not None:
            signal.signal(signal.SIGWINCH, self._previous_handler)
            self._previous_handler = None

    def on_resize_signal(self, signum, frame):
        self.resize_pending = True

    def handle_resize(self):
        self.resize_pending = False
        self.width, self.height = self.console.size
        if self._live is not None:
            self.console.clear()
        self.refresh()

    def render_header(self):
        return Align.center(Text(self.title, style="bold cyan", no_wrap=True, overflow="crop"))

    def render_log(self):
        visible = list(self.log_lines)[-self.log_height:]
        return Text.from_ansi("\n".join(visible), no_wrap=True, overflow="crop")

    def render_status(self):
        if self.status_message is not None:
            return Text(self.status_message, style="bold cyan", no_wrap=True, overflow="crop")
        if self.percent is not None:
            return render_bar(self.percent, self.width)
        return Text("")

    def render(self):
        layout = Layout()
        layout.split_column(
            Layout(self.render_header(), name="header", size=1),
            Layout(Rule(style="bright_black"), name="top_rule", size=1),
            Layout(self.render_log(), name="log"),
            Layout(Rule(style="bright_black"), name="bottom_rule", size=1),
            Layout(self.render_status(), name="status", size=1),
        )
        return layout

    def append_log(self, line):
        self.log_lines.append(line)
        self._dirty = True
        if time.monotonic() - self._last_refresh >= REFRESH_INTERVAL:
            self.refresh()

    def show_progress(self, percent):
        self.percent = percent
        self._dirty = True

    def show_status(self, message):
        self.status_message = message
        self.refresh()

    def flush(self):
        if self._dirty:
            self.refresh()

    def refresh(self):
        self._dirty = False
        self._last_refresh = time.monotonic()
        if self._live is not None:
            self._live.refresh()

class HeadlessSession:
    """Plain output for runs without a usable terminal."""

    def __init__(self, stream=None, step=HEADLESS_PROGRESS_STEP, history=LOG_HISTORY_LINES):
        self.stream = stream or sys.stdout
        self.step = step
        self.log_lines = deque(maxlen=history)
        self.resize_pending = False
        self.last_reported = None

    def open(self):
        return self

    def close(self):
        self.flush()

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()
        return False

    def handle_resize(self):
        self.resize_pending = False

    def append_log(self, line):
        self.log_lines.append(line)
        self.stream.write(line + "\n")

    def show_progress(self, percent):
        if self.last_reported is None or percent >= self.last_reported + self.step or (percent == 100 and self.last_reported != 100):
            self.last_reported = percent
            logger.info(f"Progress: {percent}%")

    def show_status(self, message):
        logger.info(message)

    def flush(self):
        self.stream.flush()

class ProgressMonitor:
    """
    Runs a command and displays its progress.

    Args:
    -----
    - headless (bool, optional): Never start the dashboard. Defaults to False.
    - console (Console, optional): rich console for the dashboard.
    - session_factory (callable, optional): Returns the session to use, instead of choosing one.
    """

    def __init__(self, headless=False, console=None, session_factory=None):
        self.headless = headless
        self.console = console
        self.session_factory = session_factory

    def create_session(self):
        if self.session_factory is not None:
            return self.session_factory()
        if self.headless:
            return HeadlessSession()
        return TerminalSession(console=self.console)

    def start_session(self):
        session = self.create_session()
        try:
            return session.open()
        except (OSError, RuntimeError, rich_errors.ConsoleError) as e:
            logger.warning(f"Could not start the progress display ({e}), continuing with plain output")
            return HeadlessSession().open()

    def run(self, command, estimated_units: int) -> int:
        """
        Runs `command` to completion while updating the progress display.

        Args:
        -----
        - command (Command): The compile and package command.
        - estimated_units (int): Estimated number of compile units.

        Returns:
        --------
        - int: The exit status of the command, unchanged.
        """
        tracker = ProgressTracker(estimated_units)
        logger.info(f"Running: {command.render()}")
        logger.debug(f"Estimated compile units: {tracker.total}")

        try:
            process = subprocess.Popen(list(command.argv), cwd=command.cwd, stdin=subprocess.DEVNULL,
                                       stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except OSError as e:
            logger.error(f"Could not start {command.argv[0]}: {e}")
            return 127

        session = self.start_session()
        try:
            self.pump(process, tracker, session)
            return process.wait()
        except BaseException:
            # Ctrl-C or a display error: the compile must not outlive the installer
            process.terminate()
            process.wait()
            raise
        finally:
            session.close()
            process.stdout.close()

    def pump(self, process, tracker, session):
        fd = process.stdout.fileno()
        splitter = LineSplitter()
        with selectors.DefaultSelector() as selector:
            selector.register(fd, selectors.EVENT_READ)
            while True:
                if session.resize_pending:
                    session.handle_resize()
                if not selector.select(timeout=POLL_INTERVAL):
                    session.flush()
                    continue
                chunk = os.read(fd, READ_SIZE)
                if not chunk:
                    break
                for line in splitter.feed(chunk):
                    self.process_line(line, tracker, session)
        for line in splitter.close():
            self.process_line(line, tracker, session)
        session.flush()

    def process_line(self, line, tracker, session):
        session.append_log(line)
        update = tracker.feed(line)
        if update is None:
            return
        if update.status is not None:
            session.show_status(update.status)
        else:
            session.show_progress(update.percent)
