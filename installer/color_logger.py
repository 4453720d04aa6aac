# Copyright (c) Alexia Kernel Installer contributors.
#
# SPDX-License-Identifier: BSD-3-Clause-Clear

"""
color_logger.py

Coloured, timestamped logger shared by every module of the kernel installer.
It wraps the standard 'logging' module and exposes the same level methods:
debug, info, warning, error and critical.

A plain copy of the records can be mirrored to a file inside the build root,
so that a failed build leaves a readable trace behind.

Usage:
    from color_logger import logger

    logger.info('Fetching latest kernel version')
    logger.add_file_handler('/home/user/kernel_build/kernel-installer.log')
"""

import sys
import logging
import datetime

class ColorLogger:
    LEVEL_STRING = {
        logging.DEBUG:    'DEBG',
        logging.INFO:     'INFO',
        logging.WARNING:  'WARN',
        logging.ERROR:    'ERR ',
        logging.CRITICAL: 'CRIT'
    }

    LEVEL_COLORS = {
        logging.DEBUG:    '\033[94m', #CYAN
        logging.INFO:     '\033[92m', #GREEN
        logging.WARNING:  '\033[93m', #YELLOW
        logging.ERROR:    '\033[91m', #RED
        logging.CRITICAL: '\033[95m' #MAGENTA
    }

    RESET = '\033[0m'

    def __init__(self, name: str, level=logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.color_enabled = sys.stderr.isatty()
        self.file_handler = None

        self.console_handler = logging.StreamHandler()
        self.console_handler.setLevel(level)
        self.console_handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(self.console_handler)

    def format_record(self, level, message, colored):
        timestamp = datetime.datetime.now().strftime("%H:%M:%S")
        level_str = self.LEVEL_STRING.get(level, '    ')
        if colored:
            message = f"{self.LEVEL_COLORS.get(level, '')}{message}{self.RESET}"
        return f"[{timestamp}] {level_str} : {message}"

    def log(self, level, message):
        # The console and the log file need different renderings of the same record,
        # so the file handler gets its own uncoloured line.
        if level >= self.console_handler.level:
            self.console_handler.handle(self.logger.makeRecord(
                self.logger.name, level, '', 0, self.format_record(level, message, self.color_enabled), None, None))
        if self.file_handler:
            self.file_handler.handle(self.logger.makeRecord(
                self.logger.name, level, '', 0, self.format_record(level, message, False), None, None))

    def debug(self, msg): self.log(logging.DEBUG, msg)
    def info(self, msg): self.log(logging.INFO, msg)
    def warning(self, msg): self.log(logging.WARNING, msg)
    def error(self, msg): self.log(logging.ERROR, msg)
    def critical(self, msg): self.log(logging.CRITICAL, msg)

    def set_level(self, level):
        self.console_handler.setLevel(level)

    def add_file_handler(self, path):
        """
        Mirrors every record, without colour codes, to the given file.

        Args:
        -----
        - path (str): Path of the log file. It is opened in append mode.
        """
        self.remove_file_handler()
        self.file_handler = logging.FileHandler(path, encoding='utf-8')
        self.file_handler.setFormatter(logging.Formatter('%(message)s'))

    def remove_file_handler(self):
        if self.file_handler:
            self.file_handler.close()
            self.file_handler = None

    def disable_color(self):
        self.color_enabled = False

logger = ColorLogger("KERNEL")
