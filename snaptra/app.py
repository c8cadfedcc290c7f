"""
SnapTra - hold a key, hover a word, read the translation
A PyQt6 hover-to-translate tool
"""

import argparse
import logging
import sys

from PyQt6.QtGui import QIcon
from PyQt6.QtWidgets import QApplication

from .logging_config import setup_logger
from .main_window import MainWindow
from .screen_capture import SCREENSHOT_AVAILABLE


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="snaptra", description="Hover-to-translate lookup tool")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--show-settings", action="store_true", help="open the settings window on start")
    parser.add_argument("--log-file", metavar="PATH", help="also write the log to PATH")
    return parser.parse_known_args(argv)


def main(argv=None):
    """Main application entry point"""
    args, qt_args = parse_args(argv)
    logger = setup_logger(level=logging.DEBUG if args.debug else logging.INFO, log_file=args.log_file)

    app = QApplication([sys.argv[0]] + qt_args)
    app.setApplicationName("SnapTra")
    app.setWindowIcon(QIcon("snaptra.png"))
    # The app lives in the tray; closing the settings window must not quit it
    app.setQuitOnLastWindowClosed(False)

    if not SCREENSHOT_AVAILABLE:
        logger.warning("No screenshot backend available; lookups will report a permission error")

    window = MainWindow()
    if args.show_settings:
        window.show_and_activate()

    exit_code = app.exec()
    window.shutdown()
    return exit_code
