import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries that log every request or image decode at DEBUG
NOISY_LOGGERS = ("urllib3", "PIL", "transformers", "huggingface_hub")


def setup_logger(name="snaptra", level=logging.INFO, log_file=None):
    """Configure the application logger: stdout always, plus log_file when given"""
    logger = logging.getLogger(name)
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')

    if not any(getattr(h, "_snaptra_console", False) for h in logger.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        console._snaptra_console = True
        logger.addHandler(console)

    if log_file and not any(getattr(h, "baseFilename", None) == os.path.abspath(log_file) for h in logger.handlers):
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Applied on every call so --debug can raise verbosity after import
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    return logger
