import logging

from snaptra.logging_config import setup_logger


def test_setup_is_idempotent_and_writes_log_file(tmp_path):
    log_file = tmp_path / "snaptra.log"
    logger = setup_logger("snaptra.test_logging", logging.DEBUG, log_file=str(log_file))
    setup_logger("snaptra.test_logging", logging.DEBUG, log_file=str(log_file))

    assert len(logger.handlers) == 2
    logger.debug("hello from the test")
    for handler in logger.handlers:
        handler.flush()

    assert "hello from the test" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("urllib3").level == logging.WARNING

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_level_can_be_raised_later():
    logger = setup_logger("snaptra.test_level", logging.INFO)
    setup_logger("snaptra.test_level", logging.DEBUG)

    assert logger.level == logging.DEBUG
    assert all(h.level == logging.DEBUG for h in logger.handlers)
