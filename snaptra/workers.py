import logging
import time
from typing import Callable

from PyQt6.QtCore import QObject, QRunnable, QThread, pyqtSignal

logger = logging.getLogger(__name__)


class StageSignals(QObject):
    """Result channel of a StageTask; create it on the thread that should receive the results"""

    finished = pyqtSignal(object, object)  # ticket, result
    failed = pyqtSignal(object, object)  # ticket, exception


class StageTask(QRunnable):
    """Run one blocking stage of a lookup (capture, recognition, translation) on a pool thread.

    The ticket travels with the result so the receiver can tell which lookup
    and which stage it belongs to.
    """

    def __init__(self, ticket, fn: Callable, *args):
        super().__init__()
        self.ticket = ticket
        self.fn = fn
        self.args = args
        self.signals = StageSignals()

    def run(self):
        start_time = time.time()
        try:
            result = self.fn(*self.args)
        except Exception as e:
            logger.debug(f"Stage {self.ticket[1]} failed after {time.time() - start_time:.2f}s: {e}")
            self.signals.failed.emit(self.ticket, e)
            return
        logger.debug(f"Stage {self.ticket[1]} finished in {time.time() - start_time:.2f}s")
        self.signals.finished.emit(self.ticket, result)


class ModelWarmupWorker(QThread):
    """Worker thread to download/preload the on-device translation model from the settings window."""

    warmup_finished = pyqtSignal(bool, str)

    def __init__(self, engine):
        super().__init__()
        self.engine = engine

    def run(self):
        try:
            ok = self.engine.ensure_installed()
            err = "" if ok else (getattr(self.engine, "last_error", "") or "Model warmup failed")
            self.warmup_finished.emit(ok, err)
        except Exception as e:
            logger.error(f"Model warmup error: {e}")
            self.warmup_finished.emit(False, str(e))
