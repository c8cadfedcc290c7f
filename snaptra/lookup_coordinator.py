import logging
from typing import Callable, Dict, Optional, Tuple

from PyQt6.QtCore import QObject, QThreadPool, QTimer, pyqtSignal, pyqtSlot

from .errors import (
    CaptureFailedError,
    LookupCancelledError,
    PermissionDeniedError,
    RequestTimeoutError,
    SnapTraError,
)
from .models import (
    AppSettings,
    CaptureRegion,
    ErrorState,
    Idle,
    Loading,
    LookupIdentity,
    LookupPhase,
    LookupTuning,
    NoWordFound,
    OverlayContent,
    OverlayState,
    ResultState,
    TranslationResult,
    Word,
    language_key,
)
from .region_planner import CaptureOrigin, CaptureRegionPlanner
from .segmentation import WordSegmenter
from .selection import WordSelector
from .workers import StageTask

logger = logging.getLogger(__name__)

APP_TITLE = "SnapTra"

STAGE_CAPTURE = "capture"
STAGE_RECOGNIZE = "recognize"
STAGE_TRANSLATE = "translate"


class _LookupContext:
    """What the active lookup has learned so far; replaced wholesale per identity"""

    def __init__(self, identity: LookupIdentity, settings: AppSettings, position: Tuple[float, float]):
        self.identity = identity
        self.settings = settings
        self.position = position
        self.region: Optional[CaptureRegion] = None
        self.word: Optional[Word] = None


class LookupCoordinator(QObject):
    """Drive the hover lookup chain: capture -> recognize -> select -> translate -> present.

    Lives on the GUI thread, which is the only writer of the active identity and
    the overlay state. Blocking stages run on a QThreadPool; their results come
    back through queued signals tagged with (identity, stage) and every one of
    them passes _guard() before it can change anything.
    """

    state_changed = pyqtSignal(object)  # OverlayState
    overlay_hidden = pyqtSignal()
    interaction_changed = pyqtSignal(bool)
    notification_requested = pyqtSignal(str, str)  # title, body
    debug_region_changed = pyqtSignal(object, list)  # CaptureRegion or None, word boxes in screen space
    phase_changed = pyqtSignal(object)  # LookupPhase

    def __init__(self, settings_provider: Callable[[], AppSettings], registry, capture_service: Callable,
                 recognizer, dictionary=None, permissions=None,
                 cursor_position: Callable[[], Tuple[float, float]] = None,
                 screens_provider: Callable = None, pointer_tracker=None,
                 thread_pool: QThreadPool = None, translation_pool: QThreadPool = None,
                 capture_origin: CaptureOrigin = CaptureOrigin.TOP_LEFT, parent=None):
        super().__init__(parent)
        self.settings_provider = settings_provider
        self.registry = registry
        self.capture_service = capture_service
        self.recognizer = recognizer
        self.dictionary = dictionary
        self.permissions = permissions
        self.cursor_position = cursor_position
        self.screens_provider = screens_provider
        self.pointer_tracker = pointer_tracker

        if thread_pool is None:
            thread_pool = QThreadPool(self)
            thread_pool.setMaxThreadCount(4)
        self.thread_pool = thread_pool
        # Network calls get their own pool: superseded requests keep running until
        # they return, and must not queue ahead of the next capture
        if translation_pool is None:
            translation_pool = QThreadPool(self)
            translation_pool.setMaxThreadCount(8)
        self.translation_pool = translation_pool

        tuning = settings_provider().tuning
        self.planner = CaptureRegionPlanner(tuning.capture_width, tuning.capture_height, capture_origin)
        self.segmenter = WordSegmenter(tuning.box_similarity_tolerance)
        self.selector = WordSelector(tuning.hit_tolerance)
        self.displacement_threshold = tuning.displacement_threshold
        self.translation_timeout_s = tuning.translation_timeout_s

        self.is_held = False
        self.state: OverlayState = Idle()
        self.phase = LookupPhase.IDLE
        self._active: Optional[LookupIdentity] = None
        self._context: Optional[_LookupContext] = None
        self._last_lookup_position: Optional[Tuple[float, float]] = None
        self._pending_position: Optional[Tuple[float, float]] = None
        # Keeps each task's signal object alive until its result has been delivered
        self._pending_signals: Dict[tuple, object] = {}

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(tuning.debounce_ms)
        self._debounce.timeout.connect(self._on_debounce_elapsed)

        self._translation_timer = QTimer(self)
        self._translation_timer.setSingleShot(True)
        self._translation_timer.timeout.connect(self._on_translation_timeout)
        self._timeout_identity: Optional[LookupIdentity] = None

        if self.pointer_tracker is not None:
            self.pointer_tracker.moved.connect(self.handle_pointer_moved)

    @property
    def active_identity(self) -> Optional[LookupIdentity]:
        return self._active

    def apply_tuning(self, tuning: LookupTuning):
        self.planner.width = tuning.capture_width
        self.planner.height = tuning.capture_height
        self.segmenter.box_similarity_tolerance = tuning.box_similarity_tolerance
        self.selector.tolerance = tuning.hit_tolerance
        self.displacement_threshold = tuning.displacement_threshold
        self.translation_timeout_s = tuning.translation_timeout_s
        self._debounce.setInterval(tuning.debounce_ms)
        if self.pointer_tracker is not None:
            self.pointer_tracker.set_interval(tuning.pointer_poll_ms)

    # --- Trigger edges and pointer movement -------------------------------

    @pyqtSlot()
    def handle_trigger(self):
        if self.is_held:
            return
        settings = self.settings_provider()
        self.apply_tuning(settings.tuning)
        self.is_held = True
        self.interaction_changed.emit(False)
        self._last_lookup_position = self._current_position()
        if settings.continuous_translation and self.pointer_tracker is not None:
            self.pointer_tracker.start()
        self._start_lookup(settings)

    @pyqtSlot()
    def handle_release(self):
        self.is_held = False
        self._stop_tracking()
        self._cancel_active()
        self._hide_all()

    @pyqtSlot(float, float)
    def handle_pointer_moved(self, x: float, y: float):
        if not self.is_held:
            return
        if not self.settings_provider().continuous_translation:
            return
        self._pending_position = (x, y)
        # Restarting the single-shot timer drops the previous sample
        self._debounce.start()

    @pyqtSlot()
    def _on_debounce_elapsed(self):
        if not self.is_held:
            return
        position = self._pending_position or self._current_position()
        last = self._last_lookup_position
        if last is not None:
            dx = abs(position[0] - last[0])
            dy = abs(position[1] - last[1])
            if dx < self.displacement_threshold and dy < self.displacement_threshold:
                logger.debug(f"Movement ({dx:.1f}, {dy:.1f}) below threshold, ignored")
                return
        self._last_lookup_position = position
        self._start_lookup(self.settings_provider(), position)

    @pyqtSlot()
    def dismiss(self):
        """Close a static result; only meaningful when continuous translation is off"""
        if self.settings_provider().continuous_translation:
            return
        self._cancel_active()
        self._hide_all()

    @pyqtSlot()
    def cancel_lookup(self):
        """Drop whatever is in flight and clear the overlay (language pair changed)"""
        self._cancel_active()
        if not isinstance(self.state, Idle):
            self._hide_all()

    @pyqtSlot()
    def handle_screen_configuration_changed(self):
        if not self.is_held:
            return
        logger.info("Screen configuration changed, cancelling lookup")
        self._cancel_active()
        self._hide_all()

    def check_language_availability(self) -> bool:
        """Warn through a notification when the selected engine cannot serve the current pair"""
        settings = self.settings_provider()
        if language_key(settings.source_language) == language_key(settings.target_language):
            return True
        if self.registry.supports_language_pair(settings.source_language, settings.target_language):
            return True
        self.notification_requested.emit(APP_TITLE, "Translation not supported for this language pair.")
        return False

    # --- The lookup chain ---------------------------------------------------

    def _start_lookup(self, settings: AppSettings, position: Tuple[float, float] = None):
        self._cancel_active()
        identity = LookupIdentity.mint()
        self._active = identity
        position = position or self._current_position()
        context = _LookupContext(identity, settings, position)
        self._context = context
        logger.debug(f"Lookup {identity.serial} started at {position}")

        if self.permissions is not None and not self.permissions.has_screen_capture():
            self._fail(identity, PermissionDeniedError())
            return

        if settings.debug_show_ocr_region:
            self._publish(Loading(None))

        displays = self.screens_provider() if self.screens_provider is not None else []
        region = self.planner.plan(position, displays)
        if region is None:
            logger.warning(f"No display contains {position}")
            self._fail(identity, CaptureFailedError())
            return
        context.region = region
        if settings.debug_show_ocr_region:
            self.debug_region_changed.emit(region, [])
        else:
            self.debug_region_changed.emit(None, [])

        self._set_phase(LookupPhase.CAPTURING)
        self._submit(identity, STAGE_CAPTURE, self.capture_service, region)

    def _guard(self, identity: LookupIdentity) -> bool:
        """True only while identity is the active lookup; everything else is stale"""
        return self._active is not None and self._active == identity and self._context is not None

    def _submit(self, identity: LookupIdentity, stage: str, fn: Callable, *args):
        ticket = (identity, stage)
        task = StageTask(ticket, fn, *args)
        task.signals.finished.connect(self._on_stage_finished)
        task.signals.failed.connect(self._on_stage_failed)
        self._pending_signals[ticket] = task.signals
        pool = self.translation_pool if stage == STAGE_TRANSLATE else self.thread_pool
        pool.start(task)

    @pyqtSlot(object, object)
    def _on_stage_finished(self, ticket, result):
        self._pending_signals.pop(ticket, None)
        identity, stage = ticket
        if not self._guard(identity):
            logger.debug(f"Discarding stale {stage} result of lookup {identity.serial}")
            return
        if stage == STAGE_CAPTURE:
            self._on_captured(identity, result)
        elif stage == STAGE_RECOGNIZE:
            self._on_recognized(identity, result)
        elif stage == STAGE_TRANSLATE:
            self._on_translated(identity, result)

    @pyqtSlot(object, object)
    def _on_stage_failed(self, ticket, error):
        self._pending_signals.pop(ticket, None)
        identity, stage = ticket
        if not self._guard(identity):
            logger.debug(f"Discarding stale {stage} failure of lookup {identity.serial}: {error}")
            return
        if stage == STAGE_RECOGNIZE:
            logger.warning(f"Text recognition failed: {error}")
            self._no_word(identity)
            return
        if stage == STAGE_TRANSLATE:
            self._translation_timer.stop()
        if stage == STAGE_CAPTURE and not isinstance(error, SnapTraError):
            logger.error(f"Screen capture error: {error}")
            error = CaptureFailedError()
        self._fail(identity, error)

    def _on_captured(self, identity: LookupIdentity, image_data: Optional[bytes]):
        if not image_data:
            self._fail(identity, CaptureFailedError())
            return
        self._set_phase(LookupPhase.RECOGNIZING)
        self._submit(identity, STAGE_RECOGNIZE, self.recognizer.recognize,
                     image_data, self._context.settings.source_language)

    def _on_recognized(self, identity: LookupIdentity, lines):
        context = self._context
        settings = context.settings
        self._set_phase(LookupPhase.SELECTING)

        words = self.segmenter.segment(lines or [])
        if settings.debug_show_ocr_region:
            self.debug_region_changed.emit(context.region, [context.region.denormalize(w.bounding_box) for w in words])

        point = context.region.normalize_point(*context.position)
        word = self.selector.select(words, point)
        if word is None:
            logger.debug(f"No word under cursor among {len(words)} candidates")
            self._no_word(identity)
            return

        context.word = word
        logger.info(f"Selected word '{word.text}'")
        self._publish(Loading(word.text))
        self._set_phase(LookupPhase.TRANSLATING)

        source, target = settings.source_language, settings.target_language
        if language_key(source) == language_key(target):
            self._submit(identity, STAGE_TRANSLATE, self._echo_with_dictionary, word.text)
        else:
            self._submit(identity, STAGE_TRANSLATE, self.registry.translate, word.text, source, target)
        self._timeout_identity = identity
        self._translation_timer.start(int(self.translation_timeout_s * 1000))

    def _echo_with_dictionary(self, text: str) -> TranslationResult:
        entry = self.dictionary.lookup(text) if self.dictionary is not None else None
        if entry is None:
            return TranslationResult(word=text, translation=text)
        return TranslationResult(word=text, translation=text, phonetic=entry.phonetic,
                                 definitions=entry.definitions)

    def _on_translated(self, identity: LookupIdentity, result: TranslationResult):
        self._translation_timer.stop()
        self._set_phase(LookupPhase.PRESENTING)
        self._finish(identity, ResultState(OverlayContent.from_result(result)))

    @pyqtSlot()
    def _on_translation_timeout(self):
        identity = self._timeout_identity
        if identity is None or not self._guard(identity):
            return
        logger.warning(f"Translation of lookup {identity.serial} timed out after {self.translation_timeout_s}s")
        self.registry.abort_in_flight()
        self._fail(identity, RequestTimeoutError("Translation timeout. Please try again."))

    def _no_word(self, identity: LookupIdentity):
        settings = self._context.settings
        if settings.debug_show_ocr_region:
            self._finish(identity, NoWordFound())
            return
        self._clear_active()
        if not isinstance(self.state, Idle):
            self._publish(Idle())
        self.overlay_hidden.emit()

    def _fail(self, identity: LookupIdentity, error: Exception):
        if isinstance(error, LookupCancelledError):
            logger.debug(f"Lookup {identity.serial} cancelled")
            self._clear_active()
            return
        if isinstance(error, SnapTraError):
            message = error.message
        else:
            logger.error(f"Unexpected lookup error: {error}")
            message = f"Translation failed: {error}"
        logger.warning(f"Lookup {identity.serial} failed: {message}")
        self._finish(identity, ErrorState(message))

    def _finish(self, identity: LookupIdentity, state: OverlayState):
        """Publish the terminal state of identity; nothing else may publish for it afterwards"""
        if not self._guard(identity):
            return
        self._clear_active()
        self._publish(state)

    # --- State publication and cancellation --------------------------------

    def _publish(self, state: OverlayState):
        self.state = state
        self.state_changed.emit(state)
        if isinstance(state, ErrorState):
            self.notification_requested.emit(APP_TITLE, state.message)
        elif isinstance(state, ResultState):
            self.interaction_changed.emit(not self.settings_provider().continuous_translation)

    def _clear_active(self):
        self._active = None
        self._context = None
        self._timeout_identity = None
        self._translation_timer.stop()
        self._set_phase(LookupPhase.IDLE)

    def _cancel_active(self):
        if self._active is None:
            return
        logger.debug(f"Cancelling lookup {self._active.serial} in {self.phase.value}")
        if self.phase == LookupPhase.TRANSLATING:
            self.registry.abort_in_flight()
        self._clear_active()

    def _hide_all(self):
        self.state = Idle()
        self.state_changed.emit(self.state)
        self.interaction_changed.emit(False)
        self.overlay_hidden.emit()
        self.debug_region_changed.emit(None, [])

    def _stop_tracking(self):
        self._debounce.stop()
        self._pending_position = None
        self._last_lookup_position = None
        if self.pointer_tracker is not None:
            self.pointer_tracker.stop()

    def _set_phase(self, phase: LookupPhase):
        if phase != self.phase:
            self.phase = phase
            self.phase_changed.emit(phase)

    def _current_position(self) -> Tuple[float, float]:
        if self.cursor_position is None:
            return 0.0, 0.0
        return self.cursor_position()

    def pending_stage_count(self) -> int:
        return len(self._pending_signals)
