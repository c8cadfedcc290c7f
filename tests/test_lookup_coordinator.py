import threading
from dataclasses import replace

import pytest

from snaptra.errors import RateLimitExceededError
from snaptra.lookup_coordinator import APP_TITLE, LookupCoordinator
from snaptra.models import (
    AppSettings,
    Definition,
    DictionaryEntry,
    DisplayInfo,
    ErrorState,
    Idle,
    Loading,
    LookupTuning,
    NoWordFound,
    RecognizedLine,
    Rect,
    ResultState,
    TokenBox,
    TranslationResult,
)

DISPLAY = DisplayInfo("primary", Rect(0, 0, 1920, 1080), 1.0)

# The capture region is centred on the cursor, so the cursor always lands on
# the normalized point (0.5, 0.5), inside "hello"
HELLO_LINE = RecognizedLine(
    text="hello world",
    bounding_box=Rect(0.1, 0.3, 0.8, 0.4),
    token_boxes=(TokenBox(0, 5, Rect(0.3, 0.3, 0.4, 0.4)), TokenBox(6, 11, Rect(0.75, 0.3, 0.15, 0.4))),
)


class FakeRecognizer:
    def __init__(self, lines=(HELLO_LINE,), error=None):
        self.lines = list(lines)
        self.error = error
        self.calls = []

    def recognize(self, image_data, language):
        self.calls.append((image_data, language))
        if self.error is not None:
            raise self.error
        return self.lines


class FakeRegistry:
    def __init__(self, translate=None, supported=True):
        self._translate = translate or (lambda text, s, t: TranslationResult(word=text, translation="你好"))
        self.supported = supported
        self.calls = []
        self.aborts = 0

    def translate(self, text, source_language, target_language):
        self.calls.append((text, source_language, target_language))
        return self._translate(text, source_language, target_language)

    def supports_language_pair(self, source_language, target_language):
        return self.supported

    def abort_in_flight(self):
        self.aborts += 1


class FakePermissions:
    def __init__(self, granted=True):
        self.granted = granted

    def has_screen_capture(self):
        return self.granted


class FakeDictionary:
    def lookup(self, word):
        return DictionaryEntry(word=word, phonetic="/həˈləʊ/",
                               definitions=(Definition(part_of_speech="exclamation", meaning="used as a greeting"),))


class Harness:
    def __init__(self, qtbot, settings=None, registry=None, recognizer=None, capture=None,
                 permissions=None, dictionary=None):
        self.qtbot = qtbot
        self.settings = settings or AppSettings(tuning=LookupTuning(debounce_ms=50, translation_timeout_s=5.0))
        self.position = (960.0, 540.0)
        self.registry = registry or FakeRegistry()
        self.recognizer = recognizer or FakeRecognizer()
        self.captures = []
        self._capture = capture or (lambda region: b"png")
        self.coordinator = LookupCoordinator(
            settings_provider=lambda: self.settings,
            registry=self.registry,
            capture_service=self.capture,
            recognizer=self.recognizer,
            dictionary=dictionary,
            permissions=permissions,
            cursor_position=lambda: self.position,
            screens_provider=lambda: [DISPLAY],
        )
        self.states = []
        self.notifications = []
        self.hidden = []
        self.interactions = []
        self.debug_regions = []
        c = self.coordinator
        c.state_changed.connect(self.states.append)
        c.notification_requested.connect(lambda title, body: self.notifications.append((title, body)))
        c.overlay_hidden.connect(lambda: self.hidden.append(True))
        c.interaction_changed.connect(self.interactions.append)
        c.debug_region_changed.connect(lambda region, boxes: self.debug_regions.append((region, boxes)))

    def capture(self, region):
        self.captures.append(region)
        return self._capture(region)

    def results(self):
        return [s for s in self.states if isinstance(s, ResultState)]

    def errors(self):
        return [s for s in self.states if isinstance(s, ErrorState)]

    def wait_for_state(self, kind, count=1, timeout=3000):
        self.qtbot.waitUntil(lambda: len([s for s in self.states if isinstance(s, kind)]) >= count, timeout=timeout)

    def wait_idle(self, timeout=3000):
        self.qtbot.waitUntil(lambda: self.coordinator.pending_stage_count() == 0, timeout=timeout)

    def close(self):
        self.coordinator.thread_pool.waitForDone(5000)
        self.coordinator.translation_pool.waitForDone(5000)


@pytest.fixture
def harness(qtbot):
    created = []

    def make(**kwargs):
        h = Harness(qtbot, **kwargs)
        created.append(h)
        return h

    yield make
    for h in created:
        h.close()


def test_hover_produces_result(harness):
    h = harness()

    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    assert h.states[0] == Loading("hello")
    result = h.results()[0].content
    assert result.word == "hello"
    assert result.translation == "你好"
    assert h.registry.calls == [("hello", "en", "zh-Hans")]
    assert h.captures[0].rect == Rect(700, 470, 520, 140)
    assert h.recognizer.calls == [(b"png", "en")]
    # Continuous mode never makes the overlay interactive
    assert h.interactions == [False, False]
    assert h.coordinator.active_identity is None


def test_static_mode_result_is_interactive_and_dismissable(harness):
    h = harness(settings=AppSettings(continuous_translation=False))

    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)
    assert h.interactions[-1] is True

    h.coordinator.dismiss()
    assert isinstance(h.states[-1], Idle)
    assert h.hidden
    assert h.interactions[-1] is False


def test_dismiss_is_ignored_in_continuous_mode(harness):
    h = harness()
    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    h.coordinator.dismiss()

    assert isinstance(h.states[-1], ResultState)
    assert not h.hidden


def test_release_hides_overlay(harness):
    h = harness()
    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    h.coordinator.handle_release()

    assert isinstance(h.states[-1], Idle)
    assert h.hidden
    assert h.debug_regions[-1] == (None, [])
    assert not h.coordinator.is_held


def test_repeated_trigger_while_held_is_ignored(harness):
    h = harness()
    h.coordinator.handle_trigger()
    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)
    h.wait_idle()

    assert len(h.captures) == 1


def test_newer_lookup_supersedes_blocked_translation(qtbot, harness):
    first_started = threading.Event()
    release_first = threading.Event()
    calls = []

    def translate(text, source, target):
        calls.append(text)
        if len(calls) == 1:
            first_started.set()
            release_first.wait(5)
            return TranslationResult(word=text, translation="stale")
        return TranslationResult(word=text, translation="fresh")

    h = harness(registry=FakeRegistry(translate=translate))
    try:
        h.coordinator.handle_trigger()
        qtbot.waitUntil(first_started.is_set, timeout=3000)

        h.coordinator.handle_pointer_moved(1060.0, 540.0)
        h.wait_for_state(ResultState)
        assert h.registry.aborts == 1
    finally:
        release_first.set()
    h.close()
    qtbot.wait(100)

    assert [r.content.translation for r in h.results()] == ["fresh"]
    assert isinstance(h.states[-1], ResultState)
    assert h.captures[1].rect == Rect(800, 470, 520, 140)


def test_stalled_translations_do_not_block_next_capture(qtbot, harness):
    release = threading.Event()
    lock = threading.Lock()
    calls = []

    def translate(text, source, target):
        with lock:
            calls.append(text)
            index = len(calls)
        if index <= 4:
            release.wait(10)
            return TranslationResult(word=text, translation="stale")
        return TranslationResult(word=text, translation="fresh")

    h = harness(registry=FakeRegistry(translate=translate))
    try:
        h.coordinator.handle_trigger()
        qtbot.waitUntil(lambda: len(calls) == 1, timeout=3000)
        for i in range(2, 5):
            h.coordinator.handle_pointer_moved(960.0 + 20 * i, 540.0)
            qtbot.waitUntil(lambda: len(calls) == i, timeout=3000)

        h.coordinator.handle_pointer_moved(1100.0, 540.0)
        h.wait_for_state(ResultState, timeout=2000)

        assert len(h.captures) == 5
        assert [r.content.translation for r in h.results()] == ["fresh"]
    finally:
        release.set()
    h.close()


def test_small_moves_are_coalesced_and_filtered(qtbot, harness):
    h = harness()
    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    # 3 then 8 units inside one debounce window: one lookup for the last sample
    h.coordinator.handle_pointer_moved(963.0, 540.0)
    h.coordinator.handle_pointer_moved(968.0, 540.0)
    h.wait_for_state(ResultState, count=2)
    h.wait_idle()
    assert len(h.captures) == 2

    # Below the displacement threshold on both axes
    h.coordinator.handle_pointer_moved(971.0, 543.0)
    qtbot.wait(150)
    assert len(h.captures) == 2

    # Vertical movement alone is enough
    h.coordinator.handle_pointer_moved(968.0, 560.0)
    h.wait_for_state(ResultState, count=3)
    assert len(h.captures) == 3


def test_pointer_moves_ignored_when_not_held(qtbot, harness):
    h = harness()
    h.coordinator.handle_pointer_moved(1200.0, 540.0)
    qtbot.wait(120)

    assert h.captures == []
    assert h.states == []


def test_rate_limit_surfaces_without_retry(harness):
    def translate(text, source, target):
        raise RateLimitExceededError()

    h = harness(registry=FakeRegistry(translate=translate))
    h.coordinator.handle_trigger()
    h.wait_for_state(ErrorState)
    h.wait_idle()

    assert h.errors()[0].message == "Rate limit exceeded, please try again later"
    assert h.notifications == [(APP_TITLE, "Rate limit exceeded, please try again later")]
    assert len(h.registry.calls) == 1


def test_unexpected_error_is_wrapped(harness):
    def translate(text, source, target):
        raise ValueError("boom")

    h = harness(registry=FakeRegistry(translate=translate))
    h.coordinator.handle_trigger()
    h.wait_for_state(ErrorState)

    assert h.errors()[0].message == "Translation failed: boom"


def test_same_language_echoes_with_dictionary(harness):
    settings = AppSettings(source_language="en", target_language="en-US")
    h = harness(settings=settings, dictionary=FakeDictionary())

    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    content = h.results()[0].content
    assert content.translation == "hello"
    assert content.phonetic == "/həˈləʊ/"
    assert content.definitions[0].meaning == "used as a greeting"
    assert h.registry.calls == []


def test_translation_timeout(qtbot, harness):
    release = threading.Event()

    def translate(text, source, target):
        release.wait(5)
        return TranslationResult(word=text, translation="late")

    settings = AppSettings(tuning=LookupTuning(translation_timeout_s=0.2))
    h = harness(settings=settings, registry=FakeRegistry(translate=translate))
    try:
        h.coordinator.handle_trigger()
        h.wait_for_state(ErrorState)
    finally:
        release.set()
    h.close()
    qtbot.wait(100)

    assert h.errors()[0].message == "Translation timeout. Please try again."
    assert h.registry.aborts == 1
    assert h.results() == []


def test_no_word_hides_overlay(harness):
    h = harness(recognizer=FakeRecognizer(lines=[]))

    h.coordinator.handle_trigger()
    h.qtbot.waitUntil(lambda: bool(h.hidden), timeout=3000)

    assert h.states == []
    assert h.notifications == []
    assert h.coordinator.active_identity is None


def test_no_word_in_debug_mode_is_reported(harness):
    h = harness(recognizer=FakeRecognizer(lines=[]), settings=AppSettings(debug_show_ocr_region=True))

    h.coordinator.handle_trigger()
    h.wait_for_state(NoWordFound)

    assert h.states[0] == Loading(None)
    region, boxes = h.debug_regions[0]
    assert region.rect == Rect(700, 470, 520, 140)


def test_debug_mode_reports_word_boxes_in_screen_space(harness):
    h = harness(settings=AppSettings(debug_show_ocr_region=True))

    h.coordinator.handle_trigger()
    h.wait_for_state(ResultState)

    boxes = [boxes for region, boxes in h.debug_regions if boxes]
    assert boxes[0][0] == Rect(700 + 0.3 * 520, 470 + 0.3 * 140, 0.4 * 520, 0.4 * 140)


def test_recognition_failure_counts_as_no_word(harness):
    h = harness(recognizer=FakeRecognizer(error=RuntimeError("ocr crashed")))

    h.coordinator.handle_trigger()
    h.qtbot.waitUntil(lambda: bool(h.hidden), timeout=3000)

    assert h.errors() == []


def test_permission_denied(harness):
    h = harness(permissions=FakePermissions(granted=False))

    h.coordinator.handle_trigger()

    assert h.errors()[0].message == "Enable screen capture permission"
    assert h.captures == []


@pytest.mark.parametrize("capture", [lambda region: None, lambda region: b""])
def test_empty_capture_fails(harness, capture):
    h = harness(capture=capture)

    h.coordinator.handle_trigger()
    h.wait_for_state(ErrorState)

    assert h.errors()[0].message == "Capture failed"
    assert h.recognizer.calls == []


def test_capture_exception_becomes_capture_failed(harness):
    def capture(region):
        raise OSError("display went away")

    h = harness(capture=capture)
    h.coordinator.handle_trigger()
    h.wait_for_state(ErrorState)

    assert h.errors()[0].message == "Capture failed"


def test_cursor_outside_every_display(harness):
    h = harness()
    h.position = (5000.0, 5000.0)

    h.coordinator.handle_trigger()

    assert h.errors()[0].message == "Capture failed"
    assert h.captures == []


def test_screen_change_cancels_held_lookup(qtbot, harness):
    release = threading.Event()

    def translate(text, source, target):
        release.wait(5)
        return TranslationResult(word=text, translation="late")

    h = harness(registry=FakeRegistry(translate=translate))
    try:
        h.coordinator.handle_trigger()
        h.wait_for_state(Loading)
        h.coordinator.handle_screen_configuration_changed()
        assert isinstance(h.states[-1], Idle)
    finally:
        release.set()
    h.close()
    qtbot.wait(100)

    assert h.results() == []


def test_language_availability_warning(harness):
    h = harness(registry=FakeRegistry(supported=False))

    assert h.coordinator.check_language_availability() is False
    assert h.notifications == [(APP_TITLE, "Translation not supported for this language pair.")]

    h.settings = replace(h.settings, target_language="en")
    assert h.coordinator.check_language_availability() is True
