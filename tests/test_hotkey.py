from types import SimpleNamespace

import pytest

from snaptra.hotkey import TriggerDetector, key_name
from snaptra.models import SingleKey


class FakeListener:
    def __init__(self, on_press, on_release):
        self.on_press = on_press
        self.on_release = on_release
        self.running = False

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def press(self, name):
        self.on_press(SimpleNamespace(name=name))

    def release(self, name):
        self.on_release(SimpleNamespace(name=name))


@pytest.fixture
def detector(qtbot):
    listeners = []

    def factory(on_press, on_release):
        listener = FakeListener(on_press, on_release)
        listeners.append(listener)
        return listener

    det = TriggerDetector(release_confirmation_ms=50, listener_factory=factory)
    det.listeners = listeners
    edges = []
    det.triggered.connect(lambda: edges.append("trigger"))
    det.released.connect(lambda: edges.append("release"))
    det.edges = edges
    yield det
    det.stop()


def test_press_of_binding_triggers(detector):
    assert detector.start(SingleKey.RIGHT_OPTION)
    detector.listeners[-1].press("alt_r")

    assert detector.edges == ["trigger"]
    assert detector.is_held


def test_repeat_press_does_not_retrigger(detector):
    detector.start(SingleKey.RIGHT_OPTION)
    listener = detector.listeners[-1]
    listener.press("alt_r")
    listener.press("alt_r")

    assert detector.edges == ["trigger"]


def test_release_is_confirmed_after_delay(qtbot, detector):
    detector.start(SingleKey.RIGHT_OPTION)
    listener = detector.listeners[-1]
    listener.press("alt_r")

    with qtbot.waitSignal(detector.released, timeout=1000):
        listener.release("alt_r")
        # Not reported synchronously
        assert detector.edges == ["trigger"]

    assert detector.edges == ["trigger", "release"]
    assert not detector.is_held


def test_flicker_inside_window_cancels_release(qtbot, detector):
    detector.start(SingleKey.RIGHT_OPTION)
    listener = detector.listeners[-1]
    listener.press("alt_r")
    listener.release("alt_r")
    listener.press("alt_r")

    qtbot.wait(150)
    assert detector.edges == ["trigger"]
    assert detector.is_held


def test_chord_with_other_modifier_does_not_trigger(detector):
    detector.start(SingleKey.RIGHT_OPTION)
    listener = detector.listeners[-1]
    listener.press("ctrl_l")
    listener.press("alt_r")

    assert detector.edges == []
    assert not detector.is_held


def test_same_family_key_does_not_block_trigger(detector):
    detector.start(SingleKey.RIGHT_SHIFT)
    listener = detector.listeners[-1]
    listener.press("shift_l")
    listener.press("shift_r")

    assert detector.edges == ["trigger"]


def test_other_keys_are_ignored(detector):
    detector.start(SingleKey.LEFT_SHIFT)
    listener = detector.listeners[-1]
    listener.on_press(SimpleNamespace(char="a"))
    listener.press("alt_r")

    assert detector.edges == []


def test_rebinding_discards_pending_release(qtbot, detector):
    detector.start(SingleKey.RIGHT_OPTION)
    first = detector.listeners[-1]
    first.press("alt_r")
    first.release("alt_r")

    detector.start(SingleKey.LEFT_COMMAND)
    qtbot.wait(150)

    assert not first.running
    assert detector.edges == ["trigger"]
    assert detector.binding is SingleKey.LEFT_COMMAND
    assert not detector.is_held


def test_start_without_monitor_is_noop(qtbot):
    det = TriggerDetector(listener_factory=lambda on_press, on_release: None)
    assert det.start(SingleKey.RIGHT_OPTION) is False
    assert not det.is_monitoring


def test_key_name_handles_fn_vk():
    assert key_name(SimpleNamespace(vk=63)) == "fn"
    assert key_name(SimpleNamespace(name="shift_r")) == "shift_r"
    assert key_name(SimpleNamespace(char="x")) is None
