import logging
from typing import Callable, Optional, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot

from .models import SingleKey

logger = logging.getLogger(__name__)

try:
    from pynput import keyboard
except ImportError:
    # pynput raises ImportError when no input backend can be loaded (e.g. headless)
    keyboard = None

# pynput key names reported for each binding; left-hand keys are often reported
# under the generic name ("shift", "alt", ...)
BINDING_KEY_NAMES = {
    SingleKey.LEFT_SHIFT: {"shift", "shift_l"},
    SingleKey.RIGHT_SHIFT: {"shift_r"},
    SingleKey.LEFT_CONTROL: {"ctrl", "ctrl_l"},
    SingleKey.RIGHT_CONTROL: {"ctrl_r"},
    SingleKey.LEFT_OPTION: {"alt", "alt_l"},
    SingleKey.RIGHT_OPTION: {"alt_r", "alt_gr"},
    SingleKey.LEFT_COMMAND: {"cmd", "cmd_l"},
    SingleKey.RIGHT_COMMAND: {"cmd_r"},
    SingleKey.FUNCTION: {"fn"},
}

# A held key only blocks the trigger when it belongs to a different family than
# the binding. Both sides of one modifier share a single OS modifier flag, so Left
# Shift held while Right Shift is pressed still triggers a Right Shift binding.
MODIFIER_FAMILIES = {
    "shift": {"shift", "shift_l", "shift_r"},
    "ctrl": {"ctrl", "ctrl_l", "ctrl_r"},
    "alt": {"alt", "alt_l", "alt_r", "alt_gr"},
    "cmd": {"cmd", "cmd_l", "cmd_r"},
}

# macOS reports Fn as a bare virtual key code
_FN_VK = 63


def key_name(key) -> Optional[str]:
    """Normalize a pynput key object to a name used by the binding tables"""
    name = getattr(key, "name", None)
    if name:
        return name
    if getattr(key, "vk", None) == _FN_VK:
        return "fn"
    return None


def family_of(name: str) -> Optional[str]:
    for family, names in MODIFIER_FAMILIES.items():
        if name in names:
            return family
    return None


def _default_listener_factory(on_press: Callable, on_release: Callable):
    if keyboard is None:
        return None
    return keyboard.Listener(on_press=on_press, on_release=on_release)


class TriggerDetector(QObject):
    """Watch system-wide modifier keys and report hold/release edges for one binding.

    pynput delivers events on its own thread; they are forwarded through a
    queued signal so the held state is only ever touched on this object's thread.
    """

    triggered = pyqtSignal()
    released = pyqtSignal()

    _key_event = pyqtSignal(object, bool)  # key name, pressed

    def __init__(self, release_confirmation_ms: int = 150, listener_factory: Callable = None, parent=None):
        super().__init__(parent)
        self.listener_factory = listener_factory or _default_listener_factory
        self.binding: Optional[SingleKey] = None
        self.is_held = False
        self._listener = None
        self._pressed: Set[str] = set()

        self._pending_release = QTimer(self)
        self._pending_release.setSingleShot(True)
        self._pending_release.setInterval(release_confirmation_ms)
        self._pending_release.timeout.connect(self._confirm_release)

        self._key_event.connect(self._handle_key_event)

    @property
    def is_monitoring(self) -> bool:
        return self._listener is not None

    def set_release_confirmation_ms(self, interval: int):
        self._pending_release.setInterval(interval)

    def start(self, binding: SingleKey) -> bool:
        """Install the key monitor for binding; returns False when it cannot be installed"""
        self.stop()
        try:
            listener = self.listener_factory(self._on_press, self._on_release)
        except Exception as e:
            logger.error(f"Failed to create keyboard monitor: {e}")
            listener = None
        if listener is None:
            logger.warning("Keyboard monitoring unavailable; hotkey disabled")
            return False

        try:
            listener.start()
        except Exception as e:
            logger.error(f"Failed to start keyboard monitor: {e}")
            return False

        self._listener = listener
        self.binding = binding
        logger.info(f"Hotkey monitor started for {binding.title}")
        return True

    def stop(self):
        self._pending_release.stop()
        if self._listener is not None:
            try:
                self._listener.stop()
            except Exception as e:
                logger.debug(f"Keyboard monitor stop error: {e}")
            self._listener = None
        self.binding = None
        self.is_held = False
        self._pressed.clear()

    # pynput thread
    def _on_press(self, key):
        name = key_name(key)
        if name:
            self._key_event.emit(name, True)

    def _on_release(self, key):
        name = key_name(key)
        if name:
            self._key_event.emit(name, False)

    @pyqtSlot(object, bool)
    def _handle_key_event(self, name: str, pressed: bool):
        if self.binding is None:
            return
        if pressed:
            self._pressed.add(name)
        else:
            self._pressed.discard(name)

        binding_names = BINDING_KEY_NAMES[self.binding]
        binding_present = bool(self._pressed & binding_names)

        if binding_present:
            # Flag came back inside the confirmation window: it was flicker
            self._pending_release.stop()

        if pressed and name in binding_names and not self.is_held:
            if self._other_modifiers_present(binding_names):
                logger.debug(f"Ignoring {name}: part of a chord {sorted(self._pressed)}")
                return
            self.is_held = True
            self.triggered.emit()
        elif not binding_present and self.is_held:
            self._pending_release.start()

    def _other_modifiers_present(self, binding_names: Set[str]) -> bool:
        binding_families = {family_of(n) for n in binding_names}
        for name in self._pressed - binding_names:
            family = family_of(name)
            if family is not None and family not in binding_families:
                return True
        return False

    @pyqtSlot()
    def _confirm_release(self):
        if self.binding is None or not self.is_held:
            return
        if self._pressed & BINDING_KEY_NAMES[self.binding]:
            return
        self.is_held = False
        self.released.emit()
