import logging
from dataclasses import dataclass

from .hotkey import keyboard
from .screen_capture import SCREENSHOT_AVAILABLE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionStatus:
    screen_capture: bool
    input_monitoring: bool


class PermissionManager:
    """Report whether the platform lets us grab the screen and watch the keyboard"""

    def __init__(self):
        self.status = PermissionStatus(screen_capture=False, input_monitoring=False)
        self.refresh_status()

    def refresh_status(self) -> PermissionStatus:
        self.status = PermissionStatus(
            screen_capture=SCREENSHOT_AVAILABLE,
            input_monitoring=keyboard is not None,
        )
        logger.debug(f"Permission status: {self.status}")
        return self.status

    def has_screen_capture(self) -> bool:
        return self.status.screen_capture
