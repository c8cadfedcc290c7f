import logging
from enum import Enum
from typing import Iterable, Optional, Tuple

from .models import CaptureRegion, DisplayInfo, Rect

logger = logging.getLogger(__name__)


class CaptureOrigin(Enum):
    """Where the capture backend puts y=0 within a display"""
    TOP_LEFT = "top_left"
    BOTTOM_LEFT = "bottom_left"


class CaptureRegionPlanner:
    """Compute the rectangle to grab around the cursor"""

    def __init__(self, width: float = 520.0, height: float = 140.0,
                 capture_origin: CaptureOrigin = CaptureOrigin.TOP_LEFT):
        self.width = width
        self.height = height
        self.capture_origin = capture_origin

    @staticmethod
    def display_for_point(point: Tuple[float, float], displays: Iterable[DisplayInfo]) -> Optional[DisplayInfo]:
        """First display (in enumeration order) whose frame contains the point, edges included"""
        x, y = point
        for display in displays:
            if display.geometry.contains(x, y):
                return display
        return None

    def capture_rect(self, point: Tuple[float, float], screen_frame: Rect) -> Rect:
        """Nominal-size rect centred on point, clipped to the display"""
        x, y = point
        raw = Rect(x - self.width / 2, y - self.height / 2, self.width, self.height)
        return raw.intersected(screen_frame)

    def to_device_rect(self, rect: Rect, display: DisplayInfo) -> Rect:
        """Convert a global UI rect to display-local device pixels"""
        frame = display.geometry
        local_x = rect.x - frame.x
        local_y = rect.y - frame.y
        if self.capture_origin is CaptureOrigin.BOTTOM_LEFT:
            local_y = frame.height - (local_y + rect.height)
        scale = display.scale_factor or 1.0
        return Rect(round(local_x * scale), round(local_y * scale),
                    round(rect.width * scale), round(rect.height * scale))

    @staticmethod
    def desktop_device_rect(region: CaptureRegion, desktop: Rect) -> Rect:
        """Shift device_rect into an image of the whole virtual desktop whose top-left is desktop's origin"""
        scale = region.scale_factor or 1.0
        dx = round((region.display_geometry.x - desktop.x) * scale)
        dy = round((region.display_geometry.y - desktop.y) * scale)
        return region.device_rect.translated(dx, dy)

    def plan(self, point: Tuple[float, float], displays: Iterable[DisplayInfo]) -> Optional[CaptureRegion]:
        display = self.display_for_point(point, displays)
        if display is None:
            logger.debug(f"No display contains pointer at {point}")
            return None

        rect = self.capture_rect(point, display.geometry)
        if rect.is_empty():
            return None

        return CaptureRegion(
            rect=rect,
            display_id=display.identity,
            scale_factor=display.scale_factor,
            device_rect=self.to_device_rect(rect, display),
            display_geometry=display.geometry,
        )
