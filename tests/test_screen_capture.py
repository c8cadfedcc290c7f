import pytest
from PyQt6.QtCore import QRect
from PyQt6.QtGui import QColor, QImage, QPainter

from snaptra.models import DisplayInfo, Rect
from snaptra.region_planner import CaptureRegionPlanner
from snaptra.screen_capture import ScreenCapture, _to_png

LEFT = DisplayInfo("left", Rect(0, 0, 200, 100), 2.0)
RIGHT = DisplayInfo("right", Rect(200, 0, 200, 100), 2.0)


def desktop_png(width, height, red_rect):
    image = QImage(width, height, QImage.Format.Format_RGB32)
    image.fill(QColor("white"))
    painter = QPainter(image)
    painter.fillRect(red_rect, QColor("red"))
    painter.end()
    return _to_png(image)


@pytest.fixture
def full_capture(monkeypatch):
    def install(data, desktop):
        monkeypatch.setenv("XDG_CURRENT_DESKTOP", "KDE")
        monkeypatch.setattr(ScreenCapture, "_capture_spectacle", staticmethod(lambda: data))
        monkeypatch.setattr(ScreenCapture, "get_virtual_desktop_geometry", staticmethod(lambda: desktop))
    return install


def assert_all_red(data, width, height):
    image = QImage.fromData(data)
    assert (image.width(), image.height()) == (width, height)
    for x, y in [(0, 0), (width - 1, 0), (0, height - 1), (width - 1, height - 1)]:
        assert image.pixelColor(x, y) == QColor("red")


def test_full_capture_is_cropped_to_device_rect(qtbot, full_capture):
    region = CaptureRegionPlanner(40, 20).plan((60, 35), [LEFT, RIGHT])
    assert region.device_rect == Rect(80, 50, 80, 40)
    full_capture(desktop_png(800, 200, QRect(80, 50, 80, 40)), QRect(0, 0, 400, 100))

    assert_all_red(ScreenCapture._crop_full_capture(region), 80, 40)


def test_full_capture_crop_accounts_for_display_offset(qtbot, full_capture):
    region = CaptureRegionPlanner(40, 20).plan((260, 35), [LEFT, RIGHT])
    assert region.display_id == "right"
    full_capture(desktop_png(800, 200, QRect(480, 50, 80, 40)), QRect(0, 0, 400, 100))

    assert_all_red(ScreenCapture._crop_full_capture(region), 80, 40)


def test_crop_outside_image_returns_none(qtbot):
    image = QImage(100, 100, QImage.Format.Format_RGB32)
    image.fill(QColor("white"))

    assert ScreenCapture._crop_device(image, Rect(200, 200, 50, 50)) is None


def test_no_full_capture_tool_returns_none(qtbot, monkeypatch):
    monkeypatch.setenv("XDG_CURRENT_DESKTOP", "sway")
    region = CaptureRegionPlanner(40, 20).plan((60, 35), [LEFT])

    assert ScreenCapture._crop_full_capture(region) is None
