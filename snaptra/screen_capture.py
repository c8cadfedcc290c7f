import logging
import os
import shutil
import subprocess
import tempfile
from typing import List, Optional
from PyQt6.QtGui import QImage, QGuiApplication
from PyQt6.QtCore import QBuffer, QIODevice, QRect

from .models import CaptureRegion, DisplayInfo, Rect
from .region_planner import CaptureOrigin, CaptureRegionPlanner

logger = logging.getLogger(__name__)

def _check_screenshot_available():
    """Check if at least one screenshot method is likely available"""
    if os.environ.get("XDG_SESSION_TYPE") == "wayland":
        # Check for common wayland tools
        for tool in ["grim", "spectacle", "gnome-screenshot"]:
            if shutil.which(tool):
                return True
        # Also check for DBus as it might be used for GNOME
        return shutil.which("dbus-send") is not None
    return True # PyQt grabbing for X11, Windows and macOS

SCREENSHOT_AVAILABLE = _check_screenshot_available()


def _to_png(image) -> bytes:
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    image.save(buffer, "PNG")
    return bytes(buffer.buffer())


class ScreenCapture:
    """Grab the pixels of a capture region using the best backend for the session"""

    # Every backend below returns images with y=0 at the top of the display
    CAPTURE_ORIGIN = CaptureOrigin.TOP_LEFT

    @staticmethod
    def displays() -> List[DisplayInfo]:
        """Enumerate displays in Qt's order, geometry in logical coordinates"""
        result = []
        for screen in QGuiApplication.screens():
            geo = screen.geometry()
            result.append(DisplayInfo(
                identity=screen.name(),
                geometry=Rect(geo.x(), geo.y(), geo.width(), geo.height()),
                scale_factor=screen.devicePixelRatio(),
            ))
        return result

    @staticmethod
    def get_virtual_desktop_geometry() -> QRect:
        """Get the geometry of the entire virtual desktop (all screens combined)"""
        total_geo = QRect()
        for screen in QGuiApplication.screens():
            total_geo = total_geo.united(screen.geometry())
        return total_geo

    @staticmethod
    def capture_region(region: CaptureRegion, grayscale: bool = True) -> Optional[bytes]:
        """Capture the region's device_rect as PNG bytes, or None when every backend failed"""
        data = None
        if os.environ.get("XDG_SESSION_TYPE") == "wayland":
            data = ScreenCapture._capture_grim(region)
            if not data:
                data = ScreenCapture._crop_full_capture(region)
        if not data:
            data = ScreenCapture._capture_pyqt(region)
        if not data:
            return None
        return ScreenCapture.preprocess_image(data) if grayscale else data

    @staticmethod
    def _crop_device(image: QImage, device_rect: Rect) -> Optional[bytes]:
        """Cut device_rect (pixels of image) out of image"""
        crop = QRect(
            int(device_rect.x),
            int(device_rect.y),
            int(device_rect.width),
            int(device_rect.height),
        ).intersected(image.rect())
        if crop.isEmpty():
            logger.warning(f"Requested region {device_rect} is outside screen bounds")
            return None
        return _to_png(image.copy(crop))

    @staticmethod
    def _capture_pyqt(region: CaptureRegion) -> Optional[bytes]:
        """Grab the matching QScreen and crop it (X11, Windows, macOS)"""
        try:
            screen = next((s for s in QGuiApplication.screens() if s.name() == region.display_id), None)
            if screen is None:
                screen = QGuiApplication.primaryScreen()
            if screen is None:
                return None

            # The grab is display-local and in device pixels, like device_rect
            pixmap = screen.grabWindow(0)
            if pixmap.isNull():
                return None
            # A uniform region is legitimate here (blank page); OCR reports no lines
            return ScreenCapture._crop_device(pixmap.toImage(), region.device_rect)
        except Exception as e:
            logger.debug(f"PyQt capture error: {e}")
        return None

    @staticmethod
    def _capture_grim(region: CaptureRegion) -> Optional[bytes]:
        """Capture the region's output using grim (Generic Wayland), then crop"""
        if not shutil.which("grim"):
            return None
        try:
            result = subprocess.run(["grim", "-o", region.display_id, "-"], capture_output=True, timeout=5)
            if result.returncode != 0 or not result.stdout:
                return None
        except Exception as e:
            logger.debug(f"grim capture error: {e}")
            return None

        image = QImage.fromData(result.stdout)
        if image.isNull():
            return None
        logger.debug(f"Captured output {region.display_id} via grim")
        return ScreenCapture._crop_device(image, region.device_rect)

    @staticmethod
    def _crop_full_capture(region: CaptureRegion) -> Optional[bytes]:
        """Full-desktop capture via Spectacle/GNOME, then crop to the region"""
        desktop = os.environ.get("XDG_CURRENT_DESKTOP", "").lower()
        data = None
        if "kde" in desktop:
            data = ScreenCapture._capture_spectacle()
        if not data and "gnome" in desktop:
            data = ScreenCapture._capture_gnome()
        if not data:
            return None

        image = QImage.fromData(data)
        if image.isNull():
            return None

        geo = ScreenCapture.get_virtual_desktop_geometry()
        bounds = Rect(geo.x(), geo.y(), geo.width(), geo.height())
        return ScreenCapture._crop_device(image, CaptureRegionPlanner.desktop_device_rect(region, bounds))

    @staticmethod
    def _run_to_file(command: List[str]) -> Optional[bytes]:
        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            subprocess.run(command + [tmp_path], capture_output=True, timeout=5)
            if os.path.exists(tmp_path) and os.path.getsize(tmp_path) > 0:
                with open(tmp_path, "rb") as f:
                    return f.read()
        except Exception as e:
            logger.debug(f"{command[0]} capture error: {e}")
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        return None

    @staticmethod
    def _capture_spectacle() -> Optional[bytes]:
        """Capture screen using Spectacle (KDE)"""
        # -b: background, -n: no notification, -f: fullscreen, -o: output
        data = ScreenCapture._run_to_file(["spectacle", "-b", "-n", "-f", "-o"])
        if data and not ScreenCapture._is_image_empty(data):
            logger.debug("Captured screen via Spectacle")
            return data
        return None

    @staticmethod
    def _capture_gnome() -> Optional[bytes]:
        """Capture screen using GNOME screenshot methods"""
        data = ScreenCapture._run_to_file(["gnome-screenshot", "-f"])
        if data:
            return data

        # org.gnome.Shell.Screenshot.Screenshot(bool include_cursor, bool flash, string filename)
        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            subprocess.run([
                "dbus-send", "--session", "--type=method_call",
                "--dest=org.gnome.Shell.Screenshot",
                "/org/gnome/Shell/Screenshot",
                "org.gnome.Shell.Screenshot.Screenshot",
                "boolean:false", "boolean:false", f"string:{tmp_path}"
            ], capture_output=True, timeout=5)

            if os.path.exists(tmp_path) and os.path.getsize(tmp_path) > 0:
                with open(tmp_path, "rb") as f:
                    return f.read()
        except Exception as e:
            logger.debug(f"GNOME DBus capture error: {e}")
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        return None

    @staticmethod
    def _is_image_empty(data: bytes) -> bool:
        """Check if image is completely uniform (often happens on failed Wayland captures)"""
        if not data: return True
        img = QImage.fromData(data)
        if img.isNull(): return True

        w, h = img.width(), img.height()
        if w < 2 or h < 2: return True

        points = [
            img.pixelColor(0, 0),
            img.pixelColor(w-1, 0),
            img.pixelColor(0, h-1),
            img.pixelColor(w-1, h-1),
            img.pixelColor(w//2, h//2)
        ]

        first = points[0]
        return all(p == first for p in points)

    @staticmethod
    def preprocess_image(image_data: bytes) -> bytes:
        """Convert to grayscale, which improves OCR on coloured UI text"""
        image = QImage.fromData(image_data)
        if image.isNull():
            return image_data
        image = image.convertToFormat(QImage.Format.Format_Grayscale8)
        return _to_png(image)
