import os

# Widgets and timers must work without a display server
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from snaptra.models import RecognizedLine, Rect, TokenBox


@pytest.fixture
def full_line():
    """Build a recognized line whose box spans the whole capture"""
    def make(text, box=None, token_boxes=()):
        return RecognizedLine(text=text, bounding_box=box or Rect(0, 0, 1, 1), token_boxes=tuple(token_boxes))
    return make


@pytest.fixture
def token():
    def make(start, end, x, width, y=0.0, height=1.0):
        return TokenBox(start=start, end=end, box=Rect(x, y, width, height))
    return make
