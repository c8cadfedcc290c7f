import io

import pytest
from PIL import Image

from snaptra import ocr_service
from snaptra.models import RecognizerBackend, Rect, TokenBox
from snaptra.ocr_service import TextRecognizer, lines_from_easyocr, lines_from_tesseract


def png_bytes(width=200, height=100):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def test_easyocr_boxes_are_normalized():
    results = [
        ([[20, 10], [120, 10], [120, 30], [20, 30]], "hello world", 0.9),
        ([[0, 50], [10, 50], [10, 60], [0, 60]], "noise", 0.05),
        ([[0, 70], [10, 70], [10, 80], [0, 80]], "   ", 0.9),
    ]

    lines = lines_from_easyocr(results, 200, 100)

    assert len(lines) == 1
    assert lines[0].text == "hello world"
    assert lines[0].bounding_box == Rect(0.1, 0.1, 0.5, 0.2)
    assert lines[0].token_boxes == ()


def test_tesseract_words_grouped_into_lines():
    data = {
        "text": ["", "hello", "world", "next"],
        "block_num": [1, 1, 1, 1],
        "par_num": [1, 1, 1, 1],
        "line_num": [1, 1, 1, 2],
        "left": [0, 20, 80, 20],
        "top": [0, 10, 10, 50],
        "width": [200, 40, 50, 40],
        "height": [100, 20, 20, 20],
    }

    lines = lines_from_tesseract(data, 200, 100)

    assert [line.text for line in lines] == ["hello world", "next"]
    first = lines[0]
    assert first.token_boxes == (
        TokenBox(0, 5, Rect(0.1, 0.1, 0.2, 0.2)),
        TokenBox(6, 11, Rect(0.4, 0.1, 0.25, 0.2)),
    )
    box = first.bounding_box
    assert (box.x, box.y, box.width, box.height) == pytest.approx((0.1, 0.1, 0.55, 0.2))
    assert first.box_for_range(6, 11) == Rect(0.4, 0.1, 0.25, 0.2)


def test_empty_image_size_yields_nothing():
    assert lines_from_easyocr([([[0, 0], [1, 0], [1, 1], [0, 1]], "a", 1.0)], 0, 0) == []
    assert lines_from_tesseract({"text": ["a"]}, 0, 10) == []


def test_recognize_uses_tesseract_backend(monkeypatch):
    captured = {}

    class FakeTesseract:
        @staticmethod
        def image_to_data(image, lang, output_type):
            captured["lang"] = lang
            captured["size"] = image.size
            return {"text": ["bonjour"], "block_num": [1], "par_num": [1], "line_num": [1],
                    "left": [0], "top": [0], "width": [100], "height": [50]}

    monkeypatch.setattr(ocr_service, "pytesseract", FakeTesseract)
    monkeypatch.setattr(ocr_service, "Output", type("Output", (), {"DICT": "dict"}))

    recognizer = TextRecognizer(RecognizerBackend.TESSERACT)
    lines = recognizer.recognize(png_bytes(), "fr")

    assert captured == {"lang": "fra", "size": (200, 100)}
    assert lines[0].text == "bonjour"
    assert lines[0].bounding_box == Rect(0.0, 0.0, 0.5, 0.5)


def test_recognize_uses_easyocr_reader(monkeypatch):
    created = []

    class FakeReader:
        def __init__(self, langs):
            created.append(langs)

        def readtext(self, image_data):
            return [([[0, 0], [100, 0], [100, 50], [0, 50]], "你好", 0.8)]

    monkeypatch.setattr(ocr_service, "easyocr", type("easyocr", (), {"Reader": FakeReader}))

    recognizer = TextRecognizer(RecognizerBackend.EASYOCR)
    recognizer.recognize(png_bytes(), "zh-Hans")
    lines = recognizer.recognize(png_bytes(), "zh-Hans")

    assert created == [["ch_sim", "en"]]
    assert lines[0].text == "你好"


def test_recognize_swallows_backend_errors(monkeypatch):
    class BrokenReader:
        def __init__(self, langs):
            raise RuntimeError("model files missing")

    monkeypatch.setattr(ocr_service, "easyocr", type("easyocr", (), {"Reader": BrokenReader}))

    assert TextRecognizer().recognize(png_bytes(), "en") == []


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_recognize_rejects_bad_image_data(data):
    assert TextRecognizer().recognize(data, "en") == []
