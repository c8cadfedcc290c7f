import io
import logging
import threading
import time
from collections import OrderedDict
from typing import List, Optional, Sequence

from PIL import Image

from .models import RecognizedLine, RecognizerBackend, Rect, TokenBox

logger = logging.getLogger(__name__)

try:
    import easyocr
except ImportError:
    easyocr = None

try:
    import pytesseract
    from pytesseract import Output
except ImportError:
    pytesseract = None
    Output = None

# Language code -> EasyOCR reader languages
EASYOCR_LANGS = {
    "en": ["en"],
    "zh-Hans": ["ch_sim", "en"],
    "zh-Hant": ["ch_tra", "en"],
    "ja": ["ja", "en"],
    "ko": ["ko", "en"],
    "fr": ["fr", "en"],
    "de": ["de", "en"],
    "es": ["es", "en"],
    "it": ["it", "en"],
    "pt": ["pt", "en"],
    "ru": ["ru", "en"],
    "ar": ["ar", "en"],
    "th": ["th", "en"],
    "vi": ["vi", "en"],
}

# Language code -> Tesseract traineddata name
TESSERACT_LANGS = {
    "en": "eng",
    "zh-Hans": "chi_sim",
    "zh-Hant": "chi_tra",
    "ja": "jpn",
    "ko": "kor",
    "fr": "fra",
    "de": "deu",
    "es": "spa",
    "it": "ita",
    "pt": "por",
    "ru": "rus",
    "ar": "ara",
    "th": "tha",
    "vi": "vie",
}


def _normalized(x: float, y: float, w: float, h: float, width: int, height: int) -> Rect:
    return Rect(x / width, y / height, w / width, h / height)


def lines_from_easyocr(results: Sequence, width: int, height: int, min_confidence: float = 0.2) -> List[RecognizedLine]:
    """Convert EasyOCR readtext() output into lines with normalized boxes"""
    lines = []
    if width <= 0 or height <= 0:
        return lines
    for (bbox, text, prob) in results:
        if prob < min_confidence or not text.strip():
            continue
        # bbox is [[x0, y0], [x1, y1], [x2, y2], [x3, y3]]
        x = min(p[0] for p in bbox)
        y = min(p[1] for p in bbox)
        w = max(p[0] for p in bbox) - x
        h = max(p[1] for p in bbox) - y
        lines.append(RecognizedLine(text=text, bounding_box=_normalized(x, y, w, h, width, height)))
    return lines


def lines_from_tesseract(data: dict, width: int, height: int) -> List[RecognizedLine]:
    """Group Tesseract image_to_data() words into lines, keeping each word's box as a token box"""
    if width <= 0 or height <= 0:
        return []

    grouped = OrderedDict()
    for i, raw_text in enumerate(data.get("text", [])):
        text = (raw_text or "").strip()
        if not text:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        box = _normalized(data["left"][i], data["top"][i], data["width"][i], data["height"][i], width, height)
        grouped.setdefault(key, []).append((text, box))

    lines = []
    for words in grouped.values():
        parts = []
        token_boxes = []
        offset = 0
        line_box = None
        for text, box in words:
            if parts:
                offset += 1
            token_boxes.append(TokenBox(start=offset, end=offset + len(text), box=box))
            parts.append(text)
            offset += len(text)
            line_box = box if line_box is None else line_box.united(box)
        lines.append(RecognizedLine(text=" ".join(parts), bounding_box=line_box, token_boxes=tuple(token_boxes)))
    return lines


class TextRecognizer:
    """Run OCR on a captured region and report text lines with normalized boxes.

    Recognition never raises: any failure is logged and reported as no lines,
    which the lookup treats as "no word found".
    """

    def __init__(self, backend: RecognizerBackend = RecognizerBackend.EASYOCR, min_confidence: float = 0.2):
        self.backend = backend
        self.min_confidence = min_confidence
        self.ocr_reader = None
        self._current_ocr_langs = None
        self._lock = threading.Lock()

    def set_backend(self, backend: RecognizerBackend):
        self.backend = backend

    def is_available(self) -> bool:
        if self.backend is RecognizerBackend.TESSERACT:
            return pytesseract is not None
        return easyocr is not None

    def recognize(self, image_data: bytes, language: str) -> List[RecognizedLine]:
        if not image_data:
            return []
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                width, height = image.size
                start_time = time.time()
                if self.backend is RecognizerBackend.TESSERACT:
                    lines = self._recognize_tesseract(image, language, width, height)
                else:
                    lines = self._recognize_easyocr(image_data, language, width, height)
            logger.info(f"OCR found {len(lines)} line(s) in {time.time() - start_time:.2f}s")
            return lines
        except Exception as e:
            logger.error(f"OCR error: {e}")
            return []

    def _init_easyocr(self, language: str) -> Optional[object]:
        """Create (or reuse) an EasyOCR reader for the language"""
        if not easyocr:
            logger.warning("EasyOCR not available")
            return None

        target_langs = EASYOCR_LANGS.get(language, ["en"])
        if self.ocr_reader and self._current_ocr_langs == target_langs:
            return self.ocr_reader

        logger.info(f"Initializing EasyOCR with {target_langs}...")
        start_time = time.time()
        self.ocr_reader = easyocr.Reader(target_langs)
        self._current_ocr_langs = target_langs
        logger.info(f"EasyOCR initialized in {time.time() - start_time:.2f}s")
        return self.ocr_reader

    def _recognize_easyocr(self, image_data: bytes, language: str, width: int, height: int) -> List[RecognizedLine]:
        with self._lock:
            reader = self._init_easyocr(language)
            if reader is None:
                return []
            results = reader.readtext(image_data)
        return lines_from_easyocr(results, width, height, self.min_confidence)

    def _recognize_tesseract(self, image, language: str, width: int, height: int) -> List[RecognizedLine]:
        if not pytesseract:
            logger.warning("pytesseract not available")
            return []
        lang = TESSERACT_LANGS.get(language, "eng")
        data = pytesseract.image_to_data(image, lang=lang, output_type=Output.DICT)
        return lines_from_tesseract(data, width, height)
