import logging
from typing import Iterable, List, Tuple

from .models import RecognizedLine, Rect, Word

logger = logging.getLogger(__name__)

DEFAULT_BOX_SIMILARITY_TOLERANCE = 0.02


def is_token_character(ch: str) -> bool:
    """Letters form words; digits, punctuation and whitespace separate them"""
    return ch.isalpha()


def should_split_camel_case(previous: str, current: str, following: str = None) -> bool:
    """Decide whether a word boundary sits between previous and current.

    lower->Upper always splits ("fooBar"), Upper->Upper only when the next
    character is lowercase, so "HTTPRequest" becomes "HTTP" / "Request".
    """
    if previous.islower() and current.isupper():
        return True
    if previous.isupper() and current.isupper() and following is not None and following.islower():
        return True
    return False


def token_ranges(text: str) -> List[Tuple[int, int]]:
    """Split text into half-open [start, end) letter runs, breaking at camelCase transitions"""
    ranges = []
    start = None
    previous = None

    for index, ch in enumerate(text):
        following = text[index + 1] if index + 1 < len(text) else None
        if is_token_character(ch):
            if start is None:
                start = index
            elif previous is not None and should_split_camel_case(previous, ch, following):
                ranges.append((start, index))
                start = index
            previous = ch
        else:
            if start is not None:
                ranges.append((start, index))
                start = None
            previous = None

    if start is not None:
        ranges.append((start, len(text)))

    return ranges


def contains_letter(token: str) -> bool:
    return any(ch.isalpha() for ch in token)


def interpolated_box(line_box: Rect, text: str, start: int, end: int) -> Rect:
    """Slice the line box proportionally to the character offsets of text[start:end]"""
    length = len(text)
    if length == 0:
        return line_box
    return line_box.horizontal_slice(start / length, end / length)


class WordSegmenter:
    """Turn recognizer lines into word tokens with refined bounding boxes"""

    def __init__(self, box_similarity_tolerance: float = DEFAULT_BOX_SIMILARITY_TOLERANCE):
        self.box_similarity_tolerance = box_similarity_tolerance

    def segment(self, lines: Iterable[RecognizedLine]) -> List[Word]:
        words = []
        for line_index, line in enumerate(lines):
            words.extend(self.segment_line(line, line_index))
        return words

    def segment_line(self, line: RecognizedLine, line_index: int = 0) -> List[Word]:
        words = []
        for start, end in token_ranges(line.text):
            token = line.text[start:end]
            if not contains_letter(token):
                continue
            box = self._resolve_box(line, start, end)
            words.append(Word(text=token, bounding_box=box, span=(start, end), line_index=line_index))
        return words

    def _resolve_box(self, line: RecognizedLine, start: int, end: int) -> Rect:
        reported = line.box_for_range(start, end)
        if reported is not None and not reported.is_empty():
            # A box equal to the whole line means the recognizer fell back to the
            # line box instead of measuring the sub-range
            if not reported.is_similar(line.bounding_box, self.box_similarity_tolerance):
                return reported
            logger.debug(f"Rejected sub-range box for '{line.text[start:end]}': matches line box")
        return interpolated_box(line.bounding_box, line.text, start, end)
