import pytest

from snaptra.models import RecognizedLine, Rect
from snaptra.segmentation import WordSegmenter, should_split_camel_case, token_ranges


class LineBoxRecognizerLine(RecognizedLine):
    """Recognizer that silently answers every sub-range query with the line box"""

    def box_for_range(self, start, end):
        return Rect(0.005, 0.0, 0.99, 1.0)


class FixedBoxLine(RecognizedLine):
    def box_for_range(self, start, end):
        return Rect(0.1, 0.0, 0.5, 1.0)


def texts(words):
    return [w.text for w in words]


def test_camel_case_and_acronym_split(full_line):
    words = WordSegmenter().segment_line(full_line("fooBarHTTPResponse"))
    assert texts(words) == ["foo", "Bar", "HTTP", "Response"]


@pytest.mark.parametrize("previous, current, following, expected", [
    ("o", "B", "a", True),
    ("P", "R", "e", True),
    ("H", "T", "T", False),
    ("H", "T", None, False),
    ("a", "b", "c", False),
])
def test_should_split_camel_case(previous, current, following, expected):
    assert should_split_camel_case(previous, current, following) is expected


def test_digits_and_punctuation_separate_words(full_line):
    words = WordSegmenter().segment_line(full_line("v2 release: x9y -- 2024!"))
    assert texts(words) == ["v", "release", "x", "y"]


def test_line_without_letters_yields_nothing(full_line):
    assert WordSegmenter().segment_line(full_line("123 -- 4.56 %")) == []


def test_interpolated_boxes_partition_the_line(full_line):
    words = WordSegmenter().segment_line(full_line("OCRService"))
    assert texts(words) == ["OCR", "Service"]

    ocr, service = words
    assert ocr.bounding_box.x == pytest.approx(0.0)
    assert ocr.bounding_box.max_x == pytest.approx(0.3)
    assert service.bounding_box.x == pytest.approx(0.3)
    assert service.bounding_box.max_x == pytest.approx(1.0)
    # Vertical extent stays the line's
    for word in words:
        assert word.bounding_box.y == 0
        assert word.bounding_box.height == 1


def test_interpolation_respects_line_offset(full_line):
    line = full_line("ab cd", box=Rect(0.2, 0.4, 0.5, 0.1))
    ab, cd = WordSegmenter().segment_line(line)
    assert ab.bounding_box.x == pytest.approx(0.2)
    assert ab.bounding_box.width == pytest.approx(0.2)
    assert cd.bounding_box.x == pytest.approx(0.2 + 0.5 * 3 / 5)
    assert cd.bounding_box.y == pytest.approx(0.4)
    assert cd.bounding_box.height == pytest.approx(0.1)


@pytest.mark.parametrize("text", [
    "hello world",
    "fooBarHTTPResponse",
    "Hello, World! getHTTPStatus() is_done",
    "  leading and trailing  ",
    "a-b_c.d",
])
def test_tokens_rebuild_original_text(full_line, text):
    words = WordSegmenter().segment_line(full_line(text))
    ordered = sorted(words, key=lambda w: w.bounding_box.x)

    rebuilt = ""
    cursor = 0
    for word in ordered:
        start, end = word.span
        rebuilt += text[cursor:start] + word.text
        cursor = end
    rebuilt += text[cursor:]

    assert rebuilt == text


def test_reported_token_box_is_used(full_line, token):
    line = full_line("hello, world", box=Rect(0.0, 0.0, 0.9, 1.0),
                     token_boxes=[token(0, 6, 0.0, 0.3), token(7, 12, 0.5, 0.4)])
    hello, world = WordSegmenter().segment_line(line)

    # "hello" is five of the six characters of the "hello," token
    assert hello.bounding_box.x == pytest.approx(0.0)
    assert hello.bounding_box.width == pytest.approx(0.25)
    assert world.bounding_box == Rect(0.5, 0.0, 0.4, 1.0)


def test_box_indistinguishable_from_line_box_is_rejected():
    line = LineBoxRecognizerLine(text="ab cd", bounding_box=Rect(0, 0, 1, 1))
    ab, cd = WordSegmenter().segment_line(line)

    assert ab.bounding_box.x == pytest.approx(0.0)
    assert ab.bounding_box.width == pytest.approx(0.4)
    assert cd.bounding_box.x == pytest.approx(0.6)


def test_box_outside_tolerance_is_kept():
    line = FixedBoxLine(text="ab cd", bounding_box=Rect(0, 0, 1, 1))
    words = WordSegmenter(box_similarity_tolerance=0.02).segment_line(line)
    assert all(w.bounding_box == Rect(0.1, 0.0, 0.5, 1.0) for w in words)


def test_token_ranges_are_half_open():
    assert token_ranges("ab cd") == [(0, 2), (3, 5)]
    assert token_ranges("") == []


def test_segment_keeps_line_index(full_line):
    words = WordSegmenter().segment([full_line("one"), full_line("two three")])
    assert [(w.text, w.line_index) for w in words] == [("one", 0), ("two", 1), ("three", 1)]
