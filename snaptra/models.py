import itertools
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple


class SingleKey(Enum):
    LEFT_SHIFT = "leftShift"
    LEFT_CONTROL = "leftControl"
    LEFT_OPTION = "leftOption"
    LEFT_COMMAND = "leftCommand"
    RIGHT_SHIFT = "rightShift"
    RIGHT_CONTROL = "rightControl"
    RIGHT_OPTION = "rightOption"
    RIGHT_COMMAND = "rightCommand"
    FUNCTION = "fn"

    @property
    def title(self) -> str:
        return _SINGLE_KEY_TITLES[self]


_SINGLE_KEY_TITLES = {
    SingleKey.LEFT_SHIFT: "Left Shift",
    SingleKey.LEFT_CONTROL: "Left Ctrl",
    SingleKey.LEFT_OPTION: "Left Alt/Opt",
    SingleKey.LEFT_COMMAND: "Left Cmd/Meta",
    SingleKey.RIGHT_SHIFT: "Right Shift",
    SingleKey.RIGHT_CONTROL: "Right Ctrl",
    SingleKey.RIGHT_OPTION: "Right Alt/Opt",
    SingleKey.RIGHT_COMMAND: "Right Cmd/Meta",
    SingleKey.FUNCTION: "Fn",
}

# Display name per language code; codes are what settings and engines exchange
LANGUAGES = {
    "en": "English",
    "zh-Hans": "Chinese (Simplified)",
    "zh-Hant": "Chinese (Traditional)",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ar": "Arabic",
    "th": "Thai",
    "vi": "Vietnamese",
}


def language_key(code: str) -> str:
    """Reduce a language code to the part that decides whether two languages are the same.

    Script subtags are kept (zh-Hans and zh-Hant differ), region subtags are dropped.
    """
    parts = (code or "").replace("_", "-").split("-")
    base = parts[0].lower()
    for part in parts[1:]:
        if len(part) == 4 and part.isalpha():
            return f"{base}-{part.title()}"
    return base


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, origin at the top-left corner"""
    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def contains(self, px: float, py: float) -> bool:
        return self.min_x <= px <= self.max_x and self.min_y <= py <= self.max_y

    def expanded(self, amount: float) -> "Rect":
        return Rect(self.x - amount, self.y - amount, self.width + 2 * amount, self.height + 2 * amount)

    def intersected(self, other: "Rect") -> "Rect":
        left = max(self.min_x, other.min_x)
        top = max(self.min_y, other.min_y)
        right = min(self.max_x, other.max_x)
        bottom = min(self.max_y, other.max_y)
        if right <= left or bottom <= top:
            return Rect(left, top, 0, 0)
        return Rect(left, top, right - left, bottom - top)

    def united(self, other: "Rect") -> "Rect":
        left = min(self.min_x, other.min_x)
        top = min(self.min_y, other.min_y)
        right = max(self.max_x, other.max_x)
        bottom = max(self.max_y, other.max_y)
        return Rect(left, top, right - left, bottom - top)

    def translated(self, dx: float, dy: float) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def scaled(self, factor: float) -> "Rect":
        return Rect(self.x * factor, self.y * factor, self.width * factor, self.height * factor)

    def is_similar(self, other: "Rect", tolerance: float) -> bool:
        return (abs(self.x - other.x) <= tolerance
                and abs(self.y - other.y) <= tolerance
                and abs(self.width - other.width) <= tolerance
                and abs(self.height - other.height) <= tolerance)

    def horizontal_slice(self, start_fraction: float, end_fraction: float) -> "Rect":
        """Cut a vertical strip out of the rect, keeping its full height"""
        return Rect(self.x + self.width * start_fraction, self.y,
                    self.width * (end_fraction - start_fraction), self.height)


@dataclass(frozen=True)
class DisplayInfo:
    """One physical display, geometry in UI (logical) coordinates"""
    identity: str
    geometry: Rect
    scale_factor: float = 1.0


@dataclass(frozen=True)
class CaptureRegion:
    """Screen area grabbed for one lookup attempt"""
    rect: Rect                  # UI space, global coordinates
    display_id: str
    scale_factor: float
    device_rect: Rect           # device pixels, display-local, in the capture backend's orientation
    display_geometry: Rect

    def normalize_point(self, px: float, py: float) -> Tuple[float, float]:
        """Map a global UI point into the region's normalized [0, 1] space"""
        if self.rect.is_empty():
            return 0.0, 0.0
        return (px - self.rect.x) / self.rect.width, (py - self.rect.y) / self.rect.height

    def denormalize(self, box: Rect) -> Rect:
        """Map a normalized box back to global UI coordinates"""
        return Rect(self.rect.x + box.x * self.rect.width,
                    self.rect.y + box.y * self.rect.height,
                    box.width * self.rect.width,
                    box.height * self.rect.height)


@dataclass(frozen=True)
class TokenBox:
    """Box the recognizer reported for text[start:end] of a line"""
    start: int
    end: int
    box: Rect


@dataclass(frozen=True)
class RecognizedLine:
    """One detected line of text; boxes are normalized to the captured image"""
    text: str
    bounding_box: Rect
    token_boxes: Tuple[TokenBox, ...] = ()

    def box_for_range(self, start: int, end: int) -> Optional[Rect]:
        """Answer the recognizer's sub-range box query for text[start:end].

        Each overlapping token contributes the slice of its box matching the
        overlapped characters; the result is the union of those slices. None
        when the reported tokens do not cover the whole range.
        """
        if not self.token_boxes or start >= end:
            return None
        covering = [t for t in self.token_boxes if t.start < end and t.end > start]
        if not covering:
            return None
        if min(t.start for t in covering) > start or max(t.end for t in covering) < end:
            return None
        box = None
        for token in covering:
            length = token.end - token.start
            lo = max(start, token.start) - token.start
            hi = min(end, token.end) - token.start
            part = token.box.horizontal_slice(lo / length, hi / length) if length else token.box
            box = part if box is None else box.united(part)
        return box


@dataclass(frozen=True)
class Word:
    """A letter-run token of a recognized line"""
    text: str
    bounding_box: Rect
    span: Tuple[int, int] = (0, 0)
    line_index: int = 0


@dataclass(frozen=True)
class Definition:
    part_of_speech: str
    meaning: str
    translation: Optional[str] = None
    examples: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DictionaryEntry:
    word: str
    phonetic: Optional[str] = None
    definitions: Tuple[Definition, ...] = ()


@dataclass(frozen=True)
class TranslationResult:
    """Engine-agnostic payload of a successful lookup"""
    word: str
    translation: str
    phonetic: Optional[str] = None
    definitions: Tuple[Definition, ...] = ()
    audio_url: Optional[str] = None


@dataclass(frozen=True)
class OverlayContent:
    word: str
    translation: str
    phonetic: Optional[str] = None
    definitions: Tuple[Definition, ...] = ()

    @classmethod
    def from_result(cls, result: TranslationResult) -> "OverlayContent":
        return cls(word=result.word, translation=result.translation,
                   phonetic=result.phonetic, definitions=tuple(result.definitions))


class OverlayState:
    """Closed set of things the overlay can show"""


@dataclass(frozen=True)
class Idle(OverlayState):
    pass


@dataclass(frozen=True)
class Loading(OverlayState):
    word: Optional[str] = None


@dataclass(frozen=True)
class ResultState(OverlayState):
    content: OverlayContent


@dataclass(frozen=True)
class ErrorState(OverlayState):
    message: str


@dataclass(frozen=True)
class NoWordFound(OverlayState):
    pass


_identity_serials = itertools.count(1)


@dataclass(frozen=True)
class LookupIdentity:
    """Versioning token; only the most recently minted one may publish"""
    serial: int

    @classmethod
    def mint(cls) -> "LookupIdentity":
        return cls(next(_identity_serials))


class LookupPhase(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RECOGNIZING = "recognizing"
    SELECTING = "selecting"
    TRANSLATING = "translating"
    PRESENTING = "presenting"


class EngineType(Enum):
    LOCAL = "local"
    GOOGLE = "google"
    BING = "bing"
    BAIDU = "baidu"
    YOUDAO = "youdao"

    @property
    def display_name(self) -> str:
        return {
            EngineType.LOCAL: "On-device (Transformers)",
            EngineType.GOOGLE: "Google Translate",
            EngineType.BING: "Bing Translator",
            EngineType.BAIDU: "Baidu Translate",
            EngineType.YOUDAO: "Youdao Dictionary",
        }[self]

    @property
    def requires_api_key(self) -> bool:
        return self is EngineType.BAIDU

    @property
    def supports_custom_api_key(self) -> bool:
        return self is not EngineType.LOCAL

    @property
    def api_key_url(self) -> str:
        return {
            EngineType.LOCAL: "https://huggingface.co/facebook/nllb-200-distilled-600M",
            EngineType.GOOGLE: "https://console.cloud.google.com/apis/credentials",
            EngineType.BING: "https://portal.azure.com/#create/Microsoft.CognitiveServicesTextTranslation",
            EngineType.BAIDU: "https://fanyi-api.baidu.com/manage/developer",
            EngineType.YOUDAO: "https://ai.youdao.com/console/",
        }[self]


class RecognizerBackend(Enum):
    EASYOCR = "easyocr"
    TESSERACT = "tesseract"


@dataclass(frozen=True)
class EngineConfig:
    """Credentials and flags for one backend"""
    use_custom_api: bool = False
    api_key: str = ""
    secret_key: str = ""
    app_id: str = ""

    def to_dict(self) -> dict:
        return {
            "use_custom_api": self.use_custom_api,
            "api_key": self.api_key,
            "secret_key": self.secret_key,
            "app_id": self.app_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        return cls(
            use_custom_api=bool(data.get("use_custom_api", False)),
            api_key=str(data.get("api_key", "")),
            secret_key=str(data.get("secret_key", "")),
            app_id=str(data.get("app_id", "")),
        )


@dataclass(frozen=True)
class EngineConfigurations:
    google: EngineConfig = EngineConfig()
    bing: EngineConfig = EngineConfig()
    baidu: EngineConfig = EngineConfig()
    youdao: EngineConfig = EngineConfig()

    def get(self, engine: EngineType) -> EngineConfig:
        if engine is EngineType.LOCAL:
            return EngineConfig()
        return getattr(self, engine.value)

    def with_config(self, engine: EngineType, config: EngineConfig) -> "EngineConfigurations":
        if engine is EngineType.LOCAL:
            return self
        return replace(self, **{engine.value: config})

    def to_dict(self) -> dict:
        return {name: getattr(self, name).to_dict() for name in ("google", "bing", "baidu", "youdao")}

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfigurations":
        return cls(**{name: EngineConfig.from_dict(data.get(name) or {})
                      for name in ("google", "bing", "baidu", "youdao")})


@dataclass(frozen=True)
class LookupTuning:
    """Empirically tuned constants of the lookup chain"""
    debounce_ms: int = 50
    displacement_threshold: float = 5.0
    release_confirmation_ms: int = 150
    capture_width: float = 520.0
    capture_height: float = 140.0
    box_similarity_tolerance: float = 0.02
    hit_tolerance: float = 0.01
    translation_timeout_s: float = 10.0
    http_timeout_s: float = 10.0
    pointer_poll_ms: int = 20


@dataclass(frozen=True)
class AppSettings:
    single_key: SingleKey = SingleKey.RIGHT_OPTION
    source_language: str = "en"
    target_language: str = "zh-Hans"
    continuous_translation: bool = True
    debug_show_ocr_region: bool = False
    translation_engine: EngineType = EngineType.GOOGLE
    recognizer: RecognizerBackend = RecognizerBackend.EASYOCR
    local_model: str = "facebook/nllb-200-distilled-600M"
    engine_configurations: EngineConfigurations = EngineConfigurations()
    tuning: LookupTuning = field(default_factory=LookupTuning)
