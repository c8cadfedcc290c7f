import logging
from typing import Optional

from .base import HttpTranslationEngine, quote_text
from ..errors import EmptyResponseError, InvalidApiKeyError, ParseError, RateLimitExceededError
from ..models import Definition, EngineType, TranslationResult

logger = logging.getLogger(__name__)

FREE_API_URL = "https://translate.googleapis.com/translate_a/single"
OFFICIAL_API_URL = "https://translation.googleapis.com/language/translate/v2"
TTS_URL = "https://translate.google.com/translate_tts"


def google_language_code(code: str) -> str:
    return {"zh-Hans": "zh-CN", "zh-Hant": "zh-TW"}.get(code, code)


class GoogleTranslationEngine(HttpTranslationEngine):
    """Google Translate: anonymous web endpoint, or the Cloud Translation v2 API with a key"""

    engine_type = EngineType.GOOGLE

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        config = self.config
        if config.use_custom_api and config.api_key:
            return self._translate_official(text, source_language, target_language, config.api_key)
        return self._translate_free(text, source_language, target_language)

    def _translate_free(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        params = [
            ("client", "gtx"),
            ("sl", google_language_code(source_language)),
            ("tl", google_language_code(target_language)),
            ("dt", "t"),
            ("dt", "bd"),
            ("dt", "rm"),
            ("q", text),
        ]
        response = self._request("GET", FREE_API_URL, params=params)
        if response.status_code == 429:
            raise RateLimitExceededError()
        self._raise_for_status(response)
        return self._parse_free_response(self._json(response), text, source_language)

    def _translate_official(self, text: str, source_language: str, target_language: str, api_key: str) -> TranslationResult:
        body = {
            "q": text,
            "source": google_language_code(source_language),
            "target": google_language_code(target_language),
            "key": api_key,
        }
        response = self._request("POST", OFFICIAL_API_URL, json=body)
        if response.status_code == 403:
            raise InvalidApiKeyError()
        self._raise_for_status(response)
        return self._parse_official_response(self._json(response), text)

    def _parse_free_response(self, payload, original_text: str, source_language: str) -> TranslationResult:
        if not isinstance(payload, list) or not payload:
            raise ParseError()

        translated = ""
        segments = payload[0]
        if isinstance(segments, list):
            for item in segments:
                if isinstance(item, list) and item and isinstance(item[0], str):
                    translated += item[0]
        if not translated:
            raise EmptyResponseError()

        phonetic = None
        if len(payload) > 3 and isinstance(payload[3], str) and payload[3]:
            phonetic = f"/{payload[3]}/"
        elif isinstance(segments, list):
            # dt=rm appends [null, null, target_translit, source_translit] to the segments
            for item in segments:
                if (isinstance(item, list) and len(item) >= 4 and item[0] is None
                        and isinstance(item[3], str) and item[3]):
                    phonetic = f"/{item[3]}/"
                    break

        # dt=bd: [[part_of_speech, [meanings...], ...], ...]
        definitions = []
        if len(payload) > 1 and isinstance(payload[1], list):
            for entry in payload[1]:
                if (isinstance(entry, list) and len(entry) >= 2
                        and isinstance(entry[0], str) and isinstance(entry[1], list)):
                    for meaning in entry[1][:2]:
                        definitions.append(Definition(part_of_speech=entry[0], meaning=meaning))

        return TranslationResult(
            word=original_text,
            translation=translated,
            phonetic=phonetic,
            definitions=tuple(definitions),
            audio_url=self.get_audio_url(original_text, source_language),
        )

    def _parse_official_response(self, payload, original_text: str) -> TranslationResult:
        try:
            translated = payload["data"]["translations"][0]["translatedText"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError() from e
        if not isinstance(translated, str):
            raise ParseError()
        return TranslationResult(word=original_text, translation=translated)

    def get_audio_url(self, text: str, language: str) -> Optional[str]:
        return f"{TTS_URL}?ie=UTF-8&client=tw-ob&tl={google_language_code(language)}&q={quote_text(text)}"
