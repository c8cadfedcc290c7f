import hashlib
import logging
import time
import uuid
from typing import Optional

from .base import HttpTranslationEngine, quote_text
from ..errors import EmptyResponseError, InvalidApiKeyError, ParseError
from ..models import Definition, EngineType, TranslationResult

logger = logging.getLogger(__name__)

FREE_API_URL = "https://dict.youdao.com/jsonapi_s"
OFFICIAL_API_URL = "https://openapi.youdao.com/api"
VOICE_URL = "https://dict.youdao.com/dictvoice"

# errorCode values that mean the application key/signature was rejected
_INVALID_KEY_CODES = {"108", "110", "111", "202"}


def youdao_language_code(code: str) -> str:
    return {"zh-Hans": "zh-CHS", "zh-Hant": "zh-CHT"}.get(code, code)


def truncate_for_sign(text: str) -> str:
    """v3 signing input: texts over 20 chars become first 10 + length + last 10"""
    if len(text) <= 20:
        return text
    return f"{text[:10]}{len(text)}{text[-10:]}"


def youdao_sign(app_key: str, text: str, salt: str, curtime: str, secret_key: str) -> str:
    raw = f"{app_key}{truncate_for_sign(text)}{salt}{curtime}{secret_key}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _phonetic(data: dict, uk_key: str, us_key: str) -> Optional[str]:
    for key in (uk_key, us_key):
        value = data.get(key)
        if isinstance(value, str) and value:
            return f"/{value}/"
    return None


class YoudaoTranslationEngine(HttpTranslationEngine):
    """Youdao: dictionary web JSON API for free use, signed OpenAPI (v3) with credentials"""

    engine_type = EngineType.YOUDAO

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        config = self.config
        if config.use_custom_api and config.api_key and config.secret_key:
            return self._translate_official(text, source_language, target_language, config.api_key, config.secret_key)
        return self._translate_free(text)

    def _translate_free(self, text: str) -> TranslationResult:
        params = {"doctype": "json", "jsonversion": "4", "q": text}
        response = self._request("GET", FREE_API_URL, params=params)
        self._raise_for_status(response)
        if not response.content.strip():
            raise EmptyResponseError()
        return self._parse_free_response(self._json(response), text)

    def _translate_official(self, text: str, source_language: str, target_language: str,
                            app_key: str, secret_key: str) -> TranslationResult:
        curtime = str(int(time.time()))
        salt = str(uuid.uuid4())
        params = {
            "q": text,
            "from": youdao_language_code(source_language),
            "to": youdao_language_code(target_language),
            "appKey": app_key,
            "salt": salt,
            "sign": youdao_sign(app_key, text, salt, curtime, secret_key),
            "signType": "v3",
            "curtime": curtime,
        }
        response = self._request("GET", OFFICIAL_API_URL, params=params)
        self._raise_for_status(response)
        return self._parse_official_response(self._json(response), text)

    def _parse_free_response(self, payload, original_text: str) -> TranslationResult:
        if not isinstance(payload, dict):
            raise ParseError()

        phonetic = None
        definitions = []

        # ec: English-Chinese dictionary section
        words = (payload.get("ec") or {}).get("word") or []
        if words and isinstance(words[0], dict):
            first = words[0]
            phonetic = _phonetic(first, "ukphone", "usphone")
            for tr in (first.get("trs") or [])[:5]:
                tran = tr.get("tran") if isinstance(tr, dict) else None
                if tran:
                    definitions.append(Definition(part_of_speech=tr.get("pos") or "", meaning=tran))

        translation = ""
        fanyi = payload.get("fanyi")
        if isinstance(fanyi, dict) and fanyi.get("tran"):
            translation = fanyi["tran"]
        elif definitions:
            translation = definitions[0].meaning

        if not translation:
            simple_words = (payload.get("simple") or {}).get("word") or []
            if simple_words and isinstance(simple_words[0], dict):
                translation = simple_words[0].get("ust") or ""

        if not translation:
            web_trans = (payload.get("web_trans") or payload.get("web") or {}).get("trans") or []
            if web_trans and isinstance(web_trans[0], dict):
                translation = web_trans[0].get("summary") or ""

        if not translation:
            raise EmptyResponseError()

        return TranslationResult(
            word=original_text,
            translation=translation,
            phonetic=phonetic,
            definitions=tuple(definitions),
            audio_url=self.get_audio_url(original_text, "en"),
        )

    def _parse_official_response(self, payload, original_text: str) -> TranslationResult:
        if not isinstance(payload, dict) or payload.get("errorCode") is None:
            raise ParseError()

        error_code = str(payload["errorCode"])
        if error_code != "0":
            logger.warning(f"youdao: provider error {error_code}")
            if error_code in _INVALID_KEY_CODES:
                raise InvalidApiKeyError()
            raise ParseError()

        translations = payload.get("translation") or []
        if not translations:
            raise EmptyResponseError()

        phonetic = None
        definitions = []
        basic = payload.get("basic")
        if isinstance(basic, dict):
            phonetic = _phonetic(basic, "uk-phonetic", "us-phonetic")
            for explain in (basic.get("explains") or [])[:3]:
                # "n. apple; apple tree"
                pos, sep, meaning = explain.partition(". ")
                if sep:
                    definitions.append(Definition(part_of_speech=f"{pos}.", meaning=meaning))
                else:
                    definitions.append(Definition(part_of_speech="", meaning=explain))

        return TranslationResult(
            word=original_text,
            translation=translations[0],
            phonetic=phonetic,
            definitions=tuple(definitions),
            audio_url=self.get_audio_url(original_text, "en"),
        )

    def get_audio_url(self, text: str, language: str) -> Optional[str]:
        # type=1 is UK pronunciation, type=2 is US
        return f"{VOICE_URL}?audio={quote_text(text)}&type=2"
