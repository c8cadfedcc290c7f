import hashlib
import logging
import random
from typing import Optional

from .base import HttpTranslationEngine, quote_text
from ..errors import (
    ApiKeyRequiredError,
    InvalidApiKeyError,
    ParseError,
    RateLimitExceededError,
    RequestTimeoutError,
)
from ..models import EngineType, TranslationResult

logger = logging.getLogger(__name__)

API_URL = "https://fanyi-api.baidu.com/api/trans/vip/translate"
TTS_URL = "https://fanyi.baidu.com/gettts"

BAIDU_LANGUAGE_CODES = {
    "zh-Hans": "zh",
    "zh-Hant": "zh",
    "ja": "jp",
    "ko": "kor",
    "fr": "fra",
    "es": "spa",
    "ar": "ara",
    "vi": "vie",
}

# Provider error codes -> taxonomy; anything else is a parse error
_ERROR_CODES = {
    "54003": RateLimitExceededError,
    "52001": RequestTimeoutError,
    "52002": RequestTimeoutError,
    "52003": InvalidApiKeyError,
    "54001": InvalidApiKeyError,
    "54004": RateLimitExceededError,
}


def baidu_language_code(code: str) -> str:
    return BAIDU_LANGUAGE_CODES.get(code, code)


def baidu_sign(app_id: str, text: str, salt: str, secret_key: str) -> str:
    return hashlib.md5(f"{app_id}{text}{salt}{secret_key}".encode("utf-8")).hexdigest()


class BaiduTranslationEngine(HttpTranslationEngine):
    """Baidu general translation API; always needs an app id and secret"""

    engine_type = EngineType.BAIDU

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        config = self.config
        if not config.app_id or not config.secret_key:
            raise ApiKeyRequiredError()

        salt = str(random.randint(10000, 99999))
        params = {
            "q": text,
            "from": baidu_language_code(source_language),
            "to": baidu_language_code(target_language),
            "appid": config.app_id,
            "salt": salt,
            "sign": baidu_sign(config.app_id, text, salt, config.secret_key),
        }
        response = self._request("GET", API_URL, params=params)
        self._raise_for_status(response)
        return self._parse_response(self._json(response), text, source_language)

    def _parse_response(self, payload, original_text: str, source_language: str) -> TranslationResult:
        if not isinstance(payload, dict):
            raise ParseError()

        error_code = payload.get("error_code")
        if error_code is not None and str(error_code) != "52000":
            error_code = str(error_code)
            logger.warning(f"baidu: provider error {error_code}: {payload.get('error_msg')}")
            raise _ERROR_CODES.get(error_code, ParseError)()

        try:
            translated = payload["trans_result"][0]["dst"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError() from e

        return TranslationResult(
            word=original_text,
            translation=translated,
            audio_url=self.get_audio_url(original_text, source_language),
        )

    def get_audio_url(self, text: str, language: str) -> Optional[str]:
        return f"{TTS_URL}?lan={baidu_language_code(language)}&text={quote_text(text)}&spd=3&source=web"
