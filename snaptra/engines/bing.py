import logging

from .base import HttpTranslationEngine
from ..errors import InvalidApiKeyError, NetworkError, ParseError, RateLimitExceededError
from ..models import EngineType, TranslationResult

logger = logging.getLogger(__name__)

AUTH_URL = "https://edge.microsoft.com/translate/auth"
TRANSLATE_URL = "https://api.cognitive.microsofttranslator.com/translate"


class BingTranslationEngine(HttpTranslationEngine):
    """Microsoft Translator: Edge bearer token for free use, Azure subscription key otherwise"""

    engine_type = EngineType.BING

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        config = self.config
        if config.use_custom_api and config.api_key:
            headers = {"Ocp-Apim-Subscription-Key": config.api_key}
            response = self._post_translate(text, source_language, target_language, headers)
            if response.status_code == 401:
                raise InvalidApiKeyError()
        else:
            headers = {"Authorization": f"Bearer {self._fetch_token()}"}
            response = self._post_translate(text, source_language, target_language, headers)
            if response.status_code == 429:
                raise RateLimitExceededError()
        self._raise_for_status(response)
        return self._parse_response(self._json(response), text)

    def _fetch_token(self) -> str:
        response = self._request("GET", AUTH_URL)
        token = response.text.strip() if response.status_code == 200 else ""
        if not token:
            raise NetworkError(f"Network error: token request failed with HTTP {response.status_code}")
        return token

    def _post_translate(self, text: str, source_language: str, target_language: str, headers: dict):
        # Bing already speaks zh-Hans / zh-Hant
        params = {"api-version": "3.0", "from": source_language, "to": target_language}
        return self._request("POST", TRANSLATE_URL, params=params, headers=headers, json=[{"Text": text}])

    def _parse_response(self, payload, original_text: str) -> TranslationResult:
        try:
            translated = payload[0]["translations"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError() from e
        if not isinstance(translated, str):
            raise ParseError()
        return TranslationResult(word=original_text, translation=translated)
