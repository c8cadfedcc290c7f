import logging
from typing import Optional
from urllib.parse import quote

import requests

from ..errors import NetworkError, ParseError, RequestTimeoutError
from ..models import EngineConfig, EngineType, TranslationResult

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"


def quote_text(text: str) -> str:
    return quote(text, safe="")


class TranslationEngine:
    """Uniform contract every translation backend implements"""

    engine_type: EngineType = None

    def __init__(self, config: EngineConfig = None):
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def update_config(self, config: EngineConfig):
        # Whole-object swap; a call in flight keeps the snapshot it started with
        self._config = config

    @property
    def uses_custom_api_key(self) -> bool:
        return self._config.use_custom_api

    def is_available(self) -> bool:
        return True

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        raise NotImplementedError

    def get_audio_url(self, text: str, language: str) -> Optional[str]:
        return None

    def supports_language_pair(self, source_language: str, target_language: str) -> bool:
        return True

    def abort(self):
        """Best-effort abort of outstanding transport work"""


class HttpTranslationEngine(TranslationEngine):
    """Shared requests plumbing: session, timeout and error mapping"""

    def __init__(self, config: EngineConfig = None, timeout: float = 10.0, session: requests.Session = None):
        super().__init__(config)
        self.timeout = timeout
        self.session = session or requests.Session()

    def abort(self):
        old_session = self.session
        self.session = requests.Session()
        try:
            old_session.close()
        except Exception as e:
            logger.debug(f"{self.engine_type.value}: error closing session: {e}")

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        headers = kwargs.pop("headers", {})
        headers.setdefault("User-Agent", BROWSER_USER_AGENT)
        try:
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.Timeout as e:
            logger.warning(f"{self.engine_type.value}: request timed out")
            raise RequestTimeoutError() from e
        except requests.RequestException as e:
            logger.warning(f"{self.engine_type.value}: request failed: {e}")
            raise NetworkError(cause=e) from e
        logger.debug(f"{self.engine_type.value}: HTTP {response.status_code}, {len(response.content)} bytes")
        return response

    def _raise_for_status(self, response: requests.Response):
        if response.status_code != 200:
            logger.warning(f"{self.engine_type.value}: HTTP error {response.status_code}: {response.text[:500]}")
            raise NetworkError(f"Network error: HTTP {response.status_code}")

    def _json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError as e:
            logger.debug(f"{self.engine_type.value}: unparsable body: {response.text[:300]}")
            raise ParseError() from e
