import logging
import threading
from typing import Dict, List, Optional

from .baidu import BaiduTranslationEngine
from .base import TranslationEngine
from .bing import BingTranslationEngine
from .google import GoogleTranslationEngine
from .local import LocalTranslationEngine
from .youdao import YoudaoTranslationEngine
from ..errors import EngineNotAvailableError
from ..models import EngineConfig, EngineConfigurations, EngineType, TranslationResult

logger = logging.getLogger(__name__)


class TranslationEngineRegistry:
    """One engine instance per EngineType plus the currently selected type.

    Calls bind the selected instance up front, so switching engines never
    affects a translation that is already running.
    """

    def __init__(self, engines: Dict[EngineType, TranslationEngine] = None,
                 selected: EngineType = EngineType.GOOGLE):
        self._engines: Dict[EngineType, TranslationEngine] = dict(engines) if engines is not None else {}
        self._selected = selected
        # One entry per running call; overlapping calls on the same engine each hold their own
        self._in_flight: List[TranslationEngine] = []
        self._lock = threading.Lock()

    @classmethod
    def with_default_engines(cls, configurations: EngineConfigurations = None,
                             selected: EngineType = EngineType.GOOGLE,
                             http_timeout: float = 10.0,
                             local_model: str = None,
                             dictionary=None) -> "TranslationEngineRegistry":
        configurations = configurations or EngineConfigurations()
        local = LocalTranslationEngine(dictionary=dictionary)
        if local_model:
            local.set_model_name(local_model)
        engines = {
            EngineType.LOCAL: local,
            EngineType.GOOGLE: GoogleTranslationEngine(configurations.google, timeout=http_timeout),
            EngineType.BING: BingTranslationEngine(configurations.bing, timeout=http_timeout),
            EngineType.BAIDU: BaiduTranslationEngine(configurations.baidu, timeout=http_timeout),
            EngineType.YOUDAO: YoudaoTranslationEngine(configurations.youdao, timeout=http_timeout),
        }
        return cls(engines, selected)

    @property
    def selected_type(self) -> EngineType:
        return self._selected

    @property
    def current_engine(self) -> Optional[TranslationEngine]:
        return self._engines.get(self._selected)

    def engine(self, engine_type: EngineType) -> Optional[TranslationEngine]:
        return self._engines.get(engine_type)

    def register(self, engine: TranslationEngine):
        self._engines[engine.engine_type] = engine

    def switch_engine(self, engine_type: EngineType):
        if engine_type != self._selected:
            logger.info(f"Switching translation engine: {self._selected.value} -> {engine_type.value}")
        self._selected = engine_type

    def update_configuration(self, engine_type: EngineType, config: EngineConfig):
        engine = self._engines.get(engine_type)
        if engine is None:
            logger.warning(f"No engine registered for {engine_type.value}, configuration ignored")
            return
        engine.update_config(config)

    def get_configuration(self, engine_type: EngineType) -> Optional[EngineConfig]:
        engine = self._engines.get(engine_type)
        return engine.config if engine is not None else None

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        engine = self.current_engine
        if engine is None or not engine.is_available():
            raise EngineNotAvailableError()
        with self._lock:
            self._in_flight.append(engine)
        try:
            return engine.translate(text, source_language, target_language)
        finally:
            with self._lock:
                self._in_flight.remove(engine)

    def get_audio_url(self, text: str, language: str) -> Optional[str]:
        engine = self.current_engine
        if engine is None:
            return None
        return engine.get_audio_url(text, language)

    def supports_language_pair(self, source_language: str, target_language: str) -> bool:
        engine = self.current_engine
        if engine is None or not engine.is_available():
            return False
        return engine.supports_language_pair(source_language, target_language)

    def abort_in_flight(self):
        with self._lock:
            engines = []
            for engine in self._in_flight:
                if engine not in engines:
                    engines.append(engine)
        for engine in engines:
            logger.debug(f"Aborting in-flight request on {engine.engine_type.value}")
            engine.abort()
