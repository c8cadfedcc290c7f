import json
import logging
from dataclasses import asdict, fields, replace

from PyQt6.QtCore import QObject, QSettings, pyqtSignal

from .models import AppSettings, EngineConfig, EngineConfigurations, EngineType, LookupTuning, RecognizerBackend, SingleKey

logger = logging.getLogger(__name__)


def _bool_value(raw, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).lower() == "true"


def _bool_str(value: bool) -> str:
    return "true" if value else "false"


def _enum_value(enum_cls, raw, default):
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning(f"Unknown {enum_cls.__name__} value {raw!r}, using {default.value}")
        return default


def tuning_from_dict(data: dict) -> LookupTuning:
    defaults = LookupTuning()
    values = {}
    for name in (f.name for f in fields(LookupTuning)):
        if name not in data:
            continue
        try:
            values[name] = type(getattr(defaults, name))(data[name])
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid tuning value {name}={data[name]!r}")
    return replace(defaults, **values)


class SettingsStore(QObject):
    """Persist AppSettings in QSettings and broadcast every change.

    The current settings object is frozen; updates replace it wholesale, so a
    lookup that took a snapshot keeps seeing consistent values.
    """

    settings_changed = pyqtSignal(object)  # AppSettings

    def __init__(self, settings: QSettings = None, parent=None):
        super().__init__(parent)
        self.qsettings = settings if settings is not None else QSettings("SnapTra", "SnapTra")
        self._current = self.load()

    @property
    def current(self) -> AppSettings:
        return self._current

    def snapshot(self) -> AppSettings:
        return self._current

    def load(self) -> AppSettings:
        """Load application settings"""
        defaults = AppSettings()
        s = self.qsettings

        engine_configurations = defaults.engine_configurations
        configs_json = s.value("engine_configurations", "")
        if configs_json:
            try:
                engine_configurations = EngineConfigurations.from_dict(json.loads(configs_json))
            except (ValueError, TypeError, AttributeError) as e:
                logger.error(f"Error loading engine configurations: {e}")

        tuning = defaults.tuning
        tuning_json = s.value("tuning", "")
        if tuning_json:
            try:
                tuning = tuning_from_dict(json.loads(tuning_json))
            except (ValueError, TypeError, AttributeError) as e:
                logger.error(f"Error loading tuning values: {e}")

        return AppSettings(
            single_key=_enum_value(SingleKey, s.value("single_key", defaults.single_key.value), defaults.single_key),
            source_language=s.value("source_language", defaults.source_language),
            target_language=s.value("target_language", defaults.target_language),
            continuous_translation=_bool_value(s.value("continuous_translation"), defaults.continuous_translation),
            debug_show_ocr_region=_bool_value(s.value("debug_show_ocr_region"), defaults.debug_show_ocr_region),
            translation_engine=_enum_value(EngineType, s.value("translation_engine", defaults.translation_engine.value),
                                           defaults.translation_engine),
            recognizer=_enum_value(RecognizerBackend, s.value("recognizer", defaults.recognizer.value),
                                   defaults.recognizer),
            local_model=s.value("local_model", defaults.local_model),
            engine_configurations=engine_configurations,
            tuning=tuning,
        )

    def save(self):
        """Save application settings"""
        current = self._current
        s = self.qsettings
        s.setValue("single_key", current.single_key.value)
        s.setValue("source_language", current.source_language)
        s.setValue("target_language", current.target_language)
        s.setValue("continuous_translation", _bool_str(current.continuous_translation))
        s.setValue("debug_show_ocr_region", _bool_str(current.debug_show_ocr_region))
        s.setValue("translation_engine", current.translation_engine.value)
        s.setValue("recognizer", current.recognizer.value)
        s.setValue("local_model", current.local_model)
        s.setValue("engine_configurations", json.dumps(current.engine_configurations.to_dict()))
        s.setValue("tuning", json.dumps(asdict(current.tuning)))
        s.sync()

    def update(self, **changes) -> AppSettings:
        """Swap in a copy of the current settings with changes applied, persist and notify"""
        updated = replace(self._current, **changes)
        if updated == self._current:
            return self._current
        self._current = updated
        self.save()
        self.settings_changed.emit(updated)
        return updated

    def update_engine_config(self, engine: EngineType, config: EngineConfig) -> AppSettings:
        return self.update(engine_configurations=self._current.engine_configurations.with_config(engine, config))

    def reset(self):
        self.qsettings.clear()
        self._current = AppSettings()
        self.save()
        self.settings_changed.emit(self._current)
