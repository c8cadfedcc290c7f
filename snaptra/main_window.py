import logging

from PyQt6.QtCore import QTimer, pyqtSlot
from PyQt6.QtGui import QAction, QGuiApplication, QIcon
from PyQt6.QtWidgets import (
    QApplication, QCheckBox, QComboBox, QFormLayout, QGroupBox, QHBoxLayout, QLabel,
    QLineEdit, QMainWindow, QMenu, QPushButton, QSystemTrayIcon, QTabWidget, QVBoxLayout, QWidget
)

from .dictionary_service import DictionaryService
from .engines.registry import TranslationEngineRegistry
from .hotkey import TriggerDetector
from .lookup_coordinator import APP_TITLE, LookupCoordinator
from .models import LANGUAGES, AppSettings, EngineConfig, EngineType, RecognizerBackend, SingleKey
from .ocr_service import TextRecognizer
from .overlay_ui import DebugRegionOverlay, TranslationPopup
from .permissions import PermissionManager
from .pointer_tracker import PointerTracker, cursor_position
from .screen_capture import ScreenCapture
from .settings_store import SettingsStore
from .workers import ModelWarmupWorker

logger = logging.getLogger(__name__)

HTTP_ENGINES = (EngineType.GOOGLE, EngineType.BING, EngineType.BAIDU, EngineType.YOUDAO)

STYLESHEET = """
    QMainWindow {
        background-color: #121212;
    }
    QWidget#CentralWidget {
        background-color: #121212;
    }
    QGroupBox {
        color: #4CAF50;
        font-weight: bold;
        border: 1px solid #333;
        border-radius: 8px;
        margin-top: 1.5ex;
        padding: 10px;
    }
    QGroupBox::title {
        subcontrol-origin: margin;
        subcontrol-position: top left;
        padding: 0 5px;
    }
    QLabel, QCheckBox {
        color: #e0e0e0;
    }
    QPushButton {
        background-color: #333;
        color: white;
        border-radius: 4px;
        padding: 6px 12px;
        border: 1px solid #444;
    }
    QPushButton:hover {
        background-color: #444;
    }
    QComboBox, QLineEdit {
        background-color: #1e1e1e;
        color: white;
        border: 1px solid #333;
        border-radius: 4px;
        padding: 4px;
    }
    QTabWidget::pane {
        border: 1px solid #333;
        background: #121212;
    }
    QTabBar::tab {
        background: #1e1e1e;
        color: #888;
        padding: 8px 16px;
        border-top-left-radius: 4px;
        border-top-right-radius: 4px;
    }
    QTabBar::tab:selected {
        background: #333;
        color: white;
    }
"""


class EngineConfigGroup(QGroupBox):
    """Custom-API toggle and key material for one HTTP engine"""

    def __init__(self, engine: EngineType, parent=None):
        super().__init__(engine.display_name, parent)
        self.engine = engine
        layout = QFormLayout(self)

        self.custom_checkbox = QCheckBox("Use my own API credentials")
        if engine.requires_api_key:
            self.custom_checkbox.setText("API credentials (required)")
            self.custom_checkbox.setChecked(True)
            self.custom_checkbox.setEnabled(False)
        layout.addRow(self.custom_checkbox)

        self.app_id_edit = QLineEdit()
        self.api_key_edit = QLineEdit()
        self.secret_key_edit = QLineEdit()
        self.secret_key_edit.setEchoMode(QLineEdit.EchoMode.Password)

        if engine is EngineType.BAIDU:
            layout.addRow("App ID:", self.app_id_edit)
            layout.addRow("Secret Key:", self.secret_key_edit)
        elif engine is EngineType.YOUDAO:
            layout.addRow("App Key:", self.api_key_edit)
            layout.addRow("App Secret:", self.secret_key_edit)
        else:
            self.api_key_edit.setEchoMode(QLineEdit.EchoMode.Password)
            layout.addRow("API Key:", self.api_key_edit)

        link = QLabel(f'<a href="{engine.api_key_url}" style="color:#4CAF50">Get credentials</a>')
        link.setOpenExternalLinks(True)
        layout.addRow(link)

    def load(self, config: EngineConfig):
        for w in (self.custom_checkbox, self.app_id_edit, self.api_key_edit, self.secret_key_edit):
            w.blockSignals(True)
        if not self.engine.requires_api_key:
            self.custom_checkbox.setChecked(config.use_custom_api)
        self.app_id_edit.setText(config.app_id)
        self.api_key_edit.setText(config.api_key)
        self.secret_key_edit.setText(config.secret_key)
        for w in (self.custom_checkbox, self.app_id_edit, self.api_key_edit, self.secret_key_edit):
            w.blockSignals(False)

    def config(self) -> EngineConfig:
        return EngineConfig(
            use_custom_api=self.engine.requires_api_key or self.custom_checkbox.isChecked(),
            api_key=self.api_key_edit.text().strip(),
            secret_key=self.secret_key_edit.text().strip(),
            app_id=self.app_id_edit.text().strip(),
        )


class MainWindow(QMainWindow):
    """Settings window and tray icon; owns and wires the lookup pipeline"""

    def __init__(self, store: SettingsStore = None):
        super().__init__()
        self.store = store or SettingsStore(parent=self)
        settings = self.store.current

        self.permissions = PermissionManager()
        self.dictionary = DictionaryService()
        self.registry = TranslationEngineRegistry.with_default_engines(
            settings.engine_configurations,
            selected=settings.translation_engine,
            http_timeout=settings.tuning.http_timeout_s,
            local_model=settings.local_model,
            dictionary=self.dictionary,
        )
        self.recognizer = TextRecognizer(settings.recognizer)
        self.trigger_detector = TriggerDetector(settings.tuning.release_confirmation_ms, parent=self)
        self.pointer_tracker = PointerTracker(settings.tuning.pointer_poll_ms, parent=self)
        self.coordinator = LookupCoordinator(
            self.store.snapshot,
            self.registry,
            ScreenCapture.capture_region,
            self.recognizer,
            dictionary=self.dictionary,
            permissions=self.permissions,
            cursor_position=cursor_position,
            screens_provider=ScreenCapture.displays,
            pointer_tracker=self.pointer_tracker,
            capture_origin=ScreenCapture.CAPTURE_ORIGIN,
            parent=self,
        )
        self.popup = TranslationPopup()
        self.debug_overlay = DebugRegionOverlay()
        self.model_warmup_worker = ModelWarmupWorker(self.registry.engine(EngineType.LOCAL))
        self._previous_settings: AppSettings = settings

        # Debounce for credential edits so every keystroke is not persisted
        self.engine_config_timer = QTimer(self)
        self.engine_config_timer.setSingleShot(True)
        self.engine_config_timer.setInterval(600)
        self.engine_config_timer.timeout.connect(self._save_engine_configs)

        self.setup_ui()
        self.setup_tray_icon()
        self.connect_signals()
        self.load_settings()
        self.start_hotkey()

    # --- UI -----------------------------------------------------------------

    def setup_ui(self):
        self.setWindowTitle(f"{APP_TITLE} - Hover Translator")
        self.setMinimumSize(520, 480)
        self.setStyleSheet(STYLESHEET)

        central_widget = QWidget()
        central_widget.setObjectName("CentralWidget")
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)
        layout.setContentsMargins(20, 20, 20, 20)

        header = QHBoxLayout()
        title_label = QLabel(APP_TITLE)
        title_label.setStyleSheet("font-size: 24px; font-weight: bold; color: #4CAF50;")
        header.addWidget(title_label)
        header.addStretch()
        self.header_status = QLabel("Ready")
        self.header_status.setStyleSheet("color: #888;")
        header.addWidget(self.header_status)
        layout.addLayout(header)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._create_general_tab(), "General")
        self.tabs.addTab(self._create_engines_tab(), "Engines")
        layout.addWidget(self.tabs)

    def _create_general_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        hotkey_group = QGroupBox("Hotkey")
        hotkey_layout = QFormLayout(hotkey_group)
        self.single_key_combo = QComboBox()
        for key in SingleKey:
            self.single_key_combo.addItem(key.title, key)
        hotkey_layout.addRow("Hold to translate:", self.single_key_combo)
        self.permission_label = QLabel()
        hotkey_layout.addRow(self.permission_label)
        layout.addWidget(hotkey_group)

        lang_group = QGroupBox("Languages")
        lang_layout = QFormLayout(lang_group)
        self.source_lang_combo = QComboBox()
        self.target_lang_combo = QComboBox()
        for code, name in LANGUAGES.items():
            self.source_lang_combo.addItem(name, code)
            self.target_lang_combo.addItem(name, code)
        lang_layout.addRow("Source Language:", self.source_lang_combo)
        lang_layout.addRow("Target Language:", self.target_lang_combo)
        layout.addWidget(lang_group)

        engine_group = QGroupBox("Translation")
        engine_layout = QFormLayout(engine_group)
        self.engine_combo = QComboBox()
        for engine in EngineType:
            self.engine_combo.addItem(engine.display_name, engine)
        engine_layout.addRow("Engine:", self.engine_combo)
        self.recognizer_combo = QComboBox()
        self.recognizer_combo.addItem("EasyOCR", RecognizerBackend.EASYOCR)
        self.recognizer_combo.addItem("Tesseract", RecognizerBackend.TESSERACT)
        engine_layout.addRow("Text recognition:", self.recognizer_combo)
        layout.addWidget(engine_group)

        ui_group = QGroupBox("Behavior")
        ui_layout = QVBoxLayout(ui_group)
        self.continuous_checkbox = QCheckBox("Continuous translation while the key is held")
        self.debug_checkbox = QCheckBox("Debug: show OCR region and word boxes")
        ui_layout.addWidget(self.continuous_checkbox)
        ui_layout.addWidget(self.debug_checkbox)
        layout.addWidget(ui_group)

        layout.addStretch()
        return widget

    def _create_engines_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.engine_groups = {}
        for engine in HTTP_ENGINES:
            group = EngineConfigGroup(engine)
            self.engine_groups[engine] = group
            layout.addWidget(group)

        local_group = QGroupBox(EngineType.LOCAL.display_name)
        local_layout = QFormLayout(local_group)
        self.local_model_combo = QComboBox()
        self.local_model_combo.setEditable(True)
        self.local_model_combo.addItems(self.registry.engine(EngineType.LOCAL).get_available_models())
        local_layout.addRow("Model:", self.local_model_combo)
        self.download_model_button = QPushButton("Download / Load Model")
        self.local_model_status = QLabel()
        local_layout.addRow(self.download_model_button, self.local_model_status)
        layout.addWidget(local_group)

        layout.addStretch()
        return widget

    def setup_tray_icon(self):
        """Initialize system tray icon and menu"""
        self.tray_icon = QSystemTrayIcon(self)
        self.tray_icon.setIcon(QIcon("snaptra.png"))
        self.tray_icon.setToolTip(APP_TITLE)

        tray_menu = QMenu()
        show_action = QAction("Settings", self)
        show_action.triggered.connect(self.show_and_activate)
        tray_menu.addAction(show_action)

        self.tray_continuous_action = QAction("Continuous Translation", self)
        self.tray_continuous_action.setCheckable(True)
        self.tray_continuous_action.toggled.connect(lambda on: self.store.update(continuous_translation=on))
        tray_menu.addAction(self.tray_continuous_action)

        tray_menu.addSeparator()
        quit_action = QAction("Quit", self)
        quit_action.triggered.connect(QApplication.instance().quit)
        tray_menu.addAction(quit_action)

        self.tray_icon.setContextMenu(tray_menu)
        self.tray_icon.activated.connect(self._on_tray_activated)
        self.tray_icon.show()

    def _on_tray_activated(self, reason):
        if reason == QSystemTrayIcon.ActivationReason.Trigger:
            self.show_and_activate()

    def show_and_activate(self):
        self.show()
        self.raise_()
        self.activateWindow()

    def connect_signals(self):
        """Connect UI and pipeline signals"""
        self.single_key_combo.currentIndexChanged.connect(
            lambda: self.store.update(single_key=self.single_key_combo.currentData()))
        self.source_lang_combo.currentIndexChanged.connect(
            lambda: self.store.update(source_language=self.source_lang_combo.currentData()))
        self.target_lang_combo.currentIndexChanged.connect(
            lambda: self.store.update(target_language=self.target_lang_combo.currentData()))
        self.engine_combo.currentIndexChanged.connect(
            lambda: self.store.update(translation_engine=self.engine_combo.currentData()))
        self.recognizer_combo.currentIndexChanged.connect(
            lambda: self.store.update(recognizer=self.recognizer_combo.currentData()))
        self.continuous_checkbox.toggled.connect(lambda on: self.store.update(continuous_translation=on))
        self.debug_checkbox.toggled.connect(lambda on: self.store.update(debug_show_ocr_region=on))
        self.local_model_combo.currentTextChanged.connect(
            lambda text: self.store.update(local_model=text.strip()) if text.strip() else None)
        self.download_model_button.clicked.connect(self.download_local_model)

        for group in self.engine_groups.values():
            group.custom_checkbox.toggled.connect(lambda _on: self.engine_config_timer.start())
            for edit in (group.app_id_edit, group.api_key_edit, group.secret_key_edit):
                edit.textEdited.connect(lambda _text: self.engine_config_timer.start())

        self.store.settings_changed.connect(self._on_settings_changed)

        self.trigger_detector.triggered.connect(self.coordinator.handle_trigger)
        self.trigger_detector.released.connect(self.coordinator.handle_release)

        self.coordinator.state_changed.connect(self.popup.show_state)
        self.coordinator.overlay_hidden.connect(self.popup.hide_popup)
        self.coordinator.interaction_changed.connect(self.popup.set_interactive)
        self.coordinator.notification_requested.connect(self.notify)
        self.coordinator.debug_region_changed.connect(self.debug_overlay.show_region)
        self.coordinator.phase_changed.connect(lambda phase: self.header_status.setText(phase.value.capitalize()))
        self.popup.dismiss_requested.connect(self.coordinator.dismiss)

        self.model_warmup_worker.warmup_finished.connect(self._on_model_warmup_finished)

        app = QGuiApplication.instance()
        app.screenAdded.connect(self._on_screen_added)
        app.screenRemoved.connect(lambda _screen: self.coordinator.handle_screen_configuration_changed())
        for screen in QGuiApplication.screens():
            self._watch_screen(screen)

    def _watch_screen(self, screen):
        screen.geometryChanged.connect(lambda _geo: self.coordinator.handle_screen_configuration_changed())

    def _on_screen_added(self, screen):
        self._watch_screen(screen)
        self.coordinator.handle_screen_configuration_changed()

    def load_settings(self):
        """Populate widgets from the current settings without triggering updates"""
        settings = self.store.current
        widgets = [self.single_key_combo, self.source_lang_combo, self.target_lang_combo, self.engine_combo,
                   self.recognizer_combo, self.continuous_checkbox, self.debug_checkbox,
                   self.local_model_combo, self.tray_continuous_action]
        for w in widgets:
            w.blockSignals(True)
        self.single_key_combo.setCurrentIndex(self.single_key_combo.findData(settings.single_key))
        self.source_lang_combo.setCurrentIndex(self.source_lang_combo.findData(settings.source_language))
        self.target_lang_combo.setCurrentIndex(self.target_lang_combo.findData(settings.target_language))
        self.engine_combo.setCurrentIndex(self.engine_combo.findData(settings.translation_engine))
        self.recognizer_combo.setCurrentIndex(self.recognizer_combo.findData(settings.recognizer))
        self.continuous_checkbox.setChecked(settings.continuous_translation)
        self.debug_checkbox.setChecked(settings.debug_show_ocr_region)
        self.local_model_combo.setCurrentText(settings.local_model)
        self.tray_continuous_action.setChecked(settings.continuous_translation)
        for w in widgets:
            w.blockSignals(False)

        for engine, group in self.engine_groups.items():
            group.load(settings.engine_configurations.get(engine))
        self._update_permission_label()

    def _save_engine_configs(self):
        configurations = self.store.current.engine_configurations
        for engine, group in self.engine_groups.items():
            configurations = configurations.with_config(engine, group.config())
        self.store.update(engine_configurations=configurations)

    def _update_permission_label(self):
        status = self.permissions.refresh_status()
        problems = []
        if not status.input_monitoring:
            problems.append("keyboard monitoring unavailable")
        if not status.screen_capture:
            problems.append("no screen capture tool found")
        if problems:
            self.permission_label.setText("⚠ " + ", ".join(problems))
            self.permission_label.setStyleSheet("color: #ff9800;")
        else:
            self.permission_label.setText("Keyboard monitoring and screen capture ready")
            self.permission_label.setStyleSheet("color: #4CAF50;")

    # --- Reactions ----------------------------------------------------------

    def start_hotkey(self):
        if self.coordinator.is_held:
            # The old binding's release will never be reported once rebound
            self.coordinator.handle_release()
        if not self.trigger_detector.start(self.store.current.single_key):
            self.notify(APP_TITLE, "Keyboard monitoring is unavailable; the hotkey is disabled.")

    @pyqtSlot(object)
    def _on_settings_changed(self, settings: AppSettings):
        previous = self._previous_settings
        self._previous_settings = settings

        if settings.single_key != previous.single_key:
            self.start_hotkey()
        if settings.tuning != previous.tuning:
            self.trigger_detector.set_release_confirmation_ms(settings.tuning.release_confirmation_ms)
        if (settings.source_language, settings.target_language) != (previous.source_language, previous.target_language):
            self.coordinator.cancel_lookup()
            self.coordinator.check_language_availability()
        if settings.translation_engine != previous.translation_engine:
            self.registry.switch_engine(settings.translation_engine)
            if self.coordinator.check_language_availability():
                self._check_local_model()
        if settings.engine_configurations != previous.engine_configurations:
            for engine in HTTP_ENGINES:
                config = settings.engine_configurations.get(engine)
                if config != previous.engine_configurations.get(engine):
                    self.registry.update_configuration(engine, config)
        if settings.recognizer != previous.recognizer:
            self.recognizer.set_backend(settings.recognizer)
        if settings.local_model != previous.local_model:
            self.registry.engine(EngineType.LOCAL).set_model_name(settings.local_model)
        if previous.debug_show_ocr_region and not settings.debug_show_ocr_region:
            self.debug_overlay.clear()
        if settings.continuous_translation != previous.continuous_translation:
            self.tray_continuous_action.blockSignals(True)
            self.tray_continuous_action.setChecked(settings.continuous_translation)
            self.tray_continuous_action.blockSignals(False)
            self.continuous_checkbox.blockSignals(True)
            self.continuous_checkbox.setChecked(settings.continuous_translation)
            self.continuous_checkbox.blockSignals(False)

    def _check_local_model(self):
        if self.registry.selected_type is not EngineType.LOCAL:
            return
        local = self.registry.engine(EngineType.LOCAL)
        if not local.is_available():
            self.notify(APP_TITLE, "On-device translation needs PyTorch and Transformers installed.")
        elif not local.is_model_installed():
            self.notify(APP_TITLE, "Language model required. Download it in Settings > Engines.")

    def download_local_model(self):
        if self.model_warmup_worker.isRunning():
            return
        self.download_model_button.setEnabled(False)
        self.local_model_status.setText("Loading model...")
        self.local_model_status.setStyleSheet("color: #888")
        self.model_warmup_worker.start()

    def _on_model_warmup_finished(self, ok: bool, error: str):
        self.download_model_button.setEnabled(True)
        if ok:
            self.local_model_status.setText("Model ready")
            self.local_model_status.setStyleSheet("color: #4CAF50")
        else:
            self.local_model_status.setText(f"Model load failed: {error}")
            self.local_model_status.setStyleSheet("color: #F44336")

    @pyqtSlot(str, str)
    def notify(self, title: str, body: str):
        logger.info(f"Notification: {body}")
        if QSystemTrayIcon.isSystemTrayAvailable() and self.tray_icon.isVisible():
            self.tray_icon.showMessage(title, body, QSystemTrayIcon.MessageIcon.Information, 4000)

    def closeEvent(self, event):
        """Closing the window keeps the app running in the tray"""
        self.store.save()
        if self.tray_icon.isVisible():
            self.hide()
            event.ignore()
            return
        event.accept()
        QApplication.instance().quit()

    def shutdown(self):
        self.trigger_detector.stop()
        self.coordinator.handle_release()
        if self.model_warmup_worker.isRunning():
            self.model_warmup_worker.wait(1000)
        self.store.save()
