import logging
import threading
import time
from collections import OrderedDict
from typing import List, Optional

from .base import TranslationEngine
from ..errors import EngineNotAvailableError, TranslationEngineError, UnsupportedLanguagePairError
from ..models import Definition, EngineType, TranslationResult, language_key

logger = logging.getLogger(__name__)

try:
    import torch
    from transformers import AutoModelForSeq2SeqLM, AutoTokenizer
except ImportError:
    torch = None

try:
    from huggingface_hub import try_to_load_from_cache
except ImportError:
    try_to_load_from_cache = None

DEFAULT_MODEL = "facebook/nllb-200-distilled-600M"

# Language codes for NLLB
LANG_MAP_NLLB = {
    "en": "eng_Latn",
    "zh-Hans": "zho_Hans",
    "zh-Hant": "zho_Hant",
    "ja": "jpn_Jpan",
    "ko": "kor_Hang",
    "fr": "fra_Latn",
    "de": "deu_Latn",
    "es": "spa_Latn",
    "it": "ita_Latn",
    "pt": "por_Latn",
    "ru": "rus_Cyrl",
    "ar": "arb_Arab",
    "th": "tha_Thai",
    "vi": "vie_Latn",
}

# Language codes for M2M100 (418M); it has no separate traditional Chinese
LANG_MAP_M2M = {
    "en": "en",
    "zh-Hans": "zh",
    "zh-Hant": "zh",
    "ja": "ja",
    "ko": "ko",
    "fr": "fr",
    "de": "de",
    "es": "es",
    "it": "it",
    "pt": "pt",
    "ru": "ru",
    "ar": "ar",
    "th": "th",
    "vi": "vi",
}


class LocalTranslationEngine(TranslationEngine):
    """On-device translation with a local Transformers model (NLLB or M2M100).

    The "language pack" is the model checkpoint in the local Hugging Face cache:
    lookups never download, ensure_installed() does.
    """

    engine_type = EngineType.LOCAL

    def __init__(self, model_name: str = DEFAULT_MODEL, dictionary=None, max_translated_definitions: int = 3):
        super().__init__()
        self.model_name = model_name
        self.dictionary = dictionary
        self.max_translated_definitions = max_translated_definitions
        self.device = "cuda" if torch is not None and torch.cuda.is_available() else "cpu"
        self.model = None
        self.tokenizer = None
        self._loaded_model_name = None
        # Last error detail (for UI)
        self.last_error: Optional[str] = None
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return torch is not None

    def set_model_name(self, model_name: str):
        self.model_name = model_name or DEFAULT_MODEL

    def _detect_family(self, name: str = None) -> str:
        """Return model family: 'nllb' or 'm2m100'."""
        nm = (name or self.model_name or "").lower()
        if "m2m100" in nm:
            return "m2m100"
        return "nllb"

    def _lang_map(self) -> dict:
        return LANG_MAP_M2M if self._detect_family() == "m2m100" else LANG_MAP_NLLB

    def _model_code(self, language: str) -> Optional[str]:
        lang_map = self._lang_map()
        if language in lang_map:
            return lang_map[language]
        return lang_map.get(language_key(language))

    def supports_language_pair(self, source_language: str, target_language: str) -> bool:
        return self._model_code(source_language) is not None and self._model_code(target_language) is not None

    def is_model_installed(self) -> bool:
        """Check the local cache for the configured checkpoint without touching the network"""
        if self.model is not None and self._loaded_model_name == self.model_name:
            return True
        if try_to_load_from_cache is None:
            return False
        cached = try_to_load_from_cache(self.model_name, "config.json")
        return isinstance(cached, str)

    def get_available_models(self) -> List[str]:
        """Return suggested models to pick from"""
        # Put current model first, then common options
        models = OrderedDict()
        models[self.model_name] = True
        models[DEFAULT_MODEL] = True
        models["facebook/m2m100_418M"] = True
        return list(models.keys())

    def ensure_installed(self) -> bool:
        """Download (if needed) and load the configured model; used for warmup from the UI."""
        self.last_error = None
        if not self.is_available():
            self.last_error = "PyTorch/Transformers are not installed"
            return False
        with self._lock:
            self._load_specific_model(self.model_name, local_files_only=False)
            ok = self.model is not None and self.tokenizer is not None
        if not ok and not self.last_error:
            self.last_error = "Failed to load model. Check model name and environment."
        return ok

    def _load_specific_model(self, model_name: str, local_files_only: bool = True):
        """Load a specific HF model+tokenizer name on the configured device."""
        if self.model is not None and self._loaded_model_name == model_name:
            return
        # Reset if different
        if self._loaded_model_name and self._loaded_model_name != model_name:
            logger.info("Unloading model %s", self._loaded_model_name)
            self.model = None
            self.tokenizer = None
            self._loaded_model_name = None

        logger.info(f"Loading model {model_name} on {self.device}...")
        start_time = time.time()
        try:
            self.model = AutoModelForSeq2SeqLM.from_pretrained(model_name, local_files_only=local_files_only).to(self.device)
            self.tokenizer = AutoTokenizer.from_pretrained(model_name, local_files_only=local_files_only)
            self._loaded_model_name = model_name
            logger.info(f"Model loaded successfully in {time.time() - start_time:.2f}s")
        except Exception as e:
            self.model = None
            self.tokenizer = None
            self._loaded_model_name = None
            logger.error(f"Error loading model: {e}")
            self.last_error = str(e)

    def _resolve_forced_bos_token_id(self, tgt_lang_code: str):
        """Resolve the target language token id across tokenizer variants/versions."""
        tok = self.tokenizer
        if tok is None:
            return None

        # M2M100 tokenizers expose a helper
        get_lang_id = getattr(tok, "get_lang_id", None)
        if callable(get_lang_id):
            try:
                return int(get_lang_id(tgt_lang_code))
            except Exception:
                pass

        # Older NLLB tokenizers expose a mapping
        lang_code_to_id = getattr(tok, "lang_code_to_id", None)
        if isinstance(lang_code_to_id, dict) and tgt_lang_code in lang_code_to_id:
            return int(lang_code_to_id[tgt_lang_code])

        # Fallback: language codes are tokens in NLLB vocab
        convert_tokens_to_ids = getattr(tok, "convert_tokens_to_ids", None)
        if callable(convert_tokens_to_ids):
            token_id = convert_tokens_to_ids(tgt_lang_code)
            if isinstance(token_id, int):
                if getattr(tok, "unk_token_id", None) is not None and token_id == tok.unk_token_id:
                    return None
                return int(token_id)

        return None

    def _translate_batch(self, texts: List[str], src_code: str, tgt_code: str) -> List[str]:
        if hasattr(self.tokenizer, "src_lang"):
            self.tokenizer.src_lang = src_code

        forced_bos_token_id = self._resolve_forced_bos_token_id(tgt_code)
        if forced_bos_token_id is None:
            logger.error(
                "Unable to resolve target language token id (tgt_lang_code=%s, tokenizer=%s)",
                tgt_code,
                type(self.tokenizer).__name__,
            )
            raise UnsupportedLanguagePairError()

        batch_start = time.time()
        inputs = self.tokenizer(texts, return_tensors="pt", padding=True).to(self.device)
        with torch.no_grad():
            translated_tokens = self.model.generate(**inputs, max_length=128, forced_bos_token_id=forced_bos_token_id)
        translated = self.tokenizer.batch_decode(translated_tokens, skip_special_tokens=True)
        logger.info(f"Local translation of {len(texts)} item(s) completed in {time.time() - batch_start:.2f}s")
        return translated

    def translate(self, text: str, source_language: str, target_language: str) -> TranslationResult:
        if not self.is_available():
            raise EngineNotAvailableError()
        if not self.supports_language_pair(source_language, target_language):
            raise UnsupportedLanguagePairError()
        if not self.is_model_installed():
            raise UnsupportedLanguagePairError(
                f"Language model {self.model_name} is not installed. Download it in Settings."
            )

        entry = None
        if self.dictionary is not None and language_key(source_language) == "en":
            entry = self.dictionary.lookup(text)
        definitions = list(entry.definitions) if entry else []
        to_translate = [text] + [d.meaning for d in definitions[:self.max_translated_definitions]]

        with self._lock:
            self._load_specific_model(self.model_name)
            if self.model is None or self.tokenizer is None:
                raise TranslationEngineError(self.last_error or "Failed to load local model")
            try:
                translated = self._translate_batch(
                    to_translate, self._model_code(source_language), self._model_code(target_language)
                )
            except TranslationEngineError:
                raise
            except Exception as e:
                logger.error(f"Local translation error: {e}")
                raise TranslationEngineError(f"Translation failed: {e}") from e

        if not translated or not translated[0].strip():
            raise TranslationEngineError("Local model returned an empty translation")

        translated_definitions = []
        for i, definition in enumerate(definitions):
            translation = translated[i + 1] if i + 1 < len(translated) and i < self.max_translated_definitions else None
            translated_definitions.append(Definition(
                part_of_speech=definition.part_of_speech,
                meaning=definition.meaning,
                translation=translation,
                examples=definition.examples,
            ))

        return TranslationResult(
            word=text,
            translation=translated[0],
            phonetic=entry.phonetic if entry else None,
            definitions=tuple(translated_definitions),
        )
