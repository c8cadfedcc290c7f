import logging
import re
from typing import Optional
from urllib.parse import quote

import requests

from .models import Definition, DictionaryEntry

logger = logging.getLogger(__name__)

API_URL = "https://api.dictionaryapi.dev/api/v2/entries/en/"

_EDGE_JUNK = re.compile(r"^[^\w'-]+|[^\w'-]+$")


def normalize_word(word: str) -> Optional[str]:
    """First whitespace token, stripped of surrounding punctuation, lowercased"""
    trimmed = (word or "").strip()
    if not trimmed:
        return None
    cleaned = _EDGE_JUNK.sub("", trimmed.split()[0])
    return cleaned.lower() or None


class DictionaryService:
    """Phonetic and definitions for a single word from the free dictionary API.

    Enrichment is optional: every failure is logged and reported as no entry.
    """

    def __init__(self, timeout: float = 5.0, max_definitions: int = 5, session: requests.Session = None):
        self.timeout = timeout
        self.max_definitions = max_definitions
        self.session = session or requests.Session()

    def lookup(self, word: str) -> Optional[DictionaryEntry]:
        normalized = normalize_word(word)
        if not normalized:
            return None
        try:
            response = self.session.get(f"{API_URL}{quote(normalized)}", timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Dictionary lookup for '{normalized}' failed: {e}")
            return None
        if response.status_code != 200:
            logger.debug(f"No dictionary entry for '{normalized}' (HTTP {response.status_code})")
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.debug(f"Dictionary returned non-JSON body for '{normalized}'")
            return None
        return self.parse_entry(payload, normalized)

    def parse_entry(self, payload, word: str) -> Optional[DictionaryEntry]:
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            return None
        entry = payload[0]

        phonetic = entry.get("phonetic") or None
        if not phonetic:
            for item in entry.get("phonetics") or []:
                if isinstance(item, dict) and item.get("text"):
                    phonetic = item["text"]
                    break

        definitions = []
        for meaning in entry.get("meanings") or []:
            pos = meaning.get("partOfSpeech") or ""
            for definition in meaning.get("definitions") or []:
                text = definition.get("definition")
                if not text:
                    continue
                example = definition.get("example")
                definitions.append(Definition(
                    part_of_speech=pos,
                    meaning=text,
                    examples=(example,) if example else (),
                ))
                if len(definitions) >= self.max_definitions:
                    break
            if len(definitions) >= self.max_definitions:
                break

        return DictionaryEntry(word=entry.get("word") or word, phonetic=phonetic, definitions=tuple(definitions))
