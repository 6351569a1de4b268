# src/tasknest/translation/offline.py

from __future__ import annotations


class OfflineTranslator:
    """
    Offline translator used when no remote backend is configured.

    Returns the text unchanged; set TASKNEST_TRANSLATE_API_KEY to enable real translations.
    """

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        return text
