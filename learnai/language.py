from __future__ import annotations

import typing as t

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese (Mandarin)",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "vi": "Vietnamese",
    "tr": "Turkish",
}


def name_for(code: t.Any) -> str:
    if not code or not isinstance(code, str):
        return "the specified language"
    return LANGUAGE_NAMES.get(code.strip().lower()) or f'the language "{code}"'
