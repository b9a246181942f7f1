from __future__ import annotations

from .models import Language

__all__ = ["LANGUAGES", "DEFAULT_NATIVE", "DEFAULT_TARGET", "find_language"]

LANGUAGES: tuple[Language, ...] = (
    Language(code="en", name="English", flag="🇺🇸"),
    Language(code="ja", name="Japanese", flag="🇯🇵"),
    Language(code="zh", name="Chinese (Simplified)", flag="🇨🇳"),
    Language(code="ko", name="Korean", flag="🇰🇷"),
    Language(code="fr", name="French", flag="🇫🇷"),
    Language(code="de", name="German", flag="🇩🇪"),
    Language(code="es", name="Spanish", flag="🇪🇸"),
    Language(code="it", name="Italian", flag="🇮🇹"),
    Language(code="pt", name="Portuguese", flag="🇧🇷"),
    Language(code="ru", name="Russian", flag="🇷🇺"),
)

DEFAULT_NATIVE = LANGUAGES[0]
DEFAULT_TARGET = LANGUAGES[1]


def find_language(value: str) -> Language | None:
    """Resolve a language by code or (case-insensitive) name."""
    needle = value.strip().casefold()
    if not needle:
        return None
    for language in LANGUAGES:
        if language.code.casefold() == needle or language.name.casefold() == needle:
            return language
    return None
