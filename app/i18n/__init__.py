"""Runtime translations for API messages shown to organizers and attendees."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from starlette.requests import Request

DEFAULT_LANGUAGE = "es"
LANGUAGES: Dict[str, str] = {
    "es": "Español",
    "en": "English",
}
TRANSLATIONS_DIR = Path(__file__).resolve().parent / "translations"

_translation_cache: Dict[str, Mapping[str, Any]] = {}


def normalize_language(language: Optional[str]) -> Optional[str]:
    """Normalise a language string to a supported code."""
    if not language:
        return None
    base_code = language.lower().replace("_", "-").split("-")[0]
    if base_code in LANGUAGES:
        return base_code
    return None


def _parse_accept_language(header_value: str) -> Iterable[str]:
    """Yield supported codes from an ``Accept-Language`` header in priority order."""
    weighted = []
    for position, part in enumerate(header_value.split(",")):
        token = part.strip()
        if not token:
            continue
        lang, _, params = token.partition(";")
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        normalized = normalize_language(lang.strip())
        if normalized and quality > 0:
            weighted.append((-quality, position, normalized))
    for _, _, code in sorted(weighted):
        yield code


def load_translations() -> None:
    """Load translation JSON files into memory."""
    loaded: Dict[str, Mapping[str, Any]] = {}
    for code in LANGUAGES:
        file_path = TRANSLATIONS_DIR / f"{code}.json"
        if not file_path.exists():
            loaded[code] = {}
            continue
        with file_path.open("r", encoding="utf-8") as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError as exc:
                raise RuntimeError(f"Invalid JSON in translation file: {file_path}") from exc
        if not isinstance(data, Mapping):
            raise RuntimeError(
                f"Translation file {file_path} must contain a JSON object as the root node."
            )
        loaded[code] = data
    _translation_cache.clear()
    _translation_cache.update(loaded)


def _resolve_translation(language: str, key: str) -> Optional[str]:
    node: Any = _translation_cache.get(language)
    if not node:
        return None
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, str) else None


def translate(key: str, *, language: Optional[str] = None, default: Optional[str] = None) -> str:
    """Return a translated string for ``key``.

    Falls back to the default language, then ``default``, then the key itself
    so missing strings are easy to spot.
    """
    if not key:
        return default or ""
    lang = normalize_language(language) or DEFAULT_LANGUAGE
    value = _resolve_translation(lang, key)
    if value is None and lang != DEFAULT_LANGUAGE:
        value = _resolve_translation(DEFAULT_LANGUAGE, key)
    if value is None:
        return default if default is not None else key
    return value


def create_translator(language: Optional[str] = None) -> Callable[..., str]:
    """Return a helper that translates keys using ``language``.

    Keyword arguments are used for ``str.format`` interpolation.
    """
    lang = normalize_language(language) or DEFAULT_LANGUAGE

    def _translator(key: str, default: Optional[str] = None, **fmt: Any) -> str:
        text = translate(key, language=lang, default=default)
        if fmt:
            try:
                text = text.format(**fmt)
            except (IndexError, KeyError, ValueError):
                pass
        return text

    return _translator


def get_language_from_request(request: Optional[Request], *, default: str = DEFAULT_LANGUAGE) -> str:
    """Pick the language from the ``lang`` query parameter, then ``Accept-Language``."""
    if request is None:
        return default
    chosen = normalize_language(request.query_params.get("lang"))
    if not chosen:
        header_value = request.headers.get("Accept-Language")
        if header_value:
            chosen = next(iter(_parse_accept_language(header_value)), None)
    return chosen or default


def translator_for_request(request: Optional[Request]):
    """Return a translator bound to the active language for ``request``."""
    return create_translator(get_language_from_request(request))


__all__ = [
    "DEFAULT_LANGUAGE",
    "LANGUAGES",
    "create_translator",
    "get_language_from_request",
    "load_translations",
    "translate",
    "translator_for_request",
]

load_translations()
