"""Localized chat widget messages."""

from typing import Optional

DEFAULT_LANGUAGE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "de": {
        "invalid_request": "Ungültige Anfrage",
        "csrf_token_missing": "CSRF-Token fehlt",
        "invalid_csrf_token": "Ungültiger CSRF-Token. Bitte laden Sie die Seite neu und versuchen Sie es erneut.",
        "empty_message": "Leere Nachricht",
        "please_wait": "Bitte warten Sie, bevor Sie eine weitere Nachricht senden",
        "service_unavailable": "Service vorübergehend nicht verfügbar",
        "token_requests_too_frequent": "Token-Anfragen zu häufig",
    },
    "en": {
        "invalid_request": "Invalid request",
        "csrf_token_missing": "CSRF token missing",
        "invalid_csrf_token": "Invalid CSRF token. Please reload the page and try again.",
        "empty_message": "Empty message",
        "please_wait": "Please wait before sending another message",
        "service_unavailable": "Service temporarily unavailable",
        "token_requests_too_frequent": "Token requests too frequent",
    },
}


def detect_language(locale: Optional[str] = None, accept_language: Optional[str] = None) -> str:
    """German when the locale hint or the Accept-Language header starts with ``de``, English otherwise."""
    if locale and locale.strip():
        return "de" if locale.strip().lower().startswith("de") else DEFAULT_LANGUAGE
    if accept_language and accept_language.strip().lower().startswith("de"):
        return "de"
    return DEFAULT_LANGUAGE


def get_message(key: str, language: str = DEFAULT_LANGUAGE) -> str:
    return MESSAGES.get(language, {}).get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key) or key
