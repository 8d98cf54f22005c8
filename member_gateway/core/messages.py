"""Localized client-facing messages for the error envelope."""

from __future__ import annotations

from functools import lru_cache
import os

DEFAULT_LOCALE = "ko"

_CATALOGUE: dict[str, dict[str, str]] = {
    "ko": {
        "not_found": "해당 데이터가 존재하지 않습니다.",
        "body_unreadable": "요청 본문이 올바르지 않습니다.",
        "missing_header": "필수 요청 헤더 '{header}'이(가) 없습니다.",
        "login_required": "로그인 후 이용해주세요.",
    },
    "en": {
        "not_found": "The requested data does not exist.",
        "body_unreadable": "The request body is malformed.",
        "missing_header": "Required request header '{header}' is not present.",
        "login_required": "Please log in first.",
    },
}


@lru_cache(maxsize=1)
def get_locale() -> str:
    """Return the configured message locale."""
    locale = os.getenv("MG_LOCALE", DEFAULT_LOCALE).strip().lower()
    if locale not in _CATALOGUE:
        raise ValueError(f"Unsupported MG_LOCALE {locale!r}; expected one of {sorted(_CATALOGUE)}")
    return locale


def message(key: str, **params: str) -> str:
    """Look up a message in the active locale and fill in its parameters."""
    text = _CATALOGUE[get_locale()][key]
    return text.format(**params) if params else text
