"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os

DEFAULT_ACCESS_TOKEN_EXPIRE_SECONDS = 60 * 20
DEFAULT_COOKIE_PATH = "/"
DEFAULT_COOKIE_MAX_AGE_SECONDS = 60 * 60 * 24 * 365
DEFAULT_COOKIE_SAMESITE = "lax"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})
_SAMESITE_VALUES = frozenset({"lax", "strict", "none"})


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def redact_secret(secret: str) -> str:
    """Return a non-recoverable placeholder for sensitive values."""
    if not secret:
        return "<empty>"
    return "<redacted>"


@dataclass(frozen=True)
class AuthSettings:
    """Runtime settings for access token issuance."""

    jwt_secret: str
    access_token_expire_seconds: int

    def safe_for_logging(self) -> dict[str, str | int]:
        """Return auth settings safe for logs."""
        return {
            "jwt_secret": redact_secret(self.jwt_secret),
            "access_token_expire_seconds": self.access_token_expire_seconds,
        }


@dataclass(frozen=True)
class CookieSettings:
    """Attributes applied to every credential cookie issued at login."""

    domain: str | None
    path: str
    max_age_seconds: int
    secure: bool
    httponly: bool
    samesite: str


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """Load auth settings from the environment."""
    return AuthSettings(
        jwt_secret=os.getenv("MG_JWT_SECRET", ""),
        access_token_expire_seconds=_get_int_env(
            "MG_ACCESS_TOKEN_EXPIRE_SECONDS",
            DEFAULT_ACCESS_TOKEN_EXPIRE_SECONDS,
        ),
    )


@lru_cache(maxsize=1)
def get_cookie_settings() -> CookieSettings:
    """Load credential cookie attributes from the environment."""
    samesite = os.getenv("MG_COOKIE_SAMESITE", DEFAULT_COOKIE_SAMESITE).strip().lower()
    if samesite not in _SAMESITE_VALUES:
        raise ValueError(f"MG_COOKIE_SAMESITE must be one of {sorted(_SAMESITE_VALUES)}, got {samesite!r}")

    return CookieSettings(
        domain=os.getenv("MG_COOKIE_DOMAIN") or None,
        path=os.getenv("MG_COOKIE_PATH", DEFAULT_COOKIE_PATH),
        max_age_seconds=_get_int_env("MG_COOKIE_MAX_AGE_SECONDS", DEFAULT_COOKIE_MAX_AGE_SECONDS),
        secure=_get_bool_env("MG_COOKIE_SECURE", True),
        httponly=_get_bool_env("MG_COOKIE_HTTPONLY", True),
        samesite=samesite,
    )
