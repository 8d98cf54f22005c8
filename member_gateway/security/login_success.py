"""Completion step of the federated (OAuth2) login flow.

Runs once the provider handshake has produced an authenticated identity:
resolves the local account, mints an access token, hands both credentials
to the client as cookies and redirects to the path carried in ``state``.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from dataclasses import dataclass
import logging
from typing import Protocol

from fastapi import status
from fastapi.responses import RedirectResponse

from member_gateway.core.config import CookieSettings

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URL = "/"
STATE_EXTRA_SEPARATOR = "#"
API_KEY_COOKIE = "apiKey"
ACCESS_TOKEN_COOKIE = "accessToken"


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity asserted by an external provider."""

    provider: str
    subject: str

    @property
    def username(self) -> str:
        """Local username that federated members are stored under."""
        return f"{self.provider.upper()}__{self.subject}"


class Account(Protocol):
    id: int
    username: str
    api_key: str


class AccountLookup(Protocol):
    def resolve(self, identity: AuthenticatedIdentity) -> Account:
        """Return the local account or raise ``NotFoundError``."""
        ...


class TokenIssuer(Protocol):
    def issue_access_token(self, account: Account) -> str:
        ...


@dataclass(frozen=True)
class SessionCredentials:
    api_key: str
    access_token: str

    def as_cookies(self) -> Iterator[tuple[str, str]]:
        yield API_KEY_COOKIE, self.api_key
        yield ACCESS_TOKEN_COOKIE, self.access_token


@dataclass(frozen=True)
class LoginCompletion:
    credentials: SessionCredentials
    redirect_url: str


def encode_redirect_state(path: str, extra: str | None = None) -> str:
    """Build the ``state`` value a client sends when starting a login."""
    raw = path if extra is None else f"{path}{STATE_EXTRA_SEPARATOR}{extra}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def _is_local_path(url: str) -> bool:
    # "//host" and "/\\host" are scheme-relative in browsers
    return url.startswith("/") and not url.startswith(("//", "/\\"))


def decode_redirect_state(state: str | None) -> str:
    """Return the redirect path carried in ``state``.

    Anything after the first ``#`` is opaque client data and is dropped.
    A missing or undecodable state, or one that does not name a path on
    this site, falls back to ``/``. A broken redirect hint must never fail
    an otherwise successful login.
    """
    if not state:
        return DEFAULT_REDIRECT_URL

    padded = state + "=" * (-len(state) % 4)
    try:
        decoded = base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        logger.debug("Ignoring undecodable login state: %s", exc)
        return DEFAULT_REDIRECT_URL

    redirect_url = decoded.split(STATE_EXTRA_SEPARATOR, 1)[0]
    if not _is_local_path(redirect_url):
        logger.debug("Ignoring non-local login redirect %r", redirect_url)
        return DEFAULT_REDIRECT_URL
    return redirect_url


def complete_login(
    identity: AuthenticatedIdentity,
    state: str | None,
    *,
    accounts: AccountLookup,
    tokens: TokenIssuer,
) -> LoginCompletion:
    """Resolve the account, mint its access token and pick the redirect target.

    Lookup and token failures propagate unchanged to the error handlers.
    """
    account = accounts.resolve(identity)
    access_token = tokens.issue_access_token(account)
    redirect_url = decode_redirect_state(state)

    logger.info("Completed login for member id=%s redirect=%s", account.id, redirect_url)
    return LoginCompletion(
        credentials=SessionCredentials(api_key=account.api_key, access_token=access_token),
        redirect_url=redirect_url,
    )


def build_login_response(completion: LoginCompletion, cookie_settings: CookieSettings) -> RedirectResponse:
    """Redirect response carrying both credential cookies."""
    response = RedirectResponse(url=completion.redirect_url, status_code=status.HTTP_302_FOUND)
    for name, value in completion.credentials.as_cookies():
        response.set_cookie(
            key=name,
            value=value,
            max_age=cookie_settings.max_age_seconds,
            path=cookie_settings.path,
            domain=cookie_settings.domain,
            secure=cookie_settings.secure,
            httponly=cookie_settings.httponly,
            samesite=cookie_settings.samesite,
        )
    return response
