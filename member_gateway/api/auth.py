"""Federated login completion route.

The OAuth2 provider integration runs before this route. Once it has
exchanged the authorization code, it calls
:func:`attach_authenticated_identity` on the request (typically from a
middleware or the provider callback dependency) and forwards to
``/login/oauth2/success``. Requests that arrive without an attached
identity are rejected with ``401-1``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from member_gateway.core.config import AuthSettings
from member_gateway.core.config import CookieSettings
from member_gateway.core.config import get_auth_settings
from member_gateway.core.config import get_cookie_settings
from member_gateway.core.errors import ServiceError
from member_gateway.core.messages import message
from member_gateway.db.base import get_db_session
from member_gateway.security.login_success import AccountLookup
from member_gateway.security.login_success import AuthenticatedIdentity
from member_gateway.security.login_success import TokenIssuer
from member_gateway.security.login_success import build_login_response
from member_gateway.security.login_success import complete_login
from member_gateway.services.members import DatabaseAccountLookup
from member_gateway.services.members import JwtTokenIssuer

IDENTITY_STATE_ATTR = "oauth2_identity"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def attach_authenticated_identity(request: Request, identity: AuthenticatedIdentity) -> None:
    """Record the identity the provider integration authenticated for this request."""
    setattr(request.state, IDENTITY_STATE_ATTR, identity)


def get_authenticated_identity(request: Request) -> AuthenticatedIdentity:
    """Identity attached to the request by the OAuth2 provider integration."""
    identity = getattr(request.state, IDENTITY_STATE_ATTR, None)
    if not isinstance(identity, AuthenticatedIdentity):
        raise ServiceError("401-1", message("login_required"))
    return identity


def get_account_lookup(session: Session = Depends(get_db_session)) -> AccountLookup:
    return DatabaseAccountLookup(session)


def get_token_issuer(settings: AuthSettings = Depends(get_auth_settings)) -> TokenIssuer:
    logger.debug("Building token issuer with settings=%s", settings.safe_for_logging())
    return JwtTokenIssuer(
        secret=settings.jwt_secret,
        expire_seconds=settings.access_token_expire_seconds,
    )


async def read_state(request: Request) -> str | None:
    """Return ``state`` from the query string, or from a form-post callback."""
    state = request.query_params.get("state")
    if state is not None:
        return state
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        value = form.get("state")
        return value if isinstance(value, str) else None
    return None


@router.api_route("/login/oauth2/success", methods=["GET", "POST"], response_class=RedirectResponse)
def login_success_endpoint(
    identity: AuthenticatedIdentity = Depends(get_authenticated_identity),
    state: str | None = Depends(read_state),
    accounts: AccountLookup = Depends(get_account_lookup),
    tokens: TokenIssuer = Depends(get_token_issuer),
    cookie_settings: CookieSettings = Depends(get_cookie_settings),
) -> RedirectResponse:
    """Issue session cookies and redirect after a successful provider login."""
    completion = complete_login(identity, state, accounts=accounts, tokens=tokens)
    return build_login_response(completion, cookie_settings)
