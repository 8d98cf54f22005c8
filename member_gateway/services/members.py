"""Service helpers for member lookup, access tokens and authentication."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import jwt
from sqlalchemy.orm import Session

from member_gateway.core.errors import NotFoundError
from member_gateway.db.models.member import Member
from member_gateway.db.repository.members import get_member_by_api_key
from member_gateway.db.repository.members import get_member_by_username
from member_gateway.security.login_success import AuthenticatedIdentity

JWT_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


def find_member_by_username(session: Session, username: str) -> Member:
    """Fetch a member by username or raise not found."""
    member = get_member_by_username(session, username)
    if member is None:
        raise NotFoundError(message=f"Member {username!r} not found")
    return member


def find_member_by_api_key(session: Session, api_key: str) -> Member:
    """Fetch a member by API key or raise not found."""
    member = get_member_by_api_key(session, api_key)
    if member is None:
        raise NotFoundError(message="Member not found for API key")
    return member


class DatabaseAccountLookup:
    """Resolve federated identities to persisted members."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def resolve(self, identity: AuthenticatedIdentity) -> Member:
        return find_member_by_username(self._session, identity.username)


class JwtTokenIssuer:
    """Mint short-lived HS256 access tokens for members."""

    def __init__(self, *, secret: str, expire_seconds: int) -> None:
        if len(secret) < MIN_SECRET_LENGTH:
            raise ValueError(f"JWT secret must be at least {MIN_SECRET_LENGTH} characters")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive")
        self._secret = secret
        self._expire_seconds = expire_seconds

    def issue_access_token(self, account: Member) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": account.id,
            "username": account.username,
            "nickname": account.nickname,
            "iat": now,
            "exp": now + timedelta(seconds=self._expire_seconds),
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)


@dataclass(frozen=True)
class SecurityUser:
    """Principal handed to credential-based authentication integrations."""

    id: int
    username: str
    password: str
    nickname: str
    authorities: list[str] = field(default_factory=list)


def load_user_by_username(session: Session, username: str) -> SecurityUser:
    """Build the authentication principal for a username.

    Entry point for credential-based authentication integrations (session or
    HTTP basic login); the federated flow resolves members through
    :class:`DatabaseAccountLookup` instead.

    Federated members have no local password, so the password is empty.
    """
    member = find_member_by_username(session, username)
    return SecurityUser(
        id=member.id,
        username=member.username,
        password="",
        nickname=member.nickname,
        authorities=member.authorities,
    )
