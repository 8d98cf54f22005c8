"""Repository primitives for member entities."""

from __future__ import annotations

import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from member_gateway.db.models.member import Member


def generate_api_key() -> str:
    """Return a fresh long-lived API key."""
    return secrets.token_urlsafe(32)


def create_member(
    session: Session,
    *,
    username: str,
    nickname: str,
    api_key: str | None = None,
) -> Member:
    """Create and return a member row."""
    member = Member(username=username, nickname=nickname, api_key=api_key or generate_api_key())
    session.add(member)
    session.flush()
    session.refresh(member)
    return member


def get_member_by_username(session: Session, username: str) -> Member | None:
    """Fetch a member by its unique username."""
    return session.scalars(select(Member).where(Member.username == username)).one_or_none()


def get_member_by_api_key(session: Session, api_key: str) -> Member | None:
    """Fetch a member by its API key."""
    return session.scalars(select(Member).where(Member.api_key == api_key)).one_or_none()
