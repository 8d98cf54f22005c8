"""Member API routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from sqlalchemy.orm import Session

from member_gateway.db.base import get_db_session
from member_gateway.schemas.member import Member
from member_gateway.services.members import find_member_by_api_key

API_KEY_HEADER = "x-api-key"

router = APIRouter(prefix="/api/v1", tags=["members"])


@router.get("/members/me", response_model=Member)
def get_current_member_endpoint(
    api_key: str = Header(alias=API_KEY_HEADER),
    session: Session = Depends(get_db_session),
) -> Member:
    """Get the member that owns the presented API key."""
    return find_member_by_api_key(session, api_key)
