"""Pydantic schemas for member API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel
from pydantic import ConfigDict


class Member(BaseModel):
    """Member response payload."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    nickname: str
    created_at: datetime
    updated_at: datetime
