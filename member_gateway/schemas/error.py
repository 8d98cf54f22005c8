"""Error envelope schema shared across API handlers."""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import ConfigDict


class ErrorResponse(BaseModel):
    """Client-facing error body: a ``<status>-<sequence>`` code plus a message."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
