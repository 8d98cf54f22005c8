"""SQLAlchemy model for members."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger
from sqlalchemy import DateTime
from sqlalchemy import Integer
from sqlalchemy import PrimaryKeyConstraint
from sqlalchemy import String
from sqlalchemy import UniqueConstraint
from sqlalchemy import func
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column


class Base(DeclarativeBase):
    """Declarative base for member-gateway ORM models."""


class Member(Base):
    """Local account, including members created through federated login."""

    __tablename__ = "members"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_members"),
        UniqueConstraint("username", name="uq_members_username"),
        UniqueConstraint("api_key", name="uq_members_api_key"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    nickname: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def authorities(self) -> list[str]:
        """Granted authorities; the ``admin`` account also gets ``ROLE_ADMIN``."""
        if self.username == "admin":
            return ["ROLE_ADMIN"]
        return []
