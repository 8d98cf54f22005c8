"""Model module imports for SQLAlchemy metadata registration."""

from member_gateway.db.models.member import Base
from member_gateway.db.models.member import Member

__all__ = [
    "Base",
    "Member",
]
