"""
SQLAlchemy Database Models
"""

import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base, TimestampMixin


class PermissionStatus(str, enum.Enum):
    """Lifecycle states of a sharing permission"""

    ACTIVE = "active"
    EXPIRED = "expired"
    USED = "used"
    REVOKED = "revoked"


class Permission(Base):
    """Time-boxed, usage-limited grant to read one owner's chart"""

    __tablename__ = "permissions"

    permission_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)  # as of share time
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    usage_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PermissionStatus.ACTIVE.value
    )
    granted_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_permissions_owner_created", "owner_id", "created_at"),
        Index("idx_permissions_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Permission {self.permission_id} owner={self.owner_id} "
            f"status={self.status} usage={self.usage_count}/{self.usage_limit}>"
        )


class Chart(TimestampMixin, Base):
    """Owner's composite soul chart, written by the analysis pipeline"""

    __tablename__ = "charts"

    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
