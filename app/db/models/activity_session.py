from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class SessionStatus(str, PyEnum):
    open = "open"
    full = "full"
    cancelled = "cancelled"
    completed = "completed"


class ActivitySession(Base):
    __tablename__ = "activity_sessions"
    __table_args__ = (
        UniqueConstraint("activity_id", "starts_at", name="uq_activity_session_time"),
        CheckConstraint("max_players > 0", name="ck_activity_session_capacity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    activity_id: Mapped[int] = mapped_column(ForeignKey("activities.id", ondelete="CASCADE"))
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    max_players: Mapped[int] = mapped_column(Integer, nullable=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    activity = relationship("Activity", back_populates="sessions")
    participants = relationship(
        "ActivityParticipant",
        back_populates="session",
        cascade="all, delete-orphan",
    )
