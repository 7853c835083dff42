from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class ParticipantStatus(str, PyEnum):
    confirmed = "confirmed"
    waiting = "waiting"


class ActivityParticipant(Base):
    __tablename__ = "activity_participants"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_participant_session_user"),
    )

    # ``id`` doubles as the insertion sequence that breaks joined_at ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("activity_sessions.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[ParticipantStatus] = mapped_column(Enum(ParticipantStatus), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    session = relationship("ActivitySession", back_populates="participants")
