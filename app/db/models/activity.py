from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class SportType(str, PyEnum):
    football = "football"
    badminton = "badminton"
    volley = "volley"
    pingpong = "pingpong"
    rugby = "rugby"


class RecurringType(str, PyEnum):
    weekly = "weekly"
    monthly = "monthly"


class DayOfWeek(str, PyEnum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"

    @property
    def weekday(self) -> int:
        return list(DayOfWeek).index(self)


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("min_players >= 2", name="ck_activity_min_players"),
        CheckConstraint("min_players <= max_players", name="ck_activity_players_order"),
        CheckConstraint("max_players <= 100", name="ck_activity_max_players"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sport: Mapped[SportType] = mapped_column(Enum(SportType), default=SportType.football)
    min_players: Mapped[int] = mapped_column(Integer, nullable=False)
    max_players: Mapped[int] = mapped_column(Integer, nullable=False)
    recurring_type: Mapped[RecurringType] = mapped_column(
        Enum(RecurringType), default=RecurringType.weekly
    )
    recurring_days: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), default="12:00")
    created_by: Mapped[str] = mapped_column(String(64), index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    join_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    sessions = relationship(
        "ActivitySession",
        back_populates="activity",
        cascade="all, delete-orphan",
    )
    subscriptions = relationship(
        "ActivitySubscription",
        back_populates="activity",
        cascade="all, delete-orphan",
    )
