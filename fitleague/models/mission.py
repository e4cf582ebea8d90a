import uuid
from datetime import date, datetime, timezone
from sqlalchemy import String, Boolean, Float, Date, DateTime, ForeignKey, JSON, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base
from fitleague.models.enums import GoalType, AttemptStatus, ALL_SPORTS


class Mission(Base):
    __tablename__ = "missions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    goal_type: Mapped[GoalType] = mapped_column(SAEnum(GoalType, native_enum=False), nullable=False)
    goal_value: Mapped[float] = mapped_column(Float, nullable=False)  # km, count or minutes
    sport_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: [ALL_SPORTS])
    initial_day: Mapped[date] = mapped_column(Date, nullable=False)
    end_day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def matches_sport(self, sport_type: str | None) -> bool:
        wanted = {s.lower() for s in self.sport_types}
        if ALL_SPORTS.lower() in wanted:
            return True
        return sport_type is not None and sport_type.lower() in wanted


class MissionAttempt(Base):
    """A user's enrollment in a mission. ACHIEVED and NOT_ACHIEVED are terminal."""
    __tablename__ = "mission_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "mission_id", name="uq_mission_attempts_user_mission"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    mission_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("missions.id"), nullable=False, index=True)
    status: Mapped[AttemptStatus] = mapped_column(SAEnum(AttemptStatus, native_enum=False), default=AttemptStatus.ACTIVE, nullable=False, index=True)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_date_user_timezone: Mapped[str] = mapped_column(String, nullable=False)
    end_date_user_timezone: Mapped[str] = mapped_column(String, nullable=False)
    timezone: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    achieved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user = relationship("User")
    mission = relationship("Mission")


class MissionProgress(Base):
    """Append-only ledger: what one activity contributed to one attempt."""
    __tablename__ = "mission_progress"
    __table_args__ = (
        UniqueConstraint("activity_id", "mission_attempt_id", name="uq_mission_progress_activity_attempt"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("activities.id"), nullable=False, index=True)
    mission_attempt_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("mission_attempts.id"), nullable=False, index=True)
    progress_made: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
