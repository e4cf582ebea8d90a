import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Boolean, Integer, BigInteger, Float, DateTime, ForeignKey, Text, Index, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base
from fitleague.models.enums import InvalidReason


class Activity(Base):
    """One exercise session, admitted once and never re-validated."""
    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_user_week", "user_id", "year_in_user_timezone", "week_in_user_timezone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="strava")
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    sport_type: Mapped[str] = mapped_column(String, nullable=False, default="Run")

    # Timing: UTC instant, user-local rendering and epoch-ms bounds for range queries
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_date_user_timezone: Mapped[str] = mapped_column(String, nullable=False)
    start_date_epoch_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    end_date_epoch_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at_user_timezone: Mapped[str] = mapped_column(String, nullable=False)
    created_at_epoch_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    week_in_user_timezone: Mapped[int] = mapped_column(Integer, nullable=False)
    year_in_user_timezone: Mapped[int] = mapped_column(Integer, nullable=False)

    # Measurements
    average_heartrate: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_heartrate: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # meters
    elapsed_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds
    moving_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds

    # Scoring and admission outcome
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    effort_factor: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    invalid_reason: Mapped[InvalidReason | None] = mapped_column(SAEnum(InvalidReason, native_enum=False), nullable=True)
    invalid_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    user = relationship("User")
