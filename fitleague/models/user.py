import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base

class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # IANA name, or the legacy "(GMT-05:00) America/Bogota" label
    timezone: Mapped[str] = mapped_column(String, nullable=False, default="UTC")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Ladder position and scoring
    league_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("ranking_leagues.id"), nullable=True, index=True)
    weekly_scores: Mapped[dict[str, int]] = mapped_column(JSON, nullable=False, default=dict)
    current_week_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Notification preferences
    push_token: Mapped[str | None] = mapped_column(String, nullable=True)

    league = relationship("RankingLeague")
