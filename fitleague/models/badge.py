import uuid
from datetime import date, datetime, timezone
from sqlalchemy import String, ForeignKey, DateTime, Date, JSON, Text, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base
from fitleague.models.enums import BadgeType, ALL_SPORTS


class Badge(Base):
    """Administrative badge definition; read-only to the evaluation engine."""
    __tablename__ = "badges"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[BadgeType] = mapped_column(SAEnum(BadgeType, native_enum=False), nullable=False, index=True)
    criteria: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # shape depends on type, see badge_criteria
    sport_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: [ALL_SPORTS])
    prerequisites: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)  # badge ids
    available_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    available_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    def matches_sport(self, sport_type: str | None) -> bool:
        if ALL_SPORTS in self.sport_types:
            return True
        return sport_type is not None and sport_type in self.sport_types


class UserBadge(Base):
    """Award record, at most one per (user, badge)."""
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    badge_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("badges.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = relationship("User")
    badge = relationship("Badge")
