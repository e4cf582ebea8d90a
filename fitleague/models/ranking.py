import uuid
from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base

LEAGUES_PER_CATEGORY = 4


class RankingCategory(Base):
    """Ladder tier. Smaller `order` is the higher tier."""
    __tablename__ = "ranking_categories"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    leagues = relationship("RankingLeague", back_populates="category", order_by="RankingLeague.level")


class RankingLeague(Base):
    """League within a category. Level 1 is the top of its category."""
    __tablename__ = "ranking_leagues"
    __table_args__ = (
        UniqueConstraint("category_id", "level", name="uq_ranking_leagues_category_level"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    category_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("ranking_categories.id"), nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    category = relationship("RankingCategory", back_populates="leagues")
