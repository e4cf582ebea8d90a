import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fitleague.database import Base
from fitleague.models.enums import CoinTransactionType


class CoinTransaction(Base):
    """Append-only coin ledger. users.coins is the running total of these rows."""
    __tablename__ = "coin_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "type", "reference", name="uq_coin_transactions_user_type_reference"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[CoinTransactionType] = mapped_column(SAEnum(CoinTransactionType, native_enum=False), nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)  # e.g. rotation week "2026-W42"
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at_epoch_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    user = relationship("User")
