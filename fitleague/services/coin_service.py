import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.models.coins import CoinTransaction
from fitleague.models.enums import CoinTransactionType
from fitleague.models.user import User
from fitleague.services.timezone_service import epoch_ms

logger = logging.getLogger(__name__)


class CoinService:
    @staticmethod
    async def has_transaction(
        db: AsyncSession,
        user_id: uuid.UUID,
        type: CoinTransactionType,
        reference: str,
    ) -> bool:
        existing = await db.execute(
            select(CoinTransaction.id).where(
                CoinTransaction.user_id == user_id,
                CoinTransaction.type == type,
                CoinTransaction.reference == reference,
            )
        )
        return existing.first() is not None

    @staticmethod
    def credit(
        db: AsyncSession,
        user: User,
        amount: int,
        type: CoinTransactionType,
        description: str,
        reference: str | None = None,
    ) -> CoinTransaction:
        """Append a ledger row and move the balance with it. Does not commit."""
        now = datetime.now(timezone.utc)
        transaction = CoinTransaction(
            user_id=user.id,
            amount=amount,
            type=type,
            description=description,
            reference=reference,
            created_at=now,
            created_at_epoch_ms=epoch_ms(now),
        )
        db.add(transaction)
        user.coins = (user.coins or 0) + amount
        logger.info("User %s %s %s coins (%s %s)", user.id, "credited" if amount >= 0 else "debited", abs(amount), type.value, reference)
        return transaction

    @staticmethod
    async def ledger_balance(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(CoinTransaction.amount), 0)).where(CoinTransaction.user_id == user_id)
        )
        return int(result.scalar() or 0)
