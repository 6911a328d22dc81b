from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from casino.models.schema_models import (
    BalanceSchema,
    BlackjackSessionSchema,
    TransactionSchema,
)
from casino.models.schemas import (
    ActiveGame,
    AuditEntry,
    Balance,
    BlackjackSession,
    GameTransaction,
)

# Helpers in this module never commit. The service layer opens
# ``session.begin()`` and decides what belongs in one transaction.


class ReadData:
    @staticmethod
    async def read_balance(user_id: str, session: AsyncSession) -> Optional[BalanceSchema]:
        """Read the balance row of a user

        Args:
            user_id (str): Verified user id

        Returns:
            BalanceSchema | None: None before the user's first activity
        """
        stmt = select(Balance).where(Balance.user_id == user_id)
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            return None
        return BalanceSchema.model_validate(result)

    @staticmethod
    async def read_transaction(
        transaction_id: UUID, user_id: str, session: AsyncSession
    ) -> Optional[TransactionSchema]:
        stmt = select(GameTransaction).where(
            GameTransaction.transaction_id == transaction_id,
            GameTransaction.user_id == user_id,
        )
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            return None
        return TransactionSchema.model_validate(result)

    @staticmethod
    async def read_transaction_by_reference(
        user_id: str, reference: str, session: AsyncSession
    ) -> Optional[TransactionSchema]:
        stmt = select(GameTransaction).where(
            GameTransaction.user_id == user_id,
            GameTransaction.reference == reference,
        )
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            return None
        return TransactionSchema.model_validate(result)

    @staticmethod
    async def read_latest_transaction(
        user_id: str, game_type: str, session: AsyncSession
    ) -> Optional[TransactionSchema]:
        """Read the newest transaction of one game type, e.g. the last daily bonus"""
        stmt = (
            select(GameTransaction)
            .where(GameTransaction.user_id == user_id, GameTransaction.game_type == game_type)
            .order_by(desc(GameTransaction.created_at))
            .limit(1)
        )
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            return None
        return TransactionSchema.model_validate(result)

    @staticmethod
    async def read_transactions(
        user_id: str,
        session: AsyncSession,
        limit: int = 50,
        offset: int = 0,
        game_type: Optional[str] = None,
        status: Optional[str] = None,
        reference_prefix: Optional[str] = None,
    ) -> List[TransactionSchema]:
        """Read a page of the user's transactions, newest first

        Args:
            user_id (str): Verified user id
            limit (int): Page size
            offset (int): Rows to skip
            game_type (str, optional): Only this game type
            status (str, optional): Only this transaction status
            reference_prefix (str, optional): Only references starting with this

        Returns:
            List[TransactionSchema]: Transactions ordered by created_at descending
        """
        stmt = select(GameTransaction).where(GameTransaction.user_id == user_id)
        if game_type is not None:
            stmt = stmt.where(GameTransaction.game_type == game_type)
        if status is not None:
            stmt = stmt.where(GameTransaction.status == status)
        if reference_prefix is not None:
            stmt = stmt.where(GameTransaction.reference.startswith(reference_prefix, autoescape=True))
        stmt = stmt.order_by(desc(GameTransaction.created_at)).limit(limit).offset(offset)
        result = await session.execute(stmt)
        return [TransactionSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_blackjack_session(
        session_id: UUID, session: AsyncSession
    ) -> Optional[BlackjackSessionSchema]:
        stmt = select(BlackjackSession).where(BlackjackSession.session_id == session_id)
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            return None
        game = BlackjackSessionSchema.model_validate(result.state)
        game.version = result.version
        return game

    @staticmethod
    async def read_active_game(user_id: str, session: AsyncSession) -> Optional[ActiveGame]:
        stmt = select(ActiveGame).where(ActiveGame.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_expired_session_ids(now: datetime, session: AsyncSession) -> List[UUID]:
        """Ids of in-progress blackjack sessions past their expiry"""
        stmt = select(ActiveGame.session_id).where(ActiveGame.expires_at <= now)
        result = await session.execute(stmt)
        return list(result.scalars().all())


class CreateData:
    @staticmethod
    async def add_balance(user_id: str, amount: int, now: datetime, session: AsyncSession) -> BalanceSchema:
        new_balance = Balance(user_id=user_id, amount=amount, version=0, created_at=now, updated_at=now)
        session.add(new_balance)
        await session.flush()
        return BalanceSchema.model_validate(new_balance)

    @staticmethod
    async def add_transaction(transaction: TransactionSchema, session: AsyncSession) -> None:
        """Add a transaction row

        Args:
            transaction (TransactionSchema): Fully computed transaction, balances included
            session (AsyncSession): Session inside an open transaction
        """
        new_transaction = GameTransaction(
            transaction_id=transaction.transaction_id,
            user_id=transaction.user_id,
            game_type=transaction.game_type.value,
            bet_amount=transaction.bet_amount,
            win_amount=transaction.win_amount,
            balance_before=transaction.balance_before,
            balance_after=transaction.balance_after,
            result_data=transaction.result_data,
            status=transaction.status.value,
            reference=transaction.reference,
            created_at=transaction.created_at,
        )
        session.add(new_transaction)
        await session.flush()

    @staticmethod
    async def add_blackjack_session(game: BlackjackSessionSchema, session: AsyncSession) -> None:
        """Add a blackjack session and claim the user's active-game slot

        The slot insert fails with IntegrityError when the user already has one.
        """
        session.add(
            ActiveGame(user_id=game.user_id, session_id=game.session_id, expires_at=game.expires_at)
        )
        await session.flush()
        session.add(
            BlackjackSession(
                session_id=game.session_id,
                user_id=game.user_id,
                status=game.status.value,
                state=game.model_dump(mode="json"),
                version=game.version,
                created_at=game.created_at,
                expires_at=game.expires_at,
            )
        )
        await session.flush()

    @staticmethod
    async def add_audit_entry(entry: AuditEntry, session: AsyncSession) -> None:
        session.add(entry)
        await session.flush()


class UpdateData:
    @staticmethod
    async def update_balance_no_commit(
        user_id: str, expected_version: int, amount: int, now: datetime, session: AsyncSession
    ) -> bool:
        """Write a new amount if nobody changed the row since it was read

        Returns:
            bool: False when the version moved on
        """
        stmt = (
            update(Balance)
            .where(Balance.user_id == user_id, Balance.version == expected_version)
            .values(amount=amount, version=expected_version + 1, updated_at=now)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def mark_credited_no_commit(transaction_id: UUID, user_id: str, session: AsyncSession) -> bool:
        """Flip a pending_credit transaction to credited

        Returns:
            bool: False when it is not pending (already credited or unknown)
        """
        stmt = (
            update(GameTransaction)
            .where(
                GameTransaction.transaction_id == transaction_id,
                GameTransaction.user_id == user_id,
                GameTransaction.status == "pending_credit",
            )
            .values(status="credited")
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def update_blackjack_session_no_commit(game: BlackjackSessionSchema, session: AsyncSession) -> bool:
        """Store a new state for the session under its version

        Returns:
            bool: False when another writer saved first
        """
        state = game.model_copy(update={"version": game.version + 1})
        stmt = (
            update(BlackjackSession)
            .where(
                BlackjackSession.session_id == game.session_id,
                BlackjackSession.version == game.version,
            )
            .values(
                status=state.status.value,
                state=state.model_dump(mode="json"),
                version=state.version,
                expires_at=state.expires_at,
            )
        )
        result = await session.execute(stmt)
        return result.rowcount == 1


class DeleteData:
    @staticmethod
    async def delete_active_game_no_commit(user_id: str, session_id: UUID, session: AsyncSession) -> None:
        stmt = delete(ActiveGame).where(ActiveGame.user_id == user_id, ActiveGame.session_id == session_id)
        await session.execute(stmt)

    @staticmethod
    async def delete_blackjack_session_no_commit(session_id: UUID, session: AsyncSession) -> None:
        stmt = delete(BlackjackSession).where(BlackjackSession.session_id == session_id)
        await session.execute(stmt)
