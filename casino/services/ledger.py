"""Balance Ledger: the only writer of balances and transactions.

One settlement is one DB transaction holding the balance update, the new
transaction row and, for a two-phase credit, the pending->credited flip.
Writers on the same user are serialized by an in-process lock; writers in
other processes are caught by the balance version and retried.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from casino.crud import CreateData, ReadData, UpdateData
from casino.errors import AlreadyClaimed, GameAlreadyCompleted, InsufficientFunds, SettlementFailure, ValidationError
from casino.models.dc_models import GameTypeModel, TransactionStatusModel
from casino.models.schema_models import BalanceSchema, TransactionSchema
from casino.services.keyed_locks import KeyedLocks
from casino.services.store_calls import bounded
from casino.timeutils import utcnow

Guard = Callable[[AsyncSession, datetime], Awaitable[None]]


class _StaleVersion(Exception):
    """Another writer committed between our read and our update."""


class BalanceLedger:
    def __init__(
        self,
        Session: async_sessionmaker,
        starting_balance: int = 10000,
        daily_bonus: int = 1000,
        daily_bonus_cooldown: timedelta = timedelta(hours=24),
        max_retries: int = 5,
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.Session = Session
        self.starting_balance = starting_balance
        self.daily_bonus = daily_bonus
        self.daily_bonus_cooldown = daily_bonus_cooldown
        self.max_retries = max_retries
        self.timeout = timeout
        self.clock = clock
        self._locks = KeyedLocks()

    async def _load_or_create(self, user_id: str, session: AsyncSession, now: datetime) -> BalanceSchema:
        balance = await ReadData.read_balance(user_id, session)
        if balance is None:
            balance = await CreateData.add_balance(user_id, self.starting_balance, now, session)
            logging.info(f"Created balance for {user_id} with {self.starting_balance}")
        return balance

    async def _read_balance(self, user_id: str) -> BalanceSchema:
        async with self.Session() as session:
            async with session.begin():
                return await self._load_or_create(user_id, session, self.clock())

    async def get_balance(self, user_id: str) -> int:
        """Current balance; the balance is created on first activity."""
        async with self._locks.hold(user_id):
            for _ in range(self.max_retries):
                try:
                    balance = await bounded(self._read_balance(user_id), self.timeout, "Balance read")
                except SettlementFailure as e:
                    # a concurrent first activity created the row first
                    if isinstance(e.__cause__, IntegrityError):
                        continue
                    raise
                return balance.amount
        raise SettlementFailure()

    async def settle(
        self,
        user_id: str,
        game_type: GameTypeModel,
        bet_amount: int,
        win_amount: int,
        result_data: Dict[str, Any],
        *,
        reference: Optional[str] = None,
        status: TransactionStatusModel = TransactionStatusModel.settled,
        resolves: Sequence[UUID] = (),
        guard: Optional[Guard] = None,
    ) -> TransactionSchema:
        """Atomically move the balance by ``win_amount - bet_amount``.

        Args:
            user_id (str): Verified user id
            game_type (GameTypeModel): Game the settlement belongs to
            bet_amount (int): Amount debited, >= 0
            win_amount (int): Amount credited, >= 0
            result_data (dict): Audit payload stored with the transaction
            reference (str, optional): Unique per user; a repeated reference
                returns the transaction committed first and changes nothing
            status (TransactionStatusModel): pending_credit for the debit of a two-phase flow
            resolves (Sequence[UUID]): pending_credit transactions flipped to credited in the same unit
            guard (Guard, optional): extra check run inside the attempt, may raise

        Returns:
            TransactionSchema: The committed transaction

        Raises:
            ValidationError: negative amounts, or nothing to settle or resolve
            InsufficientFunds: the balance does not cover the bet
            GameAlreadyCompleted: one of ``resolves`` is no longer pending
            SettlementFailure: storage failed, timed out or kept conflicting
        """
        if bet_amount < 0 or win_amount < 0:
            raise ValidationError("Amounts must not be negative")
        if bet_amount == 0 and win_amount == 0 and not resolves:
            raise ValidationError("Nothing to settle")

        async with self._locks.hold(user_id):
            for attempt in range(1, self.max_retries + 1):
                try:
                    transaction = await bounded(
                        self._attempt(
                            user_id, game_type, bet_amount, win_amount, result_data,
                            reference, status, resolves, guard,
                        ),
                        self.timeout,
                        f"Settlement for {user_id}",
                    )
                except _StaleVersion:
                    logging.warning(f"Balance version conflict for {user_id}, attempt {attempt}")
                    continue
                except SettlementFailure as e:
                    if isinstance(e.__cause__, IntegrityError):
                        logging.warning(f"Concurrent insert for {user_id}, attempt {attempt}")
                        continue
                    raise
                logging.info(
                    f"Settled {game_type.value} for {user_id}: bet={bet_amount} win={win_amount} "
                    f"balance {transaction.balance_before} -> {transaction.balance_after}"
                )
                return transaction

        logging.error(f"Settlement for {user_id} gave up after {self.max_retries} conflicts")
        raise SettlementFailure()

    async def _attempt(
        self,
        user_id: str,
        game_type: GameTypeModel,
        bet_amount: int,
        win_amount: int,
        result_data: Dict[str, Any],
        reference: Optional[str],
        status: TransactionStatusModel,
        resolves: Sequence[UUID],
        guard: Optional[Guard],
    ) -> TransactionSchema:
        now = self.clock()
        async with self.Session() as session:
            async with session.begin():
                if reference is not None:
                    existing = await ReadData.read_transaction_by_reference(user_id, reference, session)
                    if existing is not None:
                        logging.info(f"Reference {reference} already settled for {user_id}")
                        return existing

                balance = await self._load_or_create(user_id, session, now)
                if guard is not None:
                    await guard(session, now)
                if balance.amount < bet_amount:
                    raise InsufficientFunds(balance=balance.amount, required=bet_amount)

                balance_after = balance.amount - bet_amount + win_amount
                updated = await UpdateData.update_balance_no_commit(
                    user_id, balance.version, balance_after, now, session
                )
                if not updated:
                    raise _StaleVersion()

                for pending_id in resolves:
                    flipped = await UpdateData.mark_credited_no_commit(pending_id, user_id, session)
                    if not flipped:
                        raise GameAlreadyCompleted(f"Transaction {pending_id} was already settled")

                transaction = TransactionSchema(
                    transaction_id=uuid7(),
                    user_id=user_id,
                    game_type=game_type,
                    bet_amount=bet_amount,
                    win_amount=win_amount,
                    balance_before=balance.amount,
                    balance_after=balance_after,
                    result_data=result_data,
                    status=status,
                    reference=reference,
                    created_at=now,
                )
                await CreateData.add_transaction(transaction, session)
        return transaction

    async def _last_bonus(self, user_id: str, session: AsyncSession) -> Optional[TransactionSchema]:
        return await ReadData.read_latest_transaction(user_id, GameTypeModel.daily_bonus.value, session)

    async def claim_daily_bonus(self, user_id: str) -> TransactionSchema:
        """Credit the daily bonus once per rolling cooldown window.

        Raises:
            AlreadyClaimed: the last bonus is younger than the cooldown
        """

        async def cooldown_passed(session: AsyncSession, now: datetime) -> None:
            last = await self._last_bonus(user_id, session)
            if last is not None and now < last.created_at + self.daily_bonus_cooldown:
                next_available = last.created_at + self.daily_bonus_cooldown
                raise AlreadyClaimed(
                    "Daily bonus already claimed",
                    next_bonus_available=next_available.isoformat(),
                )

        return await self.settle(
            user_id,
            GameTypeModel.daily_bonus,
            0,
            self.daily_bonus,
            {"bonus_amount": self.daily_bonus},
            guard=cooldown_passed,
        )

    async def _read_last_bonus(self, user_id: str) -> Optional[TransactionSchema]:
        async with self.Session() as session:
            return await self._last_bonus(user_id, session)

    async def get_bonus_status(self, user_id: str) -> Dict[str, Any]:
        last = await bounded(self._read_last_bonus(user_id), self.timeout, "Bonus status")
        if last is None:
            return {
                "can_claim": True,
                "bonus_amount": self.daily_bonus,
                "last_claimed_at": None,
                "next_bonus_available": None,
            }
        next_available = last.created_at + self.daily_bonus_cooldown
        return {
            "can_claim": self.clock() >= next_available,
            "bonus_amount": self.daily_bonus,
            "last_claimed_at": last.created_at,
            "next_bonus_available": next_available,
        }

    async def _read_transaction(self, user_id: str, transaction_id: UUID) -> Optional[TransactionSchema]:
        async with self.Session() as session:
            return await ReadData.read_transaction(transaction_id, user_id, session)

    async def get_transaction(self, user_id: str, transaction_id: UUID) -> Optional[TransactionSchema]:
        return await bounded(self._read_transaction(user_id, transaction_id), self.timeout, "Transaction read")

    async def _read_transactions(self, user_id: str, **filters) -> List[TransactionSchema]:
        async with self.Session() as session:
            return await ReadData.read_transactions(user_id, session, **filters)

    async def list_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        game_type: Optional[GameTypeModel] = None,
    ) -> List[TransactionSchema]:
        return await bounded(
            self._read_transactions(
                user_id,
                limit=limit,
                offset=offset,
                game_type=game_type.value if game_type else None,
            ),
            self.timeout,
            "Transaction list",
        )

    async def list_pending(
        self,
        user_id: str,
        game_type: GameTypeModel = GameTypeModel.case_opening,
        reference_prefix: Optional[str] = None,
    ) -> List[TransactionSchema]:
        """Debits still waiting for their credit, case openings by default."""
        return await bounded(
            self._read_transactions(
                user_id,
                limit=100,
                game_type=game_type.value,
                status=TransactionStatusModel.pending_credit.value,
                reference_prefix=reference_prefix,
            ),
            self.timeout,
            "Pending list",
        )
