"""Audit trail and settlement events.

Every settlement attempt, successful or not, leaves one ``audit_log`` row and
one log line. Successful settlements are also published on a Redis channel
when Redis is configured.
"""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from uuid6 import uuid7

from casino.crud import CreateData
from casino.errors import CasinoError
from casino.models.dc_models import GameTypeModel
from casino.models.schema_models import TransactionSchema
from casino.models.schemas import AuditEntry
from casino.timeutils import utcnow

SETTLEMENT_CHANNEL = "casino:settlements"


@dataclass(frozen=True)
class RequestContext:
    """Verified caller of one request, as supplied by the gateway."""

    user_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class AuditRecord:
    context: RequestContext
    action: str
    game_type: Optional[GameTypeModel] = None
    bet_amount: Optional[int] = None
    win_amount: Optional[int] = None
    success: bool = True
    error_code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class AuditTrail:
    def __init__(self, Session: async_sessionmaker):
        self.Session = Session

    async def write(self, record: AuditRecord) -> None:
        game_type = record.game_type.value if record.game_type else None
        line = (
            f"audit action={record.action} user={record.context.user_id} game={game_type} "
            f"bet={record.bet_amount} win={record.win_amount} success={record.success} "
            f"error={record.error_code} ip={record.context.ip_address}"
        )
        if record.success:
            logging.info(line)
        else:
            logging.warning(line)

        entry = AuditEntry(
            audit_id=uuid7(),
            user_id=record.context.user_id,
            action=record.action,
            game_type=game_type,
            bet_amount=record.bet_amount,
            win_amount=record.win_amount,
            success=record.success,
            error_code=record.error_code,
            ip_address=record.context.ip_address,
            user_agent=record.context.user_agent,
            details=record.details or None,
            created_at=utcnow(),
        )
        try:
            async with self.Session() as session:
                async with session.begin():
                    await CreateData.add_audit_entry(entry, session)
        except SQLAlchemyError:
            # the settlement already happened; losing the row must not fail the request
            logging.exception(f"Failed to write audit entry for {record.context.user_id}")

    @asynccontextmanager
    async def attempt(
        self,
        context: RequestContext,
        action: str,
        game_type: Optional[GameTypeModel] = None,
        bet_amount: Optional[int] = None,
    ) -> AsyncIterator[AuditRecord]:
        """Audit the enclosed settlement attempt.

        The block fills in ``win_amount`` and ``details``; errors are recorded
        with their code and re-raised.
        """
        record = AuditRecord(context=context, action=action, game_type=game_type, bet_amount=bet_amount)
        try:
            yield record
        except Exception as e:
            record.success = False
            record.error_code = e.code if isinstance(e, CasinoError) else type(e).__name__
            await self.write(record)
            raise
        await self.write(record)


class SettlementEventPublisher:
    def __init__(self, redis: Optional[Redis] = None):
        self.redis = redis

    async def publish(self, transaction: TransactionSchema) -> None:
        payload = json.dumps(
            {
                "transaction_id": str(transaction.transaction_id),
                "user_id": transaction.user_id,
                "game_type": transaction.game_type.value,
                "bet_amount": transaction.bet_amount,
                "win_amount": transaction.win_amount,
                "balance_after": transaction.balance_after,
                "status": transaction.status.value,
            }
        )
        if self.redis is None:
            logging.debug(f"Settlement event: {payload}")
            return
        try:
            await self.redis.publish(SETTLEMENT_CHANNEL, payload)
        except RedisError as e:
            logging.error(f"Failed to publish settlement event: {e}")
