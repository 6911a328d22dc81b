from sqlalchemy import JSON, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import Boolean, DateTime, Integer, BigInteger, String, Uuid
from uuid6 import uuid7

from casino.timeutils import utcnow

# JSONB on Postgres, plain JSON elsewhere (SQLite for local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Balance(Base):
    __tablename__ = "balances"
    user_id = Column(String, primary_key=True)
    amount = Column(BigInteger, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class GameTransaction(Base):
    __tablename__ = "transactions"
    transaction_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String, nullable=False, index=True)
    game_type = Column(String, nullable=False)
    bet_amount = Column(BigInteger, nullable=False)
    win_amount = Column(BigInteger, nullable=False)
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    result_data = Column(JSONType)
    status = Column(String, nullable=False, default="settled")
    reference = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "reference", name="uq_transactions_user_reference"),
        Index("ix_transactions_user_game_created", "user_id", "game_type", "created_at"),
    )


class BlackjackSession(Base):
    __tablename__ = "blackjack_sessions"
    session_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="in_progress")
    state = Column(JSONType, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)


class ActiveGame(Base):
    """One row per user with an in-progress blackjack session.

    The primary key on user_id makes claiming the slot an atomic test-and-set.
    """

    __tablename__ = "active_games"
    user_id = Column(String, primary_key=True)
    session_id = Column(Uuid, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class AuditEntry(Base):
    __tablename__ = "audit_log"
    audit_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String, index=True)
    action = Column(String, nullable=False)
    game_type = Column(String)
    bet_amount = Column(BigInteger)
    win_amount = Column(BigInteger)
    success = Column(Boolean, nullable=False)
    error_code = Column(String)
    ip_address = Column(String)
    user_agent = Column(String)
    details = Column(JSONType)
    created_at = Column(DateTime, default=utcnow)
