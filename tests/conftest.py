"""
Shared fixtures: a SQLite database per test, the in-process TTL store,
scripted randomness and controllable clocks.
"""

import random
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from casino.db import create_session_factory
from casino.domain.case_catalog import DEFAULT_CASES
from casino.domain.case_opening import CaseOpeningResolver
from casino.domain.outcomes import RandomOutcomeProvider, fresh_deck
from casino.domain.roulette import RouletteResolver
from casino.main import create_app
from casino.models.schema_models import CardSchema
from casino.models.schemas import Base
from casino.services.audit import AuditTrail, RequestContext, SettlementEventPublisher
from casino.services.blackjack_engine import BlackjackEngine
from casino.services.coordinator import SettlementCoordinator
from casino.services.idempotency import IdempotencyRegistry, PreviewRegistry
from casino.services.kv_store import MemoryStore
from casino.services.ledger import BalanceLedger
from casino.services.session_store import GameSessionStore

SUIT_CODES = {"S": "spades", "H": "hearts", "D": "diamonds", "C": "clubs"}


def card(code: str) -> CardSchema:
    """``"AS"`` -> ace of spades, ``"10H"`` -> ten of hearts."""
    return CardSchema(rank=code[:-1], suit=SUIT_CODES[code[-1]])


def cards(*codes: str) -> List[CardSchema]:
    return [card(code) for code in codes]


def stacked_deck(*codes: str) -> List[CardSchema]:
    """A full deck whose first draws are ``codes`` in order.

    The deal order is player, player, dealer, dealer, then any hits.
    """
    top = cards(*codes)
    used = {(c.rank, c.suit) for c in top}
    rest = [c for c in fresh_deck() if (c.rank, c.suit) not in used]
    # cards are drawn from the end
    return list(reversed(top + rest))


class Clock:
    def __init__(self, now: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MonotonicClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedOutcomes(RandomOutcomeProvider):
    """Outcome provider with queued roulette numbers and decks.

    Anything not scripted falls back to a seeded generator.
    """

    def __init__(self, seed: int = 7):
        super().__init__(random.Random(seed))
        self.numbers: List[int] = []
        self.decks: List[List[CardSchema]] = []

    def script_numbers(self, numbers: Iterable[int]) -> None:
        self.numbers.extend(numbers)

    def script_deck(self, *codes: str) -> None:
        self.decks.append(stacked_deck(*codes))

    def roulette_number(self) -> int:
        if self.numbers:
            return self.numbers.pop(0)
        return super().roulette_number()

    def shuffled_deck(self) -> List[CardSchema]:
        if self.decks:
            return self.decks.pop(0)
        return super().shuffled_deck()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def monotonic() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def outcomes() -> ScriptedOutcomes:
    return ScriptedOutcomes()


@pytest.fixture
def store(monotonic) -> MemoryStore:
    return MemoryStore(clock=monotonic)


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'casino-test.sqlite3'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def Session(engine):
    return create_session_factory(engine)


def build_ledger(Session, clock, starting_balance: int = 10000, **kwargs) -> BalanceLedger:
    return BalanceLedger(Session, starting_balance=starting_balance, clock=clock, **kwargs)


@pytest.fixture
def ledger(Session, clock) -> BalanceLedger:
    return build_ledger(Session, clock)


def build_coordinator(
    Session,
    store: MemoryStore,
    outcomes: RandomOutcomeProvider,
    clock,
    starting_balance: int = 10000,
) -> SettlementCoordinator:
    return SettlementCoordinator(
        ledger=build_ledger(Session, clock, starting_balance),
        registry=IdempotencyRegistry(store, ttl_seconds=30),
        previews=PreviewRegistry(store, ttl_seconds=300),
        blackjack_engine=BlackjackEngine(
            GameSessionStore(Session),
            outcomes,
            session_ttl=timedelta(hours=1),
            clock=clock,
        ),
        roulette_resolver=RouletteResolver(outcomes),
        case_resolver=CaseOpeningResolver(DEFAULT_CASES, outcomes),
        audit=AuditTrail(Session),
        events=SettlementEventPublisher(),
        clock=clock,
    )


@pytest.fixture
def coordinator(Session, store, outcomes, clock) -> SettlementCoordinator:
    return build_coordinator(Session, store, outcomes, clock)


@pytest.fixture
def alice() -> RequestContext:
    return RequestContext(user_id="alice", ip_address="10.0.0.1", user_agent="pytest")


@pytest.fixture
def bob() -> RequestContext:
    return RequestContext(user_id="bob", ip_address="10.0.0.2", user_agent="pytest")


@pytest_asyncio.fixture
async def app(engine, store, outcomes, clock):
    application = create_app(
        engine=engine,
        store=store,
        random_provider=outcomes,
        clock=clock,
        gateway_token=None,
        start_scheduler=False,
    )
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
        yield http


def headers(user_id: Optional[str] = "alice", token: Optional[str] = None) -> dict:
    result = {}
    if user_id is not None:
        result["X-User-Id"] = user_id
    if token is not None:
        result["X-Gateway-Token"] = token
    return result
