import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from casino import load_secrets
from casino.db import create_engine, create_session_factory
from casino.domain.case_catalog import DEFAULT_CASES
from casino.domain.case_opening import CaseOpeningResolver
from casino.domain.outcomes import RandomOutcomeProvider
from casino.domain.roulette import RouletteResolver
from casino.errors import CasinoError, ValidationError
from casino.models.schema_models import CaseTypeSchema
from casino.models.schemas import Base
from casino.routers import games, user
from casino.services.audit import AuditTrail, SettlementEventPublisher
from casino.services.blackjack_engine import BlackjackEngine
from casino.services.coordinator import SettlementCoordinator
from casino.services.idempotency import IdempotencyRegistry, KVStore, PreviewRegistry
from casino.services.kv_store import MemoryStore, RedisStore
from casino.services.ledger import BalanceLedger
from casino.services.session_store import GameSessionStore
from casino.timeutils import utcnow

logging.basicConfig(level=load_secrets.log_level)


def create_app(
    engine: Optional[AsyncEngine] = None,
    store: Optional[KVStore] = None,
    random_provider: Optional[RandomOutcomeProvider] = None,
    clock: Callable[[], datetime] = utcnow,
    cases: Optional[List[CaseTypeSchema]] = None,
    gateway_token: Optional[str] = load_secrets.gateway_token,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the application; arguments override the configured backends."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables and wire the engine components.
        This function is called to start the server.
        """
        db_engine = engine or create_engine()
        async with db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        Session = create_session_factory(db_engine)

        redis = None
        kv_store = store
        if kv_store is None and load_secrets.redis_url:
            kv_store = RedisStore.from_url(load_secrets.redis_url)
            redis = kv_store.redis
        elif kv_store is None:
            logging.warning("REDIS_URL is not set; idempotency records are kept in process memory")
            kv_store = MemoryStore()

        randomness = random_provider or RandomOutcomeProvider()
        timeout = load_secrets.store_timeout_seconds
        ledger = BalanceLedger(
            Session,
            starting_balance=load_secrets.starting_balance,
            daily_bonus=load_secrets.daily_bonus,
            daily_bonus_cooldown=timedelta(hours=load_secrets.daily_bonus_cooldown_hours),
            max_retries=load_secrets.ledger_max_retries,
            timeout=timeout,
            clock=clock,
        )
        coordinator = SettlementCoordinator(
            ledger=ledger,
            registry=IdempotencyRegistry(kv_store, load_secrets.idempotency_ttl_seconds, timeout),
            previews=PreviewRegistry(kv_store, load_secrets.preview_ttl_seconds, timeout),
            blackjack_engine=BlackjackEngine(
                GameSessionStore(Session, timeout),
                randomness,
                session_ttl=timedelta(seconds=load_secrets.blackjack_session_ttl_seconds),
                clock=clock,
            ),
            roulette_resolver=RouletteResolver(randomness),
            case_resolver=CaseOpeningResolver(cases or DEFAULT_CASES, randomness),
            audit=AuditTrail(Session),
            events=SettlementEventPublisher(redis),
            min_bet=load_secrets.min_bet,
            max_bet=load_secrets.max_bet,
            clock=clock,
        )
        app.state.coordinator = coordinator
        app.state.gateway_token = gateway_token

        scheduler = AsyncIOScheduler()
        # Forfeit blackjack sessions that were abandoned past their expiry
        scheduler.add_job(coordinator.expire_blackjack_sessions, "interval", seconds=60)
        if isinstance(kv_store, MemoryStore):
            scheduler.add_job(kv_store.purge_expired, "interval", seconds=60)
        if start_scheduler:
            scheduler.start()
        logging.info("Start Server")
        try:
            yield
        finally:
            if scheduler.running:
                scheduler.shutdown()
            await kv_store.close()
            if engine is None:
                await db_engine.dispose()
            logging.info("Stop Server")

    app = FastAPI(title="Casino Game Engine", lifespan=lifespan)

    @app.exception_handler(CasinoError)
    async def casino_error_handler(request: Request, exc: CasinoError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else ValidationError.default_message
        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"error": ValidationError.__name__, "message": message},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(games.games_router)
    app.include_router(user.user_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("casino.main:app", host="0.0.0.0", port=8080)
