from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from casino.authentication.verified_identity import VerifiedIdentity
from casino.models.dc_models import (
    BalanceModel,
    DailyBonusResponseModel,
    DailyBonusStatusModel,
    GameTypeModel,
    TransactionModel,
)
from casino.routers.games import get_coordinator
from casino.services.audit import RequestContext
from casino.services.coordinator import SettlementCoordinator

user_router = APIRouter(prefix="/user", tags=["user"])


class BalanceAPI:
    @staticmethod
    @user_router.get("/balance", response_model=BalanceModel)
    async def get_balance(
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.get_balance(context)

    @staticmethod
    @user_router.get("/transactions", response_model=List[TransactionModel])
    async def get_transactions(
        limit: int = Query(default=50, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
        game_type: Optional[GameTypeModel] = Query(default=None, alias="gameType"),
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.list_transactions(context, limit, offset, game_type)


class DailyBonusAPI:
    @staticmethod
    @user_router.post("/daily-bonus", response_model=DailyBonusResponseModel)
    async def claim_daily_bonus(
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.claim_daily_bonus(context)

    @staticmethod
    @user_router.get("/daily-bonus", response_model=DailyBonusStatusModel)
    async def daily_bonus_status(
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.get_daily_bonus_status(context)
