from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from casino.authentication.verified_identity import VerifiedIdentity
from casino.converter import DataConverter
from casino.domain import blackjack
from casino.domain.roulette import RouletteResolver
from casino.models.dc_models import (
    BlackjackActionModel,
    BlackjackActionResponseModel,
    BlackjackStartModel,
    BlackjackStartResponseModel,
    BlackjackStateModel,
    CaseCompleteModel,
    CaseCompleteResponseModel,
    CaseOpenModel,
    CaseOpenResponseModel,
    CaseStartModel,
    CaseStartResponseModel,
    CaseTypeDetailModel,
    CaseTypeSummaryModel,
    RouletteBetModel,
    RouletteBetResponseModel,
    TransactionModel,
)
from casino.services.audit import RequestContext
from casino.services.coordinator import SettlementCoordinator

games_router = APIRouter(prefix="/games", tags=["games"])


def get_coordinator(request: Request) -> SettlementCoordinator:
    return request.app.state.coordinator


class RouletteAPI:
    @staticmethod
    @games_router.get("/roulette")
    async def roulette_info(coordinator: SettlementCoordinator = Depends(get_coordinator)):
        return {
            "name": "European Roulette",
            "betTypes": RouletteResolver.bet_types(),
            "wheel": RouletteResolver.wheel_layout(),
            "minBet": coordinator.min_bet,
            "maxBet": coordinator.max_bet,
        }

    @staticmethod
    @games_router.post("/roulette/bet", response_model=RouletteBetResponseModel)
    async def place_bet(
        body: RouletteBetModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.roulette_bet(context, body)


class BlackjackAPI:
    @staticmethod
    @games_router.get("/blackjack")
    async def blackjack_info(coordinator: SettlementCoordinator = Depends(get_coordinator)):
        return {**blackjack.GAME_INFO, "minBet": coordinator.min_bet, "maxBet": coordinator.max_bet}

    @staticmethod
    @games_router.post(
        "/blackjack/start",
        response_model=BlackjackStartResponseModel,
        response_model_exclude_none=True,
    )
    async def start_game(
        body: BlackjackStartModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.blackjack_start(context, body)

    @staticmethod
    @games_router.post(
        "/blackjack/action",
        response_model=BlackjackActionResponseModel,
        response_model_exclude_none=True,
    )
    async def take_action(
        body: BlackjackActionModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.blackjack_action(context, body)

    @staticmethod
    @games_router.get(
        "/blackjack/active",
        response_model=Optional[BlackjackStateModel],
        response_model_exclude_none=True,
    )
    async def active_game(
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.get_active_blackjack(context)

    @staticmethod
    @games_router.get(
        "/blackjack/{game_id}",
        response_model=BlackjackStateModel,
        response_model_exclude_none=True,
    )
    async def game_state(
        game_id: UUID,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.get_blackjack_state(context, game_id)


class CaseAPI:
    @staticmethod
    @games_router.get("/cases", response_model=List[CaseTypeSummaryModel])
    async def list_cases(coordinator: SettlementCoordinator = Depends(get_coordinator)):
        return [DataConverter.convert_case_summary(case) for case in coordinator.case_resolver.list_cases()]

    @staticmethod
    @games_router.get("/cases/pending", response_model=List[TransactionModel])
    async def pending_openings(
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.list_pending_cases(context)

    @staticmethod
    @games_router.get("/cases/{case_type_id}", response_model=CaseTypeDetailModel)
    async def case_detail(case_type_id: str, coordinator: SettlementCoordinator = Depends(get_coordinator)):
        return DataConverter.convert_case_detail(coordinator.case_resolver.get_case(case_type_id))

    @staticmethod
    @games_router.post(
        "/cases/open",
        response_model=CaseOpenResponseModel,
        response_model_exclude_none=True,
    )
    async def open_case(
        body: CaseOpenModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.open_case(context, body)

    @staticmethod
    @games_router.post("/cases/start", response_model=CaseStartResponseModel)
    async def start_opening(
        body: CaseStartModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.start_case(context, body)

    @staticmethod
    @games_router.post("/cases/complete", response_model=CaseCompleteResponseModel)
    async def complete_opening(
        body: CaseCompleteModel,
        context: RequestContext = Depends(VerifiedIdentity.request_context),
        coordinator: SettlementCoordinator = Depends(get_coordinator),
    ):
        return await coordinator.complete_case(context, body)
