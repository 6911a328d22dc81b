"""Settlement Coordinator.

Every money-moving request goes through here: validate, resolve the outcome,
settle with the ledger, audit, publish, respond. A game outcome is settled
exactly once; two-phase games hold their stakes as pending debits until then.
Resolvers and the blackjack engine never write to the ledger.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from casino.converter import DataConverter
from casino.domain import blackjack, roulette
from casino.domain.case_opening import CaseOpeningResolver
from casino.domain.roulette import RouletteResolver
from casino.errors import (
    CasinoError,
    GameAlreadyCompleted,
    GameNotFound,
    InsufficientFunds,
    SettlementFailure,
    ValidationError,
)
from casino.models.dc_models import (
    BalanceModel,
    BlackjackActionModel,
    BlackjackActionName,
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
    DailyBonusResponseModel,
    DailyBonusStatusModel,
    GameTypeModel,
    RouletteBetModel,
    RouletteBetResponseModel,
    SessionStatusModel,
    TransactionModel,
    TransactionStatusModel,
)
from casino.models.schema_models import BlackjackSessionSchema, CaseDrawSchema, CaseTypeSchema, TransactionSchema
from casino.services.audit import AuditRecord, AuditTrail, RequestContext, SettlementEventPublisher
from casino.services.blackjack_engine import BlackjackEngine
from casino.services.idempotency import IdempotencyRegistry, PreviewRegistry
from casino.services.keyed_locks import KeyedLocks
from casino.services.ledger import BalanceLedger
from casino.timeutils import utcnow

ResponseT = TypeVar("ResponseT", bound=BaseModel)

CASE_START_PHASE = "start"


class SettlementCoordinator:
    def __init__(
        self,
        ledger: BalanceLedger,
        registry: IdempotencyRegistry,
        previews: PreviewRegistry,
        blackjack_engine: BlackjackEngine,
        roulette_resolver: RouletteResolver,
        case_resolver: CaseOpeningResolver,
        audit: AuditTrail,
        events: SettlementEventPublisher,
        min_bet: int = 1,
        max_bet: int = 10000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.registry = registry
        self.previews = previews
        self.blackjack_engine = blackjack_engine
        self.roulette_resolver = roulette_resolver
        self.case_resolver = case_resolver
        self.audit = audit
        self.events = events
        self.min_bet = min_bet
        self.max_bet = max_bet
        self.clock = clock
        # one blackjack transition at a time per user within this process
        self._game_locks = KeyedLocks()

    def _check_bet(self, amount: int) -> None:
        if amount < self.min_bet or amount > self.max_bet:
            raise ValidationError(f"Bet must be between {self.min_bet} and {self.max_bet}")

    async def _idempotent(
        self,
        operation: str,
        context: RequestContext,
        request_id: Optional[str],
        response_model: Type[ResponseT],
        run: Callable[[], Awaitable[ResponseT]],
    ) -> ResponseT:
        """Run ``run`` at most once per (operation, user, request_id) within the TTL."""
        if request_id is None:
            return await run()

        key = IdempotencyRegistry.key(operation, context.user_id, request_id)
        reservation = await self.registry.check_and_reserve(key)
        if not reservation.is_new:
            return response_model.model_validate(reservation.cached_result)
        try:
            response = await run()
        except Exception:
            await self.registry.release(key)
            raise
        try:
            await self.registry.complete(key, response.model_dump(mode="json"))
        except SettlementFailure:
            # committed already; the stored reference answers a retry
            logging.error(f"Could not record the result of {key}, returning the committed response")
        return response

    # ==== Balance =============================================================

    async def get_balance(self, context: RequestContext) -> BalanceModel:
        balance = await self.ledger.get_balance(context.user_id)
        return BalanceModel(user_id=context.user_id, balance=balance)

    async def list_transactions(
        self,
        context: RequestContext,
        limit: int = 50,
        offset: int = 0,
        game_type: Optional[GameTypeModel] = None,
    ) -> List[TransactionModel]:
        transactions = await self.ledger.list_transactions(context.user_id, limit, offset, game_type)
        return [DataConverter.convert_transaction(transaction) for transaction in transactions]

    # ==== Roulette ============================================================

    async def roulette_bet(self, context: RequestContext, body: RouletteBetModel) -> RouletteBetResponseModel:
        async with self.audit.attempt(context, "roulette_bet", GameTypeModel.roulette, body.amount) as record:
            self._check_bet(body.amount)
            bet = roulette.normalize_bet(body.bet_type, body.bet_value, body.amount)
            outcome = self.roulette_resolver.resolve(bet)
            transaction = await self.ledger.settle(
                context.user_id,
                GameTypeModel.roulette,
                bet.amount,
                outcome.win_amount,
                outcome.result_data(),
            )
            record.win_amount = transaction.win_amount
            record.details = {
                "transaction_id": str(transaction.transaction_id),
                "winning_number": outcome.winning_number,
            }

        await self.events.publish(transaction)
        return RouletteBetResponseModel(
            result=DataConverter.convert_roulette_outcome(outcome),
            bet_amount=transaction.bet_amount,
            win_amount=transaction.win_amount,
            net_result=transaction.win_amount - transaction.bet_amount,
            new_balance=transaction.balance_after,
            game_id=transaction.transaction_id,
        )

    # ==== Blackjack ===========================================================
    #
    # Stakes are held as pending_credit debits: the bet at the deal, and the
    # extra stake of a double or split when it is taken. Completion and forfeit
    # commit one settlement that credits the payout and resolves every held
    # stake of the game.

    @staticmethod
    def _stake_reference(game: BlackjackSessionSchema, action: Optional[BlackjackActionName] = None) -> str:
        if action is None:
            return f"blackjack:{game.session_id}"
        if action == BlackjackActionName.double:
            return f"blackjack:{game.session_id}:double:{game.active_hand_index}"
        return f"blackjack:{game.session_id}:{action.value}"

    async def _hold_stake(
        self,
        game: BlackjackSessionSchema,
        amount: int,
        action: Optional[BlackjackActionName] = None,
    ) -> TransactionSchema:
        """Debit a stake of ``game``; a repeated call returns the first debit."""
        return await self.ledger.settle(
            game.user_id,
            GameTypeModel.blackjack,
            amount,
            0,
            {"game_id": str(game.session_id), "phase": action.value if action else "deal"},
            reference=self._stake_reference(game, action),
            status=TransactionStatusModel.pending_credit,
        )

    async def _settle_blackjack(
        self, game: BlackjackSessionSchema
    ) -> Tuple[BlackjackSessionSchema, TransactionSchema]:
        """Settle a completed session once, then persist it as completed.

        The held stakes are resolved by the settlement. When they differ from
        the stake on the table, the difference is debited or refunded in the
        same transaction, so the game nets ``payout - total_bet`` either way.
        The reference makes a repeated call return the first transaction, so
        a completion interrupted after the ledger commit can simply be rerun.
        """
        held = await self.ledger.list_pending(
            game.user_id, GameTypeModel.blackjack, reference_prefix=self._stake_reference(game)
        )
        held_amount = sum(stake.bet_amount for stake in held)
        on_table = blackjack.total_bet(game)
        transaction = await self.ledger.settle(
            game.user_id,
            GameTypeModel.blackjack,
            max(0, on_table - held_amount),
            game.outcome["win_amount"] + max(0, held_amount - on_table),
            blackjack.result_data(game),
            reference=f"{self._stake_reference(game)}:settle",
            resolves=[stake.transaction_id for stake in held],
        )
        game = game.model_copy(update={"transaction_id": transaction.transaction_id})
        game = await self.blackjack_engine.finish(game)
        await self.events.publish(transaction)
        return game, transaction

    async def _forfeit(self, game: BlackjackSessionSchema) -> None:
        """Settle an expired in-progress session as a loss and free the slot."""
        forfeited = blackjack.forfeit(game)
        stake = blackjack.total_bet(forfeited)
        record = AuditRecord(
            context=RequestContext(user_id=game.user_id),
            action="blackjack_forfeit",
            game_type=GameTypeModel.blackjack,
            bet_amount=stake,
            win_amount=0,
            details={"game_id": str(game.session_id)},
        )
        try:
            await self._settle_blackjack(forfeited)
        except InsufficientFunds:
            # only reachable when a stake debit never committed
            logging.error(
                f"Expired blackjack session {game.session_id} of {game.user_id} closed without "
                f"settlement: balance no longer covers the unheld stake of {stake}"
            )
            record.success = False
            record.error_code = InsufficientFunds.__name__
            await self.blackjack_engine.finish(forfeited)
        await self.audit.write(record)

    async def _recover_slot(self, user_id: str) -> None:
        """Clear a slot left by an interrupted completion or an expired game."""
        active = await self.blackjack_engine.get_active(user_id)
        if active is None:
            return
        if active.status == SessionStatusModel.completed:
            logging.warning(f"Finishing interrupted settlement of blackjack session {active.session_id}")
            await self._settle_blackjack(active)
        elif self.blackjack_engine.is_expired(active):
            logging.info(f"Forfeiting expired blackjack session {active.session_id}")
            await self._forfeit(active)

    async def blackjack_start(
        self, context: RequestContext, body: BlackjackStartModel
    ) -> BlackjackStartResponseModel:
        async with self.audit.attempt(context, "blackjack_start", GameTypeModel.blackjack, body.amount) as record:
            self._check_bet(body.amount)
            async with self._game_locks.hold(context.user_id):
                await self._recover_slot(context.user_id)
                game = await self.blackjack_engine.start(context.user_id, body.amount)
                record.details = {"game_id": str(game.session_id)}
                try:
                    stake = await self._hold_stake(game, body.amount)
                except InsufficientFunds:
                    await self.blackjack_engine.discard(game)
                    raise

                if game.status == SessionStatusModel.in_progress:
                    return BlackjackStartResponseModel(
                        game_id=game.session_id,
                        game_state=DataConverter.convert_session_to_state(game),
                        bet_amount=body.amount,
                        new_balance=stake.balance_after,
                    )

                # natural on the deal
                game, transaction = await self._settle_blackjack(game)
                record.win_amount = game.outcome["win_amount"]
                return BlackjackStartResponseModel(
                    game_id=game.session_id,
                    game_result=DataConverter.convert_session_to_result(game),
                    bet_amount=body.amount,
                    game_complete=True,
                    win_amount=game.outcome["win_amount"],
                    new_balance=transaction.balance_after,
                )

    async def blackjack_action(
        self, context: RequestContext, body: BlackjackActionModel
    ) -> BlackjackActionResponseModel:
        action_name = f"blackjack_{body.action.value}"
        async with self.audit.attempt(context, action_name, GameTypeModel.blackjack) as record:
            record.details = {"game_id": str(body.game_id)}
            async with self._game_locks.hold(context.user_id):
                game = await self.blackjack_engine.load(body.game_id, context.user_id)
                if game.status == SessionStatusModel.in_progress and self.blackjack_engine.is_expired(game):
                    await self._forfeit(game)
                    raise GameAlreadyCompleted("Game expired and was forfeited")

                updated = self.blackjack_engine.act(game, body.action, body.hand_index)
                extra = blackjack.additional_stake(game, body.action)
                balance_after = None
                if extra:
                    stake = await self._hold_stake(game, extra, body.action)
                    balance_after = stake.balance_after

                record.bet_amount = blackjack.total_bet(updated)
                if updated.status == SessionStatusModel.in_progress:
                    updated = await self.blackjack_engine.save(updated)
                    return BlackjackActionResponseModel(
                        game_id=updated.session_id,
                        game_complete=False,
                        game_state=DataConverter.convert_session_to_state(updated),
                        bet_amount=blackjack.total_bet(updated),
                        new_balance=balance_after,
                    )

                updated, transaction = await self._settle_blackjack(updated)
                total_bet = blackjack.total_bet(updated)
                win_amount = updated.outcome["win_amount"]
                record.win_amount = win_amount
                return BlackjackActionResponseModel(
                    game_id=updated.session_id,
                    game_complete=True,
                    game_result=DataConverter.convert_session_to_result(updated),
                    bet_amount=total_bet,
                    win_amount=win_amount,
                    net_result=win_amount - total_bet,
                    new_balance=transaction.balance_after,
                )

    async def get_blackjack_state(self, context: RequestContext, game_id) -> BlackjackStateModel:
        game = await self.blackjack_engine.load(game_id, context.user_id)
        return DataConverter.convert_session_to_state(game)

    async def get_active_blackjack(self, context: RequestContext) -> Optional[BlackjackStateModel]:
        game = await self.blackjack_engine.get_active(context.user_id)
        if game is None or game.status != SessionStatusModel.in_progress:
            return None
        return DataConverter.convert_session_to_state(game)

    async def expire_blackjack_sessions(self) -> int:
        """Forfeit every expired in-progress session. Scheduled job."""
        expired = await self.blackjack_engine.store.list_expired(self.clock())
        closed = 0
        for session_id in expired:
            game = await self.blackjack_engine.store.get(session_id)
            if game is None:
                continue
            try:
                async with self._game_locks.hold(game.user_id):
                    await self._recover_slot(game.user_id)
                closed += 1
            except CasinoError as e:
                logging.error(f"Could not expire blackjack session {session_id}: {e.code} {e.message}")
        if closed:
            logging.info(f"Expired {closed} blackjack sessions")
        return closed

    # ==== Cases ===============================================================

    def _case_opening_result(self, transaction: TransactionSchema):
        case = self.case_resolver.get_case(transaction.result_data["case_type_id"])
        return case, DataConverter.convert_case_opening(case, transaction.result_data)

    async def open_case(self, context: RequestContext, body: CaseOpenModel) -> CaseOpenResponseModel:
        case = self.case_resolver.get_case(body.case_type_id)
        if body.preview_only:
            return await self._preview_case(context, case)

        async def run() -> CaseOpenResponseModel:
            return await self._open_case(context, case, body.request_id)

        return await self._idempotent("case_open", context, body.request_id, CaseOpenResponseModel, run)

    async def _preview_case(self, context: RequestContext, case: CaseTypeSchema) -> CaseOpenResponseModel:
        draw = self.case_resolver.draw(case.id, self.clock())
        await self.previews.register(context.user_id, draw)
        logging.info(f"Case preview {draw.opening_id} for {context.user_id}: {draw.item.id}")
        return CaseOpenResponseModel(
            preview=True,
            opening_result=DataConverter.convert_case_opening(case, DataConverter.case_result_data(case, draw)),
            case_price=case.price,
            net_result=draw.currency_awarded - case.price,
        )

    async def _open_case(
        self, context: RequestContext, case: CaseTypeSchema, request_id: Optional[str]
    ) -> CaseOpenResponseModel:
        async with self.audit.attempt(context, "case_open", GameTypeModel.case_opening, case.price) as record:
            draw = self.case_resolver.draw(case.id, self.clock())
            transaction = await self.ledger.settle(
                context.user_id,
                GameTypeModel.case_opening,
                case.price,
                draw.currency_awarded,
                DataConverter.case_result_data(case, draw),
                reference=f"case_open:{request_id}" if request_id else None,
            )
            record.win_amount = transaction.win_amount
            record.details = {"transaction_id": str(transaction.transaction_id), "case_type_id": case.id}

        await self.events.publish(transaction)
        # rebuilt from the stored transaction so a replay answers identically
        case, opening_result = self._case_opening_result(transaction)
        return CaseOpenResponseModel(
            opening_result=opening_result,
            case_price=transaction.bet_amount,
            net_result=transaction.win_amount - transaction.bet_amount,
            new_balance=transaction.balance_after,
            transaction_id=transaction.transaction_id,
        )

    async def start_case(self, context: RequestContext, body: CaseStartModel) -> CaseStartResponseModel:
        case = self.case_resolver.get_case(body.case_type_id)

        async def run() -> CaseStartResponseModel:
            async with self.audit.attempt(context, "case_start", GameTypeModel.case_opening, case.price) as record:
                transaction = await self.ledger.settle(
                    context.user_id,
                    GameTypeModel.case_opening,
                    case.price,
                    0,
                    {"case_type_id": case.id, "case_price": case.price, "phase": CASE_START_PHASE},
                    reference=f"case_start:{body.request_id}" if body.request_id else None,
                    status=TransactionStatusModel.pending_credit,
                )
                record.details = {"opening_id": str(transaction.transaction_id)}
            logging.info(f"Case opening {transaction.transaction_id} started for {context.user_id}")
            return CaseStartResponseModel(
                opening_id=transaction.transaction_id,
                case_type=DataConverter.convert_case_summary(case),
                case_price=case.price,
                balance_after_deduction=transaction.balance_after,
                transaction_id=transaction.transaction_id,
            )

        return await self._idempotent("case_start", context, body.request_id, CaseStartResponseModel, run)

    async def _replayed_draw(self, context: RequestContext, case: CaseTypeSchema, body: CaseCompleteModel):
        """Validate a replayed preview and take it out of the registry."""
        draw = self.case_resolver.validate_replay(case.id, body.predetermined_winner, self.clock())
        preview = await self.previews.consume(context.user_id, body.predetermined_winner.opening_id)
        if (
            preview is None
            or preview.case_type_id != case.id
            or preview.item.id != draw.item.id
            or preview.currency_awarded != draw.currency_awarded
        ):
            raise ValidationError("Replayed outcome does not match a server-issued preview")
        return draw, preview

    async def complete_case(self, context: RequestContext, body: CaseCompleteModel) -> CaseCompleteResponseModel:
        case = self.case_resolver.get_case(body.case_type_id)
        async with self.audit.attempt(context, "case_complete", GameTypeModel.case_opening, 0) as record:
            record.details = {"opening_id": str(body.opening_id)}
            pending = await self.ledger.get_transaction(context.user_id, body.opening_id)
            if (
                pending is None
                or pending.game_type != GameTypeModel.case_opening
                or (pending.result_data or {}).get("phase") != CASE_START_PHASE
            ):
                raise GameNotFound("Case opening not found")
            if pending.result_data.get("case_type_id") != case.id:
                raise ValidationError("Opening belongs to a different case type")
            if pending.status != TransactionStatusModel.pending_credit:
                raise GameAlreadyCompleted("This opening was already completed")

            preview: Optional[CaseDrawSchema] = None
            if body.predetermined_winner is not None:
                draw, preview = await self._replayed_draw(context, case, body)
            else:
                draw = self.case_resolver.draw(case.id, self.clock())

            result_data = {
                **DataConverter.case_result_data(case, draw),
                "opening_id": str(pending.transaction_id),
                "replayed": preview is not None,
            }
            try:
                transaction = await self.ledger.settle(
                    context.user_id,
                    GameTypeModel.case_opening,
                    0,
                    draw.currency_awarded,
                    result_data,
                    resolves=[pending.transaction_id],
                )
            except CasinoError:
                if preview is not None:
                    await self.previews.register(context.user_id, preview)
                raise
            record.win_amount = transaction.win_amount

        await self.events.publish(transaction)
        _, opening_result = self._case_opening_result(transaction)
        return CaseCompleteResponseModel(
            opening_result=opening_result,
            currency_awarded=transaction.win_amount,
            net_result=transaction.win_amount - case.price,
            new_balance=transaction.balance_after,
            transaction_id=transaction.transaction_id,
        )

    async def list_pending_cases(self, context: RequestContext) -> List[TransactionModel]:
        pending = await self.ledger.list_pending(context.user_id)
        return [DataConverter.convert_transaction(transaction) for transaction in pending]

    # ==== Daily bonus =========================================================

    async def claim_daily_bonus(self, context: RequestContext) -> DailyBonusResponseModel:
        async with self.audit.attempt(context, "daily_bonus", GameTypeModel.daily_bonus, 0) as record:
            transaction = await self.ledger.claim_daily_bonus(context.user_id)
            record.win_amount = transaction.win_amount

        await self.events.publish(transaction)
        return DailyBonusResponseModel(
            bonus_amount=transaction.win_amount,
            previous_balance=transaction.balance_before,
            new_balance=transaction.balance_after,
            next_bonus_available=transaction.created_at + self.ledger.daily_bonus_cooldown,
        )

    async def get_daily_bonus_status(self, context: RequestContext) -> DailyBonusStatusModel:
        status = await self.ledger.get_bonus_status(context.user_id)
        return DailyBonusStatusModel(**status)
