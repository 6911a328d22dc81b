from typing import Any, Dict, List

from casino.domain import blackjack
from casino.domain.roulette import RouletteOutcome
from casino.models.dc_models import (
    BlackjackResultModel,
    BlackjackStateModel,
    CardModel,
    CaseItemModel,
    CaseOpeningResultModel,
    CaseTypeDetailModel,
    CaseTypeSummaryModel,
    HandModel,
    RouletteResultModel,
    SessionStatusModel,
    TransactionModel,
)
from casino.models.schema_models import (
    BlackjackSessionSchema,
    CardSchema,
    CaseDrawSchema,
    CaseTypeSchema,
    TransactionSchema,
)


class DataConverter:
    """This class is used to convert stored data to the models sent to the client."""

    @staticmethod
    def convert_cards(cards: List[CardSchema]) -> List[CardModel]:
        return [CardModel(rank=card.rank, suit=card.suit) for card in cards]

    @staticmethod
    def convert_hands(game: BlackjackSessionSchema) -> List[HandModel]:
        scored = (game.outcome or {}).get("hands", [])
        hands = []
        for index, hand in enumerate(game.hands):
            value, soft = blackjack.hand_value(hand.cards)
            result = scored[index] if index < len(scored) else {}
            hands.append(
                HandModel(
                    cards=DataConverter.convert_cards(hand.cards),
                    value=value,
                    soft=soft,
                    status=hand.status,
                    bet_amount=hand.bet_amount,
                    outcome=result.get("outcome"),
                    win_amount=result.get("win_amount"),
                )
            )
        return hands

    @staticmethod
    def convert_session_to_state(game: BlackjackSessionSchema) -> BlackjackStateModel:
        """Convert a session to the state the player may see

        Args:
            game (BlackjackSessionSchema): Stored session, deck included

        Returns:
            BlackjackStateModel: The dealer's second card stays hidden while
            the game is in progress; the deck is never sent
        """
        in_progress = game.status == SessionStatusModel.in_progress
        dealer_cards = game.dealer_hand[:1] if in_progress else game.dealer_hand
        return BlackjackStateModel(
            game_id=game.session_id,
            status=game.status,
            hands=DataConverter.convert_hands(game),
            active_hand_index=game.active_hand_index,
            dealer_hand=DataConverter.convert_cards(dealer_cards),
            dealer_value=blackjack.hand_value(dealer_cards)[0],
            dealer_hidden=in_progress,
            total_bet=blackjack.total_bet(game),
            available_actions=blackjack.available_actions(game),
            expires_at=game.expires_at,
        )

    @staticmethod
    def convert_session_to_result(game: BlackjackSessionSchema) -> BlackjackResultModel:
        outcome = game.outcome or {}
        return BlackjackResultModel(
            game_id=game.session_id,
            hands=DataConverter.convert_hands(game),
            dealer_hand=DataConverter.convert_cards(game.dealer_hand),
            dealer_value=blackjack.hand_value(game.dealer_hand)[0],
            outcome=outcome.get("outcome", "unknown"),
            total_bet=blackjack.total_bet(game),
            win_amount=outcome.get("win_amount", 0),
        )

    @staticmethod
    def convert_transaction(transaction: TransactionSchema) -> TransactionModel:
        return TransactionModel(
            transaction_id=transaction.transaction_id,
            game_type=transaction.game_type,
            bet_amount=transaction.bet_amount,
            win_amount=transaction.win_amount,
            balance_before=transaction.balance_before,
            balance_after=transaction.balance_after,
            result_data=transaction.result_data,
            status=transaction.status,
            created_at=transaction.created_at,
        )

    @staticmethod
    def convert_roulette_outcome(outcome: RouletteOutcome) -> RouletteResultModel:
        return RouletteResultModel(**outcome.result_data())

    @staticmethod
    def convert_case_summary(case: CaseTypeSchema) -> CaseTypeSummaryModel:
        return CaseTypeSummaryModel(
            id=case.id,
            name=case.name,
            price=case.price,
            description=case.description,
            rarity_distribution=case.rarity_distribution,
        )

    @staticmethod
    def convert_case_detail(case: CaseTypeSchema) -> CaseTypeDetailModel:
        return CaseTypeDetailModel(
            id=case.id,
            name=case.name,
            price=case.price,
            description=case.description,
            rarity_distribution=case.rarity_distribution,
            value_multipliers=case.value_multipliers,
            items=[CaseItemModel(**item.model_dump()) for item in case.items],
        )

    @staticmethod
    def case_result_data(case: CaseTypeSchema, draw: CaseDrawSchema) -> Dict[str, Any]:
        """Audit payload of an opening, from which the response is rebuilt"""
        return {
            "case_type_id": case.id,
            "case_price": case.price,
            "opening_id": draw.opening_id,
            "item": draw.item.model_dump(),
            "currency_awarded": draw.currency_awarded,
            "timestamp": draw.timestamp.isoformat(),
        }

    @staticmethod
    def convert_case_opening(case: CaseTypeSchema, result_data: Dict[str, Any]) -> CaseOpeningResultModel:
        return CaseOpeningResultModel(
            case_type=DataConverter.convert_case_summary(case),
            item_won=CaseItemModel(**result_data["item"]),
            currency_awarded=result_data["currency_awarded"],
            opening_id=result_data["opening_id"],
            timestamp=result_data["timestamp"],
        )
