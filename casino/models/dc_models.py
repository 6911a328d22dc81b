from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GameTypeModel(str, Enum):
    roulette = "roulette"
    blackjack = "blackjack"
    case_opening = "case_opening"
    daily_bonus = "daily_bonus"


class TransactionStatusModel(str, Enum):
    settled = "settled"
    pending_credit = "pending_credit"  # first phase of a two-phase case opening
    credited = "credited"


class SessionStatusModel(str, Enum):
    in_progress = "in_progress"
    completed = "completed"


class HandStatusModel(str, Enum):
    active = "active"
    stood = "stood"
    busted = "busted"
    blackjack = "blackjack"
    doubled = "doubled"
    split_pending = "split_pending"  # second hand of a split, waiting for its turn


class BlackjackActionName(str, Enum):
    hit = "hit"
    stand = "stand"
    double = "double"
    split = "split"


class CamelModel(BaseModel):
    """Wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==============================================================================
# ==== Requests ================================================================
# ==============================================================================


class RouletteBetModel(CamelModel):
    amount: int
    bet_type: str = Field(min_length=1, max_length=20)
    bet_value: Union[int, str, None] = None


class BlackjackStartModel(CamelModel):
    amount: int


class BlackjackActionModel(CamelModel):
    game_id: UUID
    action: BlackjackActionName
    hand_index: Optional[int] = Field(default=None, ge=0, le=3)


class CaseOpenModel(CamelModel):
    case_type_id: str = Field(min_length=1)
    preview_only: bool = False
    request_id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class CaseStartModel(CamelModel):
    case_type_id: str = Field(min_length=1)
    request_id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class CaseTypeRefModel(CamelModel):
    id: str
    price: int
    name: Optional[str] = None


class CaseItemRefModel(CamelModel):
    id: str
    name: Optional[str] = None
    rarity: Optional[str] = None
    base_value: Optional[int] = None


class PredeterminedWinnerModel(CamelModel):
    """A previously previewed outcome replayed by the client."""

    case_type: CaseTypeRefModel
    item_won: CaseItemRefModel
    currency_awarded: int
    opening_id: str


class CaseCompleteModel(CamelModel):
    case_type_id: str = Field(min_length=1)
    opening_id: UUID
    predetermined_winner: Optional[PredeterminedWinnerModel] = None


# ==============================================================================
# ==== Responses ===============================================================
# ==============================================================================


class ErrorModel(CamelModel):
    error: str
    message: str


class BalanceModel(CamelModel):
    user_id: str
    balance: int


class TransactionModel(CamelModel):
    transaction_id: UUID
    game_type: GameTypeModel
    bet_amount: int
    win_amount: int
    balance_before: int
    balance_after: int
    result_data: Optional[Dict[str, Any]] = None
    status: TransactionStatusModel
    created_at: datetime


class RouletteResultModel(CamelModel):
    bet_type: str
    bet_value: Union[int, str]
    winning_number: int
    winning_color: str
    won: bool
    multiplier: int


class RouletteBetResponseModel(CamelModel):
    success: bool = True
    result: RouletteResultModel
    bet_amount: int
    win_amount: int
    net_result: int
    new_balance: int
    game_id: UUID


class CardModel(CamelModel):
    rank: str
    suit: str


class HandModel(CamelModel):
    cards: List[CardModel]
    value: int
    soft: bool
    status: HandStatusModel
    bet_amount: int
    outcome: Optional[str] = None
    win_amount: Optional[int] = None


class BlackjackStateModel(CamelModel):
    game_id: UUID
    status: SessionStatusModel
    hands: List[HandModel]
    active_hand_index: int
    dealer_hand: List[CardModel]
    dealer_value: int
    dealer_hidden: bool
    total_bet: int
    available_actions: List[BlackjackActionName]
    expires_at: datetime


class BlackjackResultModel(CamelModel):
    game_id: UUID
    hands: List[HandModel]
    dealer_hand: List[CardModel]
    dealer_value: int
    outcome: str
    total_bet: int
    win_amount: int


class BlackjackStartResponseModel(CamelModel):
    game_id: UUID
    game_state: Optional[BlackjackStateModel] = None
    game_result: Optional[BlackjackResultModel] = None
    bet_amount: int
    game_complete: bool = False
    win_amount: Optional[int] = None
    new_balance: Optional[int] = None


class BlackjackActionResponseModel(CamelModel):
    game_id: UUID
    game_complete: bool
    game_state: Optional[BlackjackStateModel] = None
    game_result: Optional[BlackjackResultModel] = None
    bet_amount: Optional[int] = None
    win_amount: Optional[int] = None
    net_result: Optional[int] = None
    new_balance: Optional[int] = None


class CaseItemModel(CamelModel):
    id: str
    name: str
    rarity: str
    category: str
    base_value: int


class CaseTypeSummaryModel(CamelModel):
    id: str
    name: str
    price: int
    description: str
    rarity_distribution: Dict[str, float]


class CaseTypeDetailModel(CaseTypeSummaryModel):
    value_multipliers: Dict[str, float]
    items: List[CaseItemModel]


class CaseOpeningResultModel(CamelModel):
    case_type: CaseTypeSummaryModel
    item_won: CaseItemModel
    currency_awarded: int
    opening_id: str
    timestamp: datetime


class CaseOpenResponseModel(CamelModel):
    success: bool = True
    preview: bool = False
    opening_result: CaseOpeningResultModel
    case_price: int
    net_result: int
    new_balance: Optional[int] = None
    transaction_id: Optional[UUID] = None


class CaseStartResponseModel(CamelModel):
    success: bool = True
    opening_id: UUID
    case_type: CaseTypeSummaryModel
    case_price: int
    balance_after_deduction: int
    transaction_id: UUID


class CaseCompleteResponseModel(CamelModel):
    success: bool = True
    opening_result: CaseOpeningResultModel
    currency_awarded: int
    net_result: int
    new_balance: int
    transaction_id: UUID


class DailyBonusResponseModel(CamelModel):
    bonus_amount: int
    previous_balance: int
    new_balance: int
    next_bonus_available: datetime


class DailyBonusStatusModel(CamelModel):
    can_claim: bool
    bonus_amount: int
    last_claimed_at: Optional[datetime] = None
    next_bonus_available: Optional[datetime] = None
