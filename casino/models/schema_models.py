from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from casino.models.dc_models import (
    GameTypeModel,
    HandStatusModel,
    SessionStatusModel,
    TransactionStatusModel,
)


class BalanceSchema(BaseModel):
    user_id: str
    amount: int
    version: int

    class Config:
        from_attributes = True


class TransactionSchema(BaseModel):
    transaction_id: UUID
    user_id: str
    game_type: GameTypeModel
    bet_amount: int
    win_amount: int
    balance_before: int
    balance_after: int
    result_data: Optional[Dict[str, Any]] = None
    status: TransactionStatusModel
    reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CardSchema(BaseModel):
    rank: str
    suit: str


class HandSchema(BaseModel):
    cards: List[CardSchema] = Field(default_factory=list)
    status: HandStatusModel = HandStatusModel.active
    bet_amount: int
    from_split: bool = False


class BlackjackSessionSchema(BaseModel):
    """Server-held blackjack state. The deck is part of the state so every
    transition is a deterministic function of what is stored."""

    session_id: UUID
    user_id: str
    bet_amount: int
    hands: List[HandSchema]
    active_hand_index: int = 0
    dealer_hand: List[CardSchema]
    status: SessionStatusModel = SessionStatusModel.in_progress
    deck: List[CardSchema]
    split_done: bool = False
    outcome: Optional[Dict[str, Any]] = None
    transaction_id: Optional[UUID] = None
    version: int = 0
    created_at: datetime
    expires_at: datetime


class CaseItemSchema(BaseModel):
    id: str
    name: str
    rarity: str
    category: str
    base_value: int


class CaseTypeSchema(BaseModel):
    id: str
    name: str
    price: int
    description: str
    rarity_distribution: Dict[str, float]
    value_multipliers: Dict[str, float]
    items: List[CaseItemSchema]


class CaseDrawSchema(BaseModel):
    """Outcome of one case draw, before or without settlement."""

    opening_id: str
    case_type_id: str
    item: CaseItemSchema
    currency_awarded: int
    timestamp: datetime
