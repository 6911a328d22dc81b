"""Blackjack rules and state transitions.

Every function takes a session and returns a new one; nothing here touches
storage or the ledger. Cards are drawn from the end of the stored deck, so a
transition replayed from the same stored session yields the same cards.

Rules: one deck, dealer stands on all 17s, blackjack pays 3:2, one split per
game on equal-value pairs, double on the first two cards of an unsplit hand.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from casino.models.dc_models import BlackjackActionName, HandStatusModel, SessionStatusModel
from casino.models.schema_models import BlackjackSessionSchema, CardSchema, HandSchema
from casino.errors import GameAlreadyCompleted, ValidationError

DEALER_STANDS_ON = 17
FACE_RANKS = ("J", "Q", "K")
RESOLVED_STATUSES = (
    HandStatusModel.stood,
    HandStatusModel.busted,
    HandStatusModel.blackjack,
    HandStatusModel.doubled,
)

GAME_INFO = {
    "name": "Blackjack",
    "rules": {
        "decks": 1,
        "dealer_hits_soft_17": False,
        "blackjack_pays": "3:2",
        "double_after_split": False,
        "max_splits": 1,
        "surrender": False,
    },
    "actions": [action.value for action in BlackjackActionName],
}


def card_value(card: CardSchema) -> int:
    if card.rank == "A":
        return 11
    if card.rank in FACE_RANKS:
        return 10
    return int(card.rank)


def hand_value(cards: List[CardSchema]) -> Tuple[int, bool]:
    """Best total for the cards and whether an ace is still counted as 11."""
    value = 0
    aces = 0
    for card in cards:
        value += card_value(card)
        if card.rank == "A":
            aces += 1
    while value > 21 and aces:
        value -= 10
        aces -= 1
    return value, aces > 0


def is_natural(cards: List[CardSchema]) -> bool:
    return len(cards) == 2 and hand_value(cards)[0] == 21


def win_for_natural(bet_amount: int) -> int:
    # 3:2 on top of the returned stake; odd stakes round down
    return bet_amount * 5 // 2


def total_bet(session: BlackjackSessionSchema) -> int:
    return sum(hand.bet_amount for hand in session.hands)


def _draw(session: BlackjackSessionSchema) -> CardSchema:
    return session.deck.pop()


def deal(
    session_id: UUID,
    user_id: str,
    bet_amount: int,
    deck: List[CardSchema],
    now: datetime,
    ttl: timedelta,
) -> BlackjackSessionSchema:
    """Deal the opening cards. A player natural ends the game at once."""
    session = BlackjackSessionSchema(
        session_id=session_id,
        user_id=user_id,
        bet_amount=bet_amount,
        hands=[],
        dealer_hand=[],
        deck=list(deck),
        created_at=now,
        expires_at=now + ttl,
    )
    player_cards = [_draw(session), _draw(session)]
    session.dealer_hand = [_draw(session), _draw(session)]
    session.hands = [HandSchema(cards=player_cards, bet_amount=bet_amount)]

    if is_natural(player_cards):
        session.hands[0].status = HandStatusModel.blackjack
        return _complete(session)
    return session


def available_actions(session: BlackjackSessionSchema) -> List[BlackjackActionName]:
    if session.status != SessionStatusModel.in_progress:
        return []
    hand = session.hands[session.active_hand_index]
    if hand.status != HandStatusModel.active:
        return []
    actions = [BlackjackActionName.hit, BlackjackActionName.stand]
    if len(hand.cards) == 2 and not hand.from_split:
        actions.append(BlackjackActionName.double)
    if can_split(session):
        actions.append(BlackjackActionName.split)
    return actions


def can_split(session: BlackjackSessionSchema) -> bool:
    if session.split_done or len(session.hands) != 1:
        return False
    cards = session.hands[0].cards
    return len(cards) == 2 and card_value(cards[0]) == card_value(cards[1])


def additional_stake(session: BlackjackSessionSchema, action: BlackjackActionName) -> int:
    """Extra stake an action puts on the table."""
    if action == BlackjackActionName.double:
        return session.hands[session.active_hand_index].bet_amount
    if action == BlackjackActionName.split:
        return session.bet_amount
    return 0


def apply_action(
    session: BlackjackSessionSchema,
    action: BlackjackActionName,
    hand_index: Optional[int] = None,
) -> BlackjackSessionSchema:
    """Apply one player action and return the resulting session.

    Raises:
        GameAlreadyCompleted: the session is no longer in progress
        ValidationError: the action is not legal for the active hand
    """
    if session.status != SessionStatusModel.in_progress:
        raise GameAlreadyCompleted()
    if hand_index is not None and hand_index != session.active_hand_index:
        raise ValidationError(
            f"Hand {hand_index} is not the active hand",
            active_hand_index=session.active_hand_index,
        )
    if action not in available_actions(session):
        raise ValidationError(f"Cannot {action.value} on the current hand")

    session = session.model_copy(deep=True)
    index = session.active_hand_index
    hand = session.hands[index]

    if action == BlackjackActionName.hit:
        hand.cards.append(_draw(session))
        value, _ = hand_value(hand.cards)
        if value > 21:
            hand.status = HandStatusModel.busted
        elif value == 21:
            hand.status = HandStatusModel.stood
    elif action == BlackjackActionName.stand:
        hand.status = HandStatusModel.stood
    elif action == BlackjackActionName.double:
        hand.bet_amount *= 2
        hand.cards.append(_draw(session))
        value, _ = hand_value(hand.cards)
        hand.status = HandStatusModel.busted if value > 21 else HandStatusModel.doubled
    elif action == BlackjackActionName.split:
        first, second = hand.cards
        session.split_done = True
        session.hands = [
            HandSchema(cards=[first, _draw(session)], bet_amount=hand.bet_amount, from_split=True),
            HandSchema(
                cards=[second, _draw(session)],
                bet_amount=session.bet_amount,
                from_split=True,
                status=HandStatusModel.split_pending,
            ),
        ]

    return _advance(session)


def _advance(session: BlackjackSessionSchema) -> BlackjackSessionSchema:
    """Move to the next unresolved hand, or finish the round."""
    while session.active_hand_index < len(session.hands):
        hand = session.hands[session.active_hand_index]
        if hand.status == HandStatusModel.split_pending:
            hand.status = HandStatusModel.active
        if hand.status == HandStatusModel.active:
            return session
        session.active_hand_index += 1
    session.active_hand_index = len(session.hands) - 1
    return _complete(session)


def play_dealer(session: BlackjackSessionSchema) -> None:
    # busted hands lose whatever the dealer does
    if all(hand.status == HandStatusModel.busted for hand in session.hands):
        return
    # a natural is paid against the dealer's two cards only
    if all(hand.status == HandStatusModel.blackjack for hand in session.hands):
        return
    while hand_value(session.dealer_hand)[0] < DEALER_STANDS_ON:
        session.dealer_hand.append(_draw(session))


def score_hands(session: BlackjackSessionSchema) -> dict:
    """Per-hand results and totals against the dealer's final hand."""
    dealer_value, _ = hand_value(session.dealer_hand)
    dealer_natural = is_natural(session.dealer_hand)
    dealer_bust = dealer_value > 21

    hands = []
    for hand in session.hands:
        value, _ = hand_value(hand.cards)
        if hand.status == HandStatusModel.busted:
            result, win = "bust", 0
        elif hand.status == HandStatusModel.blackjack:
            if dealer_natural:
                result, win = "push", hand.bet_amount
            else:
                result, win = "blackjack", win_for_natural(hand.bet_amount)
        elif dealer_bust or value > dealer_value:
            result, win = "player_win", hand.bet_amount * 2
        elif value == dealer_value:
            result, win = "push", hand.bet_amount
        else:
            result, win = "dealer_win", 0
        hands.append({"outcome": result, "win_amount": win, "value": value})

    stake = total_bet(session)
    win_amount = sum(hand["win_amount"] for hand in hands)
    if len(hands) == 1:
        outcome = hands[0]["outcome"]
    elif win_amount > stake:
        outcome = "player_win"
    elif win_amount == stake:
        outcome = "push"
    else:
        outcome = "dealer_win"

    return {
        "hands": hands,
        "dealer_value": dealer_value,
        "outcome": outcome,
        "total_bet": stake,
        "win_amount": win_amount,
    }


def _complete(session: BlackjackSessionSchema) -> BlackjackSessionSchema:
    play_dealer(session)
    session.status = SessionStatusModel.completed
    session.outcome = score_hands(session)
    return session


def forfeit(session: BlackjackSessionSchema) -> BlackjackSessionSchema:
    """Close an abandoned game: every stake is lost and the dealer does not play."""
    session = session.model_copy(deep=True)
    session.status = SessionStatusModel.completed
    session.outcome = {
        "hands": [
            {"outcome": "forfeit", "win_amount": 0, "value": hand_value(hand.cards)[0]}
            for hand in session.hands
        ],
        "dealer_value": hand_value(session.dealer_hand)[0],
        "outcome": "forfeit",
        "total_bet": total_bet(session),
        "win_amount": 0,
    }
    return session


def result_data(session: BlackjackSessionSchema) -> dict:
    """Audit payload stored with the settlement transaction."""
    return {
        "game_id": str(session.session_id),
        "player_hands": [
            {
                "cards": [card.model_dump() for card in hand.cards],
                "status": hand.status.value,
                "bet_amount": hand.bet_amount,
            }
            for hand in session.hands
        ],
        "dealer_hand": [card.model_dump() for card in session.dealer_hand],
        **(session.outcome or {}),
    }
