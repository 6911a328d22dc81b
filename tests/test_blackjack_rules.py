from datetime import datetime, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st
from uuid6 import uuid7

from casino.domain import blackjack
from casino.domain.outcomes import RANKS, SUITS
from casino.errors import GameAlreadyCompleted, ValidationError
from casino.models.dc_models import BlackjackActionName, HandStatusModel, SessionStatusModel
from casino.models.schema_models import CardSchema

from conftest import cards, stacked_deck

NOW = datetime(2026, 1, 1, 12, 0, 0)


def deal(*codes, bet=100):
    return blackjack.deal(uuid7(), "alice", bet, stacked_deck(*codes), NOW, timedelta(hours=1))


def test_soft_and_hard_seventeen():
    assert blackjack.hand_value(cards("AS", "6H")) == (17, True)
    assert blackjack.hand_value(cards("AS", "6H", "10D")) == (17, False)


def test_two_aces_and_nine_is_soft_21():
    assert blackjack.hand_value(cards("AS", "AH", "9D")) == (21, True)


def test_face_cards_count_ten():
    assert blackjack.hand_value(cards("KS", "QH", "5D")) == (25, False)


def test_natural_pays_three_to_two_at_once():
    game = deal("AS", "KH", "9C", "7D")
    assert game.status == SessionStatusModel.completed
    assert game.hands[0].status == HandStatusModel.blackjack
    assert game.outcome["outcome"] == "blackjack"
    assert game.outcome["win_amount"] == 250
    # dealer does not draw against a natural
    assert len(game.dealer_hand) == 2


def test_natural_on_odd_stake_rounds_down():
    game = deal("AS", "KH", "9C", "7D", bet=3)
    assert game.outcome["win_amount"] == 7


def test_natural_against_dealer_natural_pushes():
    game = deal("AS", "KH", "AD", "QC")
    assert game.outcome["outcome"] == "push"
    assert game.outcome["win_amount"] == 100


def test_bust_ends_the_game_without_dealer_draw():
    game = deal("10S", "6H", "9C", "7D", "KH")
    game = blackjack.apply_action(game, BlackjackActionName.hit)
    assert game.status == SessionStatusModel.completed
    assert game.hands[0].status == HandStatusModel.busted
    assert len(game.dealer_hand) == 2
    assert game.outcome["outcome"] == "bust"
    assert game.outcome["win_amount"] == 0


def test_dealer_draws_below_seventeen():
    game = deal("10S", "8H", "10C", "6D", "5H")
    game = blackjack.apply_action(game, BlackjackActionName.stand)
    assert [c.rank for c in game.dealer_hand] == ["10", "6", "5"]
    assert game.outcome["dealer_value"] == 21
    assert game.outcome["outcome"] == "dealer_win"


def test_dealer_stands_on_soft_seventeen():
    game = deal("10S", "7H", "AC", "6D")
    game = blackjack.apply_action(game, BlackjackActionName.stand)
    assert len(game.dealer_hand) == 2
    assert game.outcome["outcome"] == "push"
    assert game.outcome["win_amount"] == 100


def test_double_takes_one_card_and_doubles_the_stake():
    game = deal("5S", "6H", "10C", "7D", "10H")
    assert blackjack.additional_stake(game, BlackjackActionName.double) == 100
    game = blackjack.apply_action(game, BlackjackActionName.double)
    hand = game.hands[0]
    assert len(hand.cards) == 3
    assert hand.status == HandStatusModel.doubled
    assert hand.bet_amount == 200
    assert game.outcome["total_bet"] == 200
    assert game.outcome["win_amount"] == 400


def test_hit_to_21_stands_automatically():
    game = deal("5S", "6H", "10C", "7D", "KH")
    game = blackjack.apply_action(game, BlackjackActionName.hit)
    assert game.hands[0].status == HandStatusModel.stood
    assert game.status == SessionStatusModel.completed


def test_split_plays_both_hands_and_sums_settlement():
    game = deal("8S", "8H", "10C", "6D", "3C", "2H", "KD", "9S", "6C")
    assert BlackjackActionName.split in blackjack.available_actions(game)

    game = blackjack.apply_action(game, BlackjackActionName.split)
    assert [h.status for h in game.hands] == [HandStatusModel.active, HandStatusModel.split_pending]
    assert blackjack.total_bet(game) == 200
    assert BlackjackActionName.double not in blackjack.available_actions(game)
    assert BlackjackActionName.split not in blackjack.available_actions(game)

    game = blackjack.apply_action(game, BlackjackActionName.hit, hand_index=0)
    assert game.hands[0].status == HandStatusModel.stood
    assert game.active_hand_index == 1
    assert game.hands[1].status == HandStatusModel.active

    game = blackjack.apply_action(game, BlackjackActionName.hit, hand_index=1)
    game = blackjack.apply_action(game, BlackjackActionName.stand, hand_index=1)
    assert game.status == SessionStatusModel.completed
    assert game.outcome["dealer_value"] == 22
    assert [h["outcome"] for h in game.outcome["hands"]] == ["player_win", "player_win"]
    assert game.outcome["win_amount"] == 400
    assert game.outcome["outcome"] == "player_win"


def test_ten_and_king_may_split():
    game = deal("10S", "KH", "9C", "7D")
    assert blackjack.can_split(game)


def test_split_requires_equal_values():
    game = deal("8S", "9H", "10C", "7D")
    with pytest.raises(ValidationError):
        blackjack.apply_action(game, BlackjackActionName.split)


def test_hand_index_must_be_the_active_hand():
    game = deal("8S", "8H", "10C", "6D", "3C", "2H")
    game = blackjack.apply_action(game, BlackjackActionName.split)
    with pytest.raises(ValidationError):
        blackjack.apply_action(game, BlackjackActionName.stand, hand_index=1)


def test_completed_game_rejects_actions():
    game = deal("AS", "KH", "9C", "7D")
    with pytest.raises(GameAlreadyCompleted):
        blackjack.apply_action(game, BlackjackActionName.stand)


def test_transition_is_replayable_from_the_stored_state():
    game = deal("10S", "6H", "9C", "7D", "4H")
    first = blackjack.apply_action(game, BlackjackActionName.hit)
    second = blackjack.apply_action(game, BlackjackActionName.hit)
    assert first == second
    assert len(game.hands[0].cards) == 2


def test_forfeit_loses_the_whole_stake():
    game = deal("8S", "8H", "10C", "6D", "3C", "2H")
    game = blackjack.apply_action(game, BlackjackActionName.split)
    closed = blackjack.forfeit(game)
    assert closed.status == SessionStatusModel.completed
    assert closed.outcome["outcome"] == "forfeit"
    assert closed.outcome["total_bet"] == 200
    assert closed.outcome["win_amount"] == 0


card_strategy = st.builds(CardSchema, rank=st.sampled_from(RANKS), suit=st.sampled_from(SUITS))


@given(hand=st.lists(card_strategy, min_size=1, max_size=11))
def test_hand_value_properties(hand):
    value, soft = blackjack.hand_value(hand)
    hard_total = sum(1 if c.rank == "A" else blackjack.card_value(c) for c in hand)
    assert value >= hard_total
    if soft:
        assert value <= 21
        assert value == hard_total + 10
