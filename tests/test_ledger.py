import asyncio

import pytest

from casino.errors import AlreadyClaimed, GameAlreadyCompleted, InsufficientFunds, SettlementFailure, ValidationError
from casino.models.dc_models import GameTypeModel, TransactionStatusModel
from casino.services import ledger as ledger_module

from conftest import build_ledger


async def test_balance_is_created_with_the_starting_amount(ledger):
    assert await ledger.get_balance("alice") == 10000
    assert await ledger.get_balance("alice") == 10000


async def test_settle_records_before_and_after(ledger):
    transaction = await ledger.settle("alice", GameTypeModel.roulette, 100, 3600, {"winning_number": 17})
    assert transaction.balance_before == 10000
    assert transaction.balance_after == 13500
    assert transaction.balance_after == transaction.balance_before - transaction.bet_amount + transaction.win_amount
    assert transaction.status == TransactionStatusModel.settled
    assert await ledger.get_balance("alice") == 13500


async def test_insufficient_funds_leaves_balance_unchanged(Session, clock):
    ledger = build_ledger(Session, clock, starting_balance=50)
    with pytest.raises(InsufficientFunds):
        await ledger.settle("alice", GameTypeModel.roulette, 100, 0, {})
    assert await ledger.get_balance("alice") == 50
    assert await ledger.list_transactions("alice") == []


@pytest.mark.parametrize("bet, win", [(-1, 0), (10, -5), (0, 0)])
async def test_invalid_amounts_are_rejected(ledger, bet, win):
    with pytest.raises(ValidationError):
        await ledger.settle("alice", GameTypeModel.roulette, bet, win, {})


async def test_repeated_reference_settles_once(ledger):
    first = await ledger.settle("alice", GameTypeModel.case_opening, 500, 90, {"n": 1}, reference="case_open:r1")
    second = await ledger.settle("alice", GameTypeModel.case_opening, 500, 4000, {"n": 2}, reference="case_open:r1")
    assert second.transaction_id == first.transaction_id
    assert second.result_data == {"n": 1}
    assert await ledger.get_balance("alice") == 9590
    assert len(await ledger.list_transactions("alice")) == 1


async def test_references_are_scoped_per_user(ledger):
    await ledger.settle("alice", GameTypeModel.roulette, 10, 0, {}, reference="same")
    await ledger.settle("bob", GameTypeModel.roulette, 10, 0, {}, reference="same")
    assert await ledger.get_balance("alice") == 9990
    assert await ledger.get_balance("bob") == 9990


async def test_concurrent_settlements_sum_exactly(ledger):
    amounts = [(10, 0), (25, 50), (100, 0), (5, 10), (40, 0)] * 6
    results = await asyncio.gather(
        *(ledger.settle("alice", GameTypeModel.roulette, bet, win, {}) for bet, win in amounts)
    )
    expected = 10000 + sum(win - bet for bet, win in amounts)
    assert await ledger.get_balance("alice") == expected
    assert len(results) == len(amounts)


async def test_concurrent_overdraw_never_goes_negative(Session, clock):
    ledger = build_ledger(Session, clock, starting_balance=1000)
    results = await asyncio.gather(
        *(ledger.settle("alice", GameTypeModel.roulette, 100, 0, {}) for _ in range(15)),
        return_exceptions=True,
    )
    committed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, InsufficientFunds)]
    assert len(committed) == 10
    assert len(rejected) == 5
    assert await ledger.get_balance("alice") == 0
    assert all(t.balance_after >= 0 for t in committed)


async def test_daily_bonus_once_per_24_hours(ledger, clock):
    transaction = await ledger.claim_daily_bonus("alice")
    assert transaction.bet_amount == 0
    assert transaction.win_amount == 1000
    assert transaction.balance_after == 11000

    clock.advance(hours=23, minutes=59)
    with pytest.raises(AlreadyClaimed):
        await ledger.claim_daily_bonus("alice")

    clock.advance(minutes=1)
    await ledger.claim_daily_bonus("alice")
    assert await ledger.get_balance("alice") == 12000


async def test_concurrent_bonus_claims_credit_once(ledger):
    results = await asyncio.gather(
        *(ledger.claim_daily_bonus("alice") for _ in range(5)),
        return_exceptions=True,
    )
    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, AlreadyClaimed)) == 4
    assert await ledger.get_balance("alice") == 11000


async def test_bonus_status(ledger, clock):
    status = await ledger.get_bonus_status("alice")
    assert status["can_claim"] is True
    assert status["last_claimed_at"] is None

    await ledger.claim_daily_bonus("alice")
    status = await ledger.get_bonus_status("alice")
    assert status["can_claim"] is False
    assert status["next_bonus_available"] == clock.now + ledger.daily_bonus_cooldown


async def test_pending_credit_is_resolved_once(ledger):
    pending = await ledger.settle(
        "alice",
        GameTypeModel.case_opening,
        500,
        0,
        {"phase": "start"},
        status=TransactionStatusModel.pending_credit,
    )
    assert [t.transaction_id for t in await ledger.list_pending("alice")] == [pending.transaction_id]

    await ledger.settle("alice", GameTypeModel.case_opening, 0, 90, {}, resolves=[pending.transaction_id])
    assert await ledger.list_pending("alice") == []
    stored = await ledger.get_transaction("alice", pending.transaction_id)
    assert stored.status == TransactionStatusModel.credited

    with pytest.raises(GameAlreadyCompleted):
        await ledger.settle("alice", GameTypeModel.case_opening, 0, 90, {}, resolves=[pending.transaction_id])
    assert await ledger.get_balance("alice") == 9590


async def test_transactions_are_listed_newest_first(ledger, clock):
    await ledger.settle("alice", GameTypeModel.roulette, 10, 0, {})
    clock.advance(seconds=1)
    await ledger.claim_daily_bonus("alice")
    history = await ledger.list_transactions("alice")
    assert [t.game_type for t in history] == [GameTypeModel.daily_bonus, GameTypeModel.roulette]
    only_roulette = await ledger.list_transactions("alice", game_type=GameTypeModel.roulette)
    assert len(only_roulette) == 1


async def test_store_timeout_fails_closed(ledger, monkeypatch):
    async def stuck(*args, **kwargs):
        await asyncio.sleep(1)

    ledger.timeout = 0.01
    monkeypatch.setattr(ledger, "_attempt", stuck)
    with pytest.raises(SettlementFailure):
        await ledger.settle("alice", GameTypeModel.roulette, 10, 0, {})


async def test_persistent_version_conflicts_give_up(ledger, monkeypatch):
    calls = []

    async def conflicting(*args, **kwargs):
        calls.append(1)
        raise ledger_module._StaleVersion()

    monkeypatch.setattr(ledger, "_attempt", conflicting)
    with pytest.raises(SettlementFailure):
        await ledger.settle("alice", GameTypeModel.roulette, 10, 0, {})
    assert len(calls) == ledger.max_retries


async def test_version_conflict_is_retried(ledger, monkeypatch):
    original = ledger._attempt
    calls = []

    async def conflict_once(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise ledger_module._StaleVersion()
        return await original(*args, **kwargs)

    monkeypatch.setattr(ledger, "_attempt", conflict_once)
    transaction = await ledger.settle("alice", GameTypeModel.roulette, 10, 0, {})
    assert transaction.balance_after == 9990
    assert len(calls) == 2


async def test_zero_settlement_may_resolve_held_stakes(ledger):
    stakes = [
        await ledger.settle(
            "alice",
            GameTypeModel.blackjack,
            bet,
            0,
            {},
            reference=reference,
            status=TransactionStatusModel.pending_credit,
        )
        for bet, reference in [(100, "blackjack:g1"), (100, "blackjack:g1:split")]
    ]
    held = await ledger.list_pending("alice", GameTypeModel.blackjack, reference_prefix="blackjack:g1")
    assert {t.transaction_id for t in held} == {t.transaction_id for t in stakes}

    settlement = await ledger.settle(
        "alice", GameTypeModel.blackjack, 0, 0, {"outcome": "dealer_win"}, resolves=[t.transaction_id for t in held]
    )
    assert settlement.balance_after == 9800
    assert await ledger.list_pending("alice", GameTypeModel.blackjack) == []


async def test_user_locks_are_dropped_when_idle(ledger):
    await asyncio.gather(
        *(ledger.settle(user, GameTypeModel.roulette, 10, 0, {}) for user in ["alice", "bob", "alice"])
    )
    assert len(ledger._locks) == 0
