import pytest
from httpx import ASGITransport, AsyncClient

from casino.main import create_app

from conftest import headers


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_identity_is_unauthorized(client):
    response = await client.get("/user/balance", headers=headers(user_id=None))
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


async def test_balance_uses_camel_case(client):
    response = await client.get("/user/balance", headers=headers())
    assert response.status_code == 200
    assert response.json() == {"userId": "alice", "balance": 10000}


async def test_gateway_token_is_enforced(engine, store, outcomes, clock):
    app = create_app(
        engine=engine,
        store=store,
        random_provider=outcomes,
        clock=clock,
        gateway_token="s3cret",
        start_scheduler=False,
    )
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
            denied = await http.get("/user/balance", headers=headers(token="wrong"))
            allowed = await http.get("/user/balance", headers=headers(token="s3cret"))
    assert denied.status_code == 401
    assert allowed.status_code == 200


async def test_roulette_bet(client, outcomes):
    outcomes.script_numbers([17])
    response = await client.post(
        "/games/roulette/bet",
        json={"amount": 100, "betType": "number", "betValue": 17},
        headers=headers(),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["winAmount"] == 3600
    assert body["netResult"] == 3500
    assert body["newBalance"] == 13500
    assert body["result"]["winningNumber"] == 17
    assert body["result"]["winningColor"] == "black"


@pytest.mark.parametrize(
    "payload",
    [
        {"amount": 100, "betType": "number", "betValue": 40},
        {"amount": 0, "betType": "red"},
        {"betType": "red"},
        {"amount": "lots", "betType": "red"},
    ],
)
async def test_invalid_roulette_bets_are_400(client, payload):
    response = await client.post("/games/roulette/bet", json=payload, headers=headers())
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


async def test_insufficient_funds_is_400(client, outcomes):
    outcomes.script_numbers([1, 1])
    for _ in range(2):
        lost = await client.post(
            "/games/roulette/bet", json={"amount": 5000, "betType": "number", "betValue": 0}, headers=headers()
        )
        assert lost.json()["winAmount"] == 0

    response = await client.post("/games/roulette/bet", json={"amount": 5000, "betType": "red"}, headers=headers())
    assert response.status_code == 400
    assert response.json()["error"] == "InsufficientFunds"
    balance = await client.get("/user/balance", headers=headers())
    assert balance.json()["balance"] == 0


async def test_blackjack_over_http(client, outcomes):
    outcomes.script_deck("10S", "8H", "10C", "7D")
    started = await client.post("/games/blackjack/start", json={"amount": 100}, headers=headers())
    assert started.status_code == 200
    body = started.json()
    assert body["gameComplete"] is False
    assert body["gameState"]["dealerHidden"] is True
    assert "gameResult" not in body
    assert "deck" not in body["gameState"]
    game_id = body["gameId"]

    conflict = await client.post("/games/blackjack/start", json={"amount": 100}, headers=headers())
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "GameInProgress"

    active = await client.get("/games/blackjack/active", headers=headers())
    assert active.json()["gameId"] == game_id

    finished = await client.post(
        "/games/blackjack/action", json={"gameId": game_id, "action": "stand"}, headers=headers()
    )
    assert finished.status_code == 200
    result = finished.json()
    assert result["gameComplete"] is True
    assert result["gameResult"]["outcome"] == "player_win"
    assert result["newBalance"] == 10100

    again = await client.post(
        "/games/blackjack/action", json={"gameId": game_id, "action": "hit"}, headers=headers()
    )
    assert again.status_code == 409
    assert again.json()["error"] == "GameAlreadyCompleted"


async def test_unknown_game_is_404(client):
    response = await client.get("/games/blackjack/00000000-0000-0000-0000-000000000000", headers=headers())
    assert response.status_code == 404
    assert response.json()["error"] == "GameNotFound"


async def test_case_catalog(client):
    listing = await client.get("/games/cases")
    assert [case["id"] for case in listing.json()] == ["scav-case", "pmc-case", "labs-case"]
    detail = await client.get("/games/cases/labs-case")
    assert detail.json()["valueMultipliers"]["legendary"] == 6.0
    missing = await client.get("/games/cases/gold-case")
    assert missing.status_code == 404
    assert missing.json()["error"] == "CaseNotFound"


async def test_case_open_with_request_id_is_idempotent(client):
    payload = {"caseTypeId": "scav-case", "requestId": "abc-123"}
    first = await client.post("/games/cases/open", json=payload, headers=headers())
    second = await client.post("/games/cases/open", json=payload, headers=headers())
    assert first.status_code == 200
    assert first.json() == second.json()
    history = await client.get("/user/transactions", headers=headers())
    assert len(history.json()) == 1


async def test_case_preview_over_http(client):
    response = await client.post(
        "/games/cases/open", json={"caseTypeId": "scav-case", "previewOnly": True}, headers=headers()
    )
    body = response.json()
    assert body["preview"] is True
    assert "newBalance" not in body
    assert body["openingResult"]["itemWon"]["id"]


async def test_two_phase_case_over_http(client):
    started = await client.post("/games/cases/start", json={"caseTypeId": "pmc-case"}, headers=headers())
    assert started.status_code == 200
    opening_id = started.json()["openingId"]

    pending = await client.get("/games/cases/pending", headers=headers())
    assert [p["transactionId"] for p in pending.json()] == [opening_id]
    assert pending.json()[0]["status"] == "pending_credit"

    payload = {"caseTypeId": "pmc-case", "openingId": opening_id}
    completed = await client.post("/games/cases/complete", json=payload, headers=headers())
    assert completed.status_code == 200
    repeated = await client.post("/games/cases/complete", json=payload, headers=headers())
    assert repeated.status_code == 409


async def test_daily_bonus_over_http(client):
    claimed = await client.post("/user/daily-bonus", headers=headers())
    assert claimed.status_code == 200
    assert claimed.json()["newBalance"] == 11000

    again = await client.post("/user/daily-bonus", headers=headers())
    assert again.status_code == 400
    assert again.json()["error"] == "AlreadyClaimed"

    status = await client.get("/user/daily-bonus", headers=headers())
    assert status.json()["canClaim"] is False


async def test_game_info_endpoints(client):
    roulette = await client.get("/games/roulette")
    assert roulette.json()["betTypes"]["number"]["payout"] == "35:1"
    blackjack = await client.get("/games/blackjack")
    assert blackjack.json()["rules"]["dealer_hits_soft_17"] is False
