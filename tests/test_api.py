"""
HTTP tests for the FastAPI app, against an in-memory database and a canned odds feed.
Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from unittest.mock import patch

from conftest import make_quote
from mockbook.exceptions import CollaboratorError
from mockbook.main import app
from mockbook.models import get_db
from mockbook.services.odds import OddsAPIClient, get_odds_client


class FakeOddsClient(OddsAPIClient):
    def __init__(self, games=None, error=None):
        super().__init__(api_key="test-key")
        self.games = games if games is not None else [
            make_quote(),
            make_quote(
                game_id="evt-det-gb",
                home="Detroit Lions",
                away="Green Bay Packers",
                home_point=-7.0,
                home_price=-105,
                away_point=7.0,
                away_price=-115,
                away_quoted=False,
            ),
        ]
        self.error = error

    def get_nfl_spreads(self):
        if self.error:
            raise CollaboratorError(self.error)
        return list(self.games)


@pytest.fixture
def odds_client():
    return FakeOddsClient()


@pytest.fixture
def client(db_session, odds_client):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_odds_client] = lambda: odds_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(client, name="alice"):
    resp = client.post("/api/users/login", json={"username": name})
    assert resp.status_code == 200
    return resp.json()


def _place(client, name="alice", game_id="evt-kc-buf", side="HOME", stake=100):
    return client.post(
        f"/api/users/{name}/bets",
        json={"external_game_id": game_id, "side": side, "stake": stake},
    )


# ---------------------------------------------------------------------------
# Health / users
# ---------------------------------------------------------------------------

def test_root(client):
    body = client.get("/").json()
    assert body["status"] == "operational"


def test_health(client):
    assert client.get("/health").json()["database"] == "connected"


def test_login_creates_user_once(client):
    first = _login(client, "  alice ")
    assert first["username"] == "alice"
    assert first["current_balance"] == pytest.approx(1000.0)
    assert first["fair_balance"] == pytest.approx(1000.0)

    second = _login(client, "alice")
    assert second["id"] == first["id"]


def test_login_requires_name(client):
    resp = client.post("/api/users/login", json={"username": "   "})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username is required."


def test_unknown_user_is_404(client):
    assert client.get("/api/users/nobody").status_code == 404
    assert client.get("/api/users/nobody/bets").status_code == 404
    assert _place(client, name="nobody").status_code == 404


def test_store_failure_is_502(client, db_session):
    _login(client)
    failure = OperationalError("SELECT", {}, Exception("database is locked"))

    with patch.object(db_session, "query", side_effect=failure):
        resp = client.get("/api/users/alice")

    assert resp.status_code == 502
    assert resp.json()["detail"].startswith("Load user failed")


def test_leaderboard_orders_by_balance(client):
    _login(client, "alice")
    _login(client, "bob")
    assert _place(client, "alice", stake=200).status_code == 200

    users = client.get("/api/users/leaderboard").json()["users"]
    assert [u["username"] for u in users] == ["bob", "alice"]


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def test_place_bet_uses_server_quote(client):
    _login(client)
    resp = _place(client, stake="50")

    assert resp.status_code == 200
    body = resp.json()
    bet = body["bet"]
    assert bet["team_name"] == "Kansas City Chiefs"
    assert bet["spread_line"] == pytest.approx(-3.5)
    assert bet["odds_american"] == -110
    assert bet["stake"] == pytest.approx(50.0)
    assert bet["status"] == "PENDING"
    assert bet["game"]["external_game_id"] == "evt-kc-buf"
    assert bet["explanation"].startswith("You bet Kansas City Chiefs -3.5.")
    assert body["user"]["current_balance"] == pytest.approx(950.0)


def test_stake_over_balance_rejected(client):
    _login(client)
    resp = _place(client, stake=1000.01)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Stake exceeds your current balance."
    assert client.get("/api/users/alice").json()["current_balance"] == pytest.approx(1000.0)


def test_invalid_stake_rejected(client):
    _login(client)
    resp = _place(client, stake="ten bucks")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Enter a valid stake."


def test_unquoted_side_rejected(client):
    _login(client)
    resp = _place(client, game_id="evt-det-gb", side="AWAY")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No spread available for that side."


def test_unknown_game_rejected(client):
    _login(client)
    resp = _place(client, game_id="evt-gone")
    assert resp.status_code == 400
    assert "No current quote" in resp.json()["detail"]


def test_bad_side_is_schema_error(client):
    _login(client)
    assert _place(client, side="OVER").status_code == 422


def test_odds_outage_on_placement_is_502(client, odds_client):
    _login(client)
    odds_client.error = "Odds API request failed: timeout"
    resp = _place(client)
    assert resp.status_code == 502
    assert client.get("/api/users/alice/bets").json()["total_bets"] == 0


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def test_settle_won(client):
    _login(client)
    bet_id = _place(client, stake=100).json()["bet"]["id"]

    resp = client.put(f"/api/users/alice/bets/{bet_id}/settle", json={"result": "WON"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["bet"]["status"] == "WON"
    assert body["bet"]["payout"] == pytest.approx(190.91)
    assert body["bet"]["fair_profit"] == pytest.approx(100.0)
    assert body["user"]["current_balance"] == pytest.approx(1090.91)
    assert body["user"]["fair_balance"] == pytest.approx(1100.0)


def test_settle_twice_rejected(client):
    _login(client)
    bet_id = _place(client).json()["bet"]["id"]
    url = f"/api/users/alice/bets/{bet_id}/settle"

    assert client.put(url, json={"result": "PUSH"}).status_code == 200
    resp = client.put(url, json={"result": "WON"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Bet is already settled."
    assert client.get("/api/users/alice").json()["current_balance"] == pytest.approx(1000.0)


def test_settle_other_users_bet_is_404(client):
    _login(client, "alice")
    _login(client, "bob")
    bet_id = _place(client, "alice").json()["bet"]["id"]

    resp = client.put(f"/api/users/bob/bets/{bet_id}/settle", json={"result": "WON"})
    assert resp.status_code == 404


def test_settle_unknown_result_is_schema_error(client):
    _login(client)
    bet_id = _place(client).json()["bet"]["id"]
    resp = client.put(f"/api/users/alice/bets/{bet_id}/settle", json={"result": "PENDING"})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def test_bets_listing(client):
    _login(client)
    first = _place(client, stake=10).json()["bet"]["id"]
    second = _place(client, game_id="evt-det-gb", stake=20).json()["bet"]["id"]
    client.put(f"/api/users/alice/bets/{first}/settle", json={"result": "LOST"})

    body = client.get("/api/users/alice/bets").json()
    assert body["total_bets"] == 2
    assert body["pending"] == 1
    assert [b["id"] for b in body["bets"]] == [second, first]
    assert "select PUSH" in body["bets"][0]["explanation"]


def test_ledger_is_consistent(client):
    _login(client)
    bet_id = _place(client, stake=100).json()["bet"]["id"]
    _place(client, game_id="evt-det-gb", stake=40)
    client.put(f"/api/users/alice/bets/{bet_id}/settle", json={"result": "WON"})

    body = client.get("/api/users/alice/ledger").json()
    types = [t["type"] for t in body["transactions"]]
    assert types == ["INITIAL", "BET_PLACED", "BET_PLACED", "BET_SETTLED"]

    audit = body["audit"]
    assert audit["consistent"] is True
    assert audit["transaction_count"] == 4
    assert audit["current_balance"] == pytest.approx(1050.91)
    assert audit["last_balance_after"] == pytest.approx(1050.91)
    assert audit["ledger_total"] == pytest.approx(1050.91)


# ---------------------------------------------------------------------------
# Odds board
# ---------------------------------------------------------------------------

def test_odds_board(client):
    body = client.get("/api/odds/nfl").json()

    assert body["total_games"] == 2
    kc = body["games"][0]
    assert kc["home_spread"] == {"team_name": "Kansas City Chiefs", "point": -3.5, "price": -110}
    assert body["games"][1]["away_spread"] is None


def test_odds_outage_is_502(client, odds_client):
    odds_client.error = "THE_ODDS_API_KEY not set"
    resp = client.get("/api/odds/nfl")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "THE_ODDS_API_KEY not set"
