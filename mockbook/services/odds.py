"""
The Odds API integration for NFL point spreads.
https://the-odds-api.com/

Only one bookmaker's spreads market is read (DraftKings by default).  Each
game carries an optional quote per side; a missing bookmaker, a missing
spreads market or a missing outcome leaves that side as ``None``, which is
a normal case meaning "no bet offered", not an error.
"""

import requests
import os
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dotenv import load_dotenv

from mockbook.core.spread_rules import AWAY, HOME
from mockbook.exceptions import CollaboratorError, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY = os.getenv("THE_ODDS_API_KEY")
BASE_URL = "https://api.the-odds-api.com/v4"
SPORT_KEY = "americanfootball_nfl"
BOOKMAKER = os.getenv("ODDS_API_BOOKMAKER", "draftkings")


@dataclass(frozen=True)
class SpreadSide:
    team_name: str
    point: float
    price: int


@dataclass(frozen=True)
class SpreadGame:
    id: str
    commence_time: str
    home_team: str
    away_team: str
    bookmaker: str
    home_spread: Optional[SpreadSide]
    away_spread: Optional[SpreadSide]

    def spread_for(self, side: str) -> Optional[SpreadSide]:
        if side == HOME:
            return self.home_spread
        if side == AWAY:
            return self.away_spread
        raise ValidationError(f"Unknown side {side!r}; expected HOME or AWAY")

    @property
    def kickoff(self) -> Optional[datetime]:
        return parse_commence_time(self.commence_time)


def parse_commence_time(value: Optional[str]) -> Optional[datetime]:
    """'2026-10-18T17:00:00Z' → naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable commence_time %r", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _to_side(outcome: Optional[Dict]) -> Optional[SpreadSide]:
    if not outcome:
        return None
    point = outcome.get("point")
    price = outcome.get("price")
    if point is None or price is None:
        return None
    return SpreadSide(team_name=outcome.get("name"), point=float(point), price=int(price))


def parse_spread_game(game_data: Dict, bookmaker_key: str = BOOKMAKER) -> SpreadGame:
    """
    Reduce one raw API game to the chosen bookmaker's spread quotes.

    The API returns:
        {"id": ..., "commence_time": ..., "home_team": ..., "away_team": ...,
         "bookmakers": [{"key": "draftkings", "title": "DraftKings",
                         "markets": [{"key": "spreads",
                                      "outcomes": [{"name", "point", "price"}, ...]}]}]}
    """
    home_team = game_data.get("home_team")
    away_team = game_data.get("away_team")

    bookmaker = next(
        (b for b in game_data.get("bookmakers") or [] if b.get("key") == bookmaker_key),
        None,
    )
    if bookmaker is None:
        return SpreadGame(
            id=game_data.get("id"),
            commence_time=game_data.get("commence_time"),
            home_team=home_team,
            away_team=away_team,
            bookmaker=bookmaker_key,
            home_spread=None,
            away_spread=None,
        )

    spreads = next(
        (m for m in bookmaker.get("markets") or [] if m.get("key") == "spreads"),
        None,
    )
    outcomes = (spreads or {}).get("outcomes") or []
    home_outcome = next((o for o in outcomes if o.get("name") == home_team), None)
    away_outcome = next((o for o in outcomes if o.get("name") == away_team), None)

    return SpreadGame(
        id=game_data.get("id"),
        commence_time=game_data.get("commence_time"),
        home_team=home_team,
        away_team=away_team,
        bookmaker=bookmaker.get("title") or bookmaker.get("key"),
        home_spread=_to_side(home_outcome),
        away_spread=_to_side(away_outcome),
    )


class OddsAPIClient:
    """Client for The Odds API"""

    def __init__(self, api_key: Optional[str] = None, bookmaker: str = BOOKMAKER):
        self.api_key = api_key or API_KEY
        self.bookmaker = bookmaker

    def get_nfl_spreads(self) -> List[SpreadGame]:
        """
        Fetch upcoming NFL games with the bookmaker's current spreads.

        Raises CollaboratorError when the key is missing, the request fails
        or the API answers with a non-2xx status.
        """
        if not self.api_key:
            raise CollaboratorError("THE_ODDS_API_KEY not set")

        url = f"{BASE_URL}/sports/{SPORT_KEY}/odds"
        params = {
            "apiKey": self.api_key,
            "regions": "us",
            "markets": "spreads",
            "oddsFormat": "american",
            "bookmakers": self.bookmaker,
        }

        try:
            response = requests.get(url, params=params, timeout=10)
        except requests.exceptions.RequestException as e:
            logger.error("Odds API error: %s", e)
            raise CollaboratorError(f"Odds API request failed: {e}") from e

        if not response.ok:
            logger.error("Odds API error %s: %s", response.status_code, response.text[:200])
            raise CollaboratorError(f"Odds API error {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Odds API returned invalid JSON: %s", e)
            raise CollaboratorError(f"Odds API returned invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise CollaboratorError(f"Odds API returned unexpected payload: {str(data)[:200]}")

        logger.info(
            "Odds API: %d games fetched. Quota: %s used, %s remaining",
            len(data),
            response.headers.get("x-requests-used"),
            response.headers.get("x-requests-remaining"),
        )
        return [parse_spread_game(g, self.bookmaker) for g in data]

    def find_game(self, external_game_id: str) -> SpreadGame:
        """Current quote for one game; ValidationError if it is no longer listed."""
        for game in self.get_nfl_spreads():
            if game.id == external_game_id:
                return game
        raise ValidationError(f"No current quote for game {external_game_id}")


def get_odds_client() -> OddsAPIClient:
    """FastAPI dependency; overridden in tests."""
    return OddsAPIClient()
