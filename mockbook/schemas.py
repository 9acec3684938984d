"""Pydantic request/response schemas for the mock spread book API."""

from __future__ import annotations

from typing import Literal, Optional, Union
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    """Payload for POST /api/users/login."""

    username: str = Field(..., max_length=64, description="Created on first login")

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class UserResponse(BaseModel):
    id: int
    username: str
    display_name: Optional[str]
    starting_balance: float
    current_balance: float

    class Config:
        from_attributes = True


class UserDetailResponse(UserResponse):
    """User plus the even-money (no-vig) balance."""
    fair_balance: float


class LeaderboardResponse(BaseModel):
    users: list[UserResponse]


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------

class PlaceBetRequest(BaseModel):
    """
    Payload for POST /api/users/{username}/bets.

    The line and price are read from the live quote at placement time,
    never taken from the client.  ``stake`` may be a number or the raw text
    the user typed; it is validated by the ledger.
    """

    external_game_id: str = Field(..., min_length=1, description="Odds API event id")
    side: Literal["HOME", "AWAY"]
    stake: Union[float, str] = Field(..., description="Amount to risk")

    model_config = {
        "json_schema_extra": {
            "example": {
                "external_game_id": "e912304de2b2ce35b473ce2ecd3d1502",
                "side": "HOME",
                "stake": 50,
            }
        }
    }


class SettleRequest(BaseModel):
    """Payload for PUT /api/users/{username}/bets/{bet_id}/settle."""

    result: Literal["WON", "LOST", "PUSH"]


class GameInfo(BaseModel):
    id: int
    external_game_id: str
    home_team: str
    away_team: str
    kickoff_at: Optional[datetime]

    class Config:
        from_attributes = True


class BetResponse(BaseModel):
    id: int
    user_id: int
    game_id: int
    side: str
    team_name: str
    spread_line: float
    odds_american: int
    stake: float
    status: str
    placed_at: datetime
    settled_at: Optional[datetime]
    payout: Optional[float]
    profit: Optional[float]
    fair_payout: Optional[float]
    fair_profit: Optional[float]
    game: Optional[GameInfo]
    explanation: str = ""

    class Config:
        from_attributes = True


class BetListResponse(BaseModel):
    username: str
    total_bets: int
    pending: int
    bets: list[BetResponse]


class BetActionResponse(BaseModel):
    """Response after placing or settling a bet: the bet and the user post-write."""
    message: str
    bet: BetResponse
    user: UserDetailResponse


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class TransactionResponse(BaseModel):
    id: int
    bet_id: Optional[int]
    type: str
    amount: float
    balance_after: float
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerAuditResponse(BaseModel):
    starting_balance: float
    ledger_total: float
    movement_total: float
    current_balance: float
    last_balance_after: Optional[float]
    transaction_count: int
    consistent: bool


class LedgerResponse(BaseModel):
    username: str
    transactions: list[TransactionResponse]
    audit: LedgerAuditResponse


# ---------------------------------------------------------------------------
# Odds
# ---------------------------------------------------------------------------

class SpreadSideResponse(BaseModel):
    team_name: str
    point: float
    price: int


class SpreadGameResponse(BaseModel):
    id: str
    commence_time: Optional[str]
    home_team: str
    away_team: str
    bookmaker: str
    home_spread: Optional[SpreadSideResponse]
    away_spread: Optional[SpreadSideResponse]


class OddsResponse(BaseModel):
    total_games: int
    games: list[SpreadGameResponse]
