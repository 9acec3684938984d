"""
FastAPI application for the mock spread book
Login-by-name, leaderboard, odds board, bet placement and self-settlement
"""

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
import logging
import os

from mockbook.core.odds_math import PENDING
from mockbook.core.spread_rules import explain_spread
from mockbook.exceptions import CollaboratorError, NotFoundError, ValidationError
from mockbook.models import get_db, init_db, Bet, User
from mockbook.services.ledger import (
    audit_ledger,
    bets_for_user,
    fair_balance,
    get_user,
    leaderboard,
    login_or_create_user,
    place_bet,
    settle_bet,
    transactions_for_user,
)
from mockbook.services.odds import OddsAPIClient, get_odds_client
from mockbook.schemas import (
    BetActionResponse,
    BetListResponse,
    BetResponse,
    LeaderboardResponse,
    LedgerResponse,
    LoginRequest,
    OddsResponse,
    PlaceBetRequest,
    SettleRequest,
    UserDetailResponse,
    UserResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Mock Spread Book")
    init_db()
    yield
    logger.info("Shutting down Mock Spread Book")


app = FastAPI(
    title="Mock Spread Book",
    description="Paper-money NFL spread betting with a self-settled ledger",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:8501").split(",")
        if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR MAPPING
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(CollaboratorError)
async def collaborator_error_handler(request: Request, exc: CollaboratorError):
    logger.error("Collaborator failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    """Store failures outside the ledger services (lazy loads while serializing)."""
    logger.error("Store failure on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=502, content={"detail": f"Store failure: {exc}"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


# ============================================================================
# HELPERS
# ============================================================================

def _bet_response(bet: Bet) -> BetResponse:
    response = BetResponse.model_validate(bet)
    if bet.game is not None:
        response.explanation = explain_spread(
            bet.side, bet.spread_line, bet.game.home_team, bet.game.away_team
        )
    return response


def _user_detail(db: Session, user: User) -> UserDetailResponse:
    return UserDetailResponse(
        **UserResponse.model_validate(user).model_dump(),
        fair_balance=fair_balance(db, user),
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Mock Spread Book",
        "version": "1.0",
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {e}"

    return health


# ============================================================================
# USERS
# ============================================================================

@app.post("/api/users/login", response_model=UserDetailResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """Log in by name; the user is created with a starting balance on first visit."""
    user = login_or_create_user(db, payload.username)
    return _user_detail(db, user)


@app.get("/api/users/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(db: Session = Depends(get_db)):
    """All users, highest balance first."""
    return LeaderboardResponse(users=leaderboard(db))


@app.get("/api/users/{username}", response_model=UserDetailResponse)
def get_user_detail(username: str, db: Session = Depends(get_db)):
    return _user_detail(db, get_user(db, username))


@app.get("/api/users/{username}/ledger", response_model=LedgerResponse)
def get_user_ledger(username: str, db: Session = Depends(get_db)):
    """Transaction history plus a consistency check of the cached balance."""
    user = get_user(db, username)
    return LedgerResponse(
        username=user.username,
        transactions=transactions_for_user(db, user),
        audit=audit_ledger(db, user).to_dict(),
    )


# ============================================================================
# BETS
# ============================================================================

@app.get("/api/users/{username}/bets", response_model=BetListResponse)
def get_user_bets(username: str, db: Session = Depends(get_db)):
    """Bet history, newest first, with settlement criteria for each bet."""
    user = get_user(db, username)
    bets = bets_for_user(db, user)
    return BetListResponse(
        username=user.username,
        total_bets=len(bets),
        pending=len([b for b in bets if b.status == PENDING]),
        bets=[_bet_response(b) for b in bets],
    )


@app.post("/api/users/{username}/bets", response_model=BetActionResponse)
def post_bet(
    username: str,
    payload: PlaceBetRequest,
    db: Session = Depends(get_db),
    odds_client: OddsAPIClient = Depends(get_odds_client),
):
    """Place a spread bet at the line currently quoted for the game."""
    user = get_user(db, username)
    game = odds_client.find_game(payload.external_game_id)
    bet = place_bet(db, user, game, payload.side, payload.stake)
    return BetActionResponse(
        message="Bet placed",
        bet=_bet_response(bet),
        user=_user_detail(db, user),
    )


@app.put("/api/users/{username}/bets/{bet_id}/settle", response_model=BetActionResponse)
def put_settle_bet(
    username: str,
    bet_id: int,
    payload: SettleRequest,
    db: Session = Depends(get_db),
):
    """Settle a pending bet with the result the user declares."""
    user = get_user(db, username)
    bet = settle_bet(db, user, bet_id, payload.result)
    return BetActionResponse(
        message=f"Bet settled: {bet.status}",
        bet=_bet_response(bet),
        user=_user_detail(db, user),
    )


# ============================================================================
# ODDS
# ============================================================================

@app.get("/api/odds/nfl", response_model=OddsResponse)
def get_nfl_odds(odds_client: OddsAPIClient = Depends(get_odds_client)):
    """Upcoming NFL games with the bookmaker's current spreads."""
    games = odds_client.get_nfl_spreads()
    return OddsResponse(total_games=len(games), games=[asdict(g) for g in games])
