"""
Ledger and settlement engine.

Every balance change is an append-only ``Transaction``; ``User.current_balance``
is a cache of the ledger, rewritten in the same database transaction as the
entry that moves it.  Operations:

  login_or_create_user()  - lookup-or-create by username, seeds INITIAL entry
  place_bet()             - validate stake, upsert game, insert PENDING bet, debit stake
  settle_bet()            - PENDING -> WON/LOST/PUSH exactly once, credit payout
  leaderboard(), bets_for_user(), transactions_for_user(), fair_balance(), audit_ledger()

The acting user is always passed in explicitly.  Each mutating operation is a
single unit of work: a store failure rolls everything back and surfaces as
CollaboratorError, so the ledger can never drift from the cached balance.
"""

import logging
import math
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from dotenv import load_dotenv
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from mockbook.core.odds_math import (
    PENDING,
    SETTLE_RESULTS,
    format_american,
    round_money,
    settle_amounts,
)
from mockbook.core.spread_rules import SIDES, format_line
from mockbook.exceptions import CollaboratorError, MockBookError, NotFoundError, ValidationError
from mockbook.models import Bet, Game, Transaction, User
from mockbook.services.odds import SpreadGame

load_dotenv()

logger = logging.getLogger(__name__)

STARTING_BALANCE = float(os.getenv("STARTING_BALANCE", "1000"))

INITIAL = "INITIAL"
BET_PLACED = "BET_PLACED"
BET_SETTLED = "BET_SETTLED"

# Half a cent: float money compared at currency precision
_CENT_TOL = 0.005


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _unit_of_work(db: Session, action: str):
    """Commit once on success; roll back on any error."""
    try:
        yield
        db.commit()
    except MockBookError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s failed: %s", action, exc, exc_info=True)
        raise CollaboratorError(f"{action} failed: {exc}") from exc


@contextmanager
def _store_read(db: Session, action: str):
    """Reads outside a unit of work; store failures surface as CollaboratorError."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s failed: %s", action, exc, exc_info=True)
        raise CollaboratorError(f"{action} failed: {exc}") from exc


def _lock_user(db: Session, user_id: int) -> User:
    """Re-read the user row inside the unit of work (row lock where supported)."""
    user = (
        db.query(User)
        .filter(User.id == user_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _reload(db: Session, model, pk: int):
    with _store_read(db, f"Reload {model.__name__}"):
        row = db.get(model, pk, populate_existing=True)
    if row is None:
        raise NotFoundError(f"{model.__name__} {pk} missing after write")
    return row


def parse_stake(raw: Union[str, float, int, None]) -> float:
    """
    Parse a user-entered stake to cents.

    '25' → 25.0, ' 10.5 ' → 10.5.  Blank, non-numeric, NaN/inf, zero and
    negative values raise ValidationError.
    """
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid stake.")
    if not math.isfinite(value):
        raise ValidationError("Enter a valid stake.")
    value = round_money(value)
    if value <= 0:
        raise ValidationError("Enter a valid stake.")
    return value


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user(db: Session, username: str) -> User:
    with _store_read(db, "Load user"):
        user = db.query(User).filter(User.username == (username or "").strip()).first()
    if user is None:
        raise NotFoundError(f"User '{username}' not found")
    return user


def login_or_create_user(
    db: Session,
    username: str,
    starting_balance: Optional[float] = None,
) -> User:
    """
    Return the user named ``username``, creating it on first login.

    A new user starts at ``starting_balance`` (STARTING_BALANCE by default)
    with one INITIAL transaction recording that amount.
    """
    name = (username or "").strip()
    if not name:
        raise ValidationError("Username is required.")

    with _store_read(db, "Load user"):
        existing = db.query(User).filter(User.username == name).first()
    if existing is not None:
        return existing

    start = round_money(STARTING_BALANCE if starting_balance is None else starting_balance)
    if start < 0:
        raise ValidationError("Starting balance cannot be negative.")

    try:
        with _unit_of_work(db, "Create user"):
            user = User(
                username=name,
                display_name=name,
                starting_balance=start,
                current_balance=start,
            )
            db.add(user)
            db.flush()
            db.add(Transaction(
                user_id=user.id,
                type=INITIAL,
                amount=start,
                balance_after=start,
            ))
            user_id = user.id
    except CollaboratorError:
        # Lost a race with another login for the same name
        with _store_read(db, "Load user"):
            existing = db.query(User).filter(User.username == name).first()
        if existing is None:
            raise
        return existing

    logger.info("Created user %s with starting balance %.2f", name, start)
    return _reload(db, User, user_id)


def leaderboard(db: Session) -> List[User]:
    with _store_read(db, "Load leaderboard"):
        return db.query(User).order_by(User.current_balance.desc(), User.id.asc()).all()


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------

def ensure_game(db: Session, game: SpreadGame) -> Game:
    """
    Upsert a quoted game by external id.

    Runs inside the caller's unit of work.  A concurrent insert of the same
    game trips the unique constraint; the savepoint is rolled back and the
    winning row is returned instead.
    """
    row = db.query(Game).filter(Game.external_game_id == game.id).first()
    if row is not None:
        return row

    kickoff = game.kickoff
    try:
        with db.begin_nested():
            row = Game(
                external_game_id=game.id,
                season=kickoff.year if kickoff else None,
                week=0,
                home_team=game.home_team,
                away_team=game.away_team,
                kickoff_at=kickoff,
            )
            db.add(row)
    except IntegrityError:
        logger.info("Game %s inserted concurrently, reusing existing row", game.id)
        row = db.query(Game).filter(Game.external_game_id == game.id).first()
        if row is None:
            raise NotFoundError(f"Game {game.id} missing after upsert")
    return row


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def place_bet(
    db: Session,
    user: User,
    game: SpreadGame,
    side: str,
    stake: Union[str, float, int],
) -> Bet:
    """
    Place a PENDING spread bet and debit the stake.

    The bet records the quoted team, point and price as they stand now;
    later line movement never touches it.

    Raises:
        ValidationError: bad side or stake, no quote for the side, or
            stake above the user's current balance.  Nothing is written.
        CollaboratorError: the store failed; the unit of work is rolled back.
    """
    side = (side or "").strip().upper()
    if side not in SIDES:
        raise ValidationError(f"Unknown side {side!r}; expected HOME or AWAY")

    amount = parse_stake(stake)

    spread = game.spread_for(side)
    if spread is None:
        raise ValidationError("No spread available for that side.")
    if not spread.price:
        raise ValidationError("Quoted price is not valid American odds.")

    with _unit_of_work(db, "Place bet"):
        account = _lock_user(db, user.id)
        if amount > account.current_balance + 1e-9:
            raise ValidationError("Stake exceeds your current balance.")

        game_row = ensure_game(db, game)

        bet = Bet(
            user_id=account.id,
            game_id=game_row.id,
            side=side,
            team_name=spread.team_name,
            spread_line=spread.point,
            odds_american=spread.price,
            stake=amount,
            status=PENDING,
            placed_at=datetime.utcnow(),
        )
        db.add(bet)
        db.flush()

        new_balance = round_money(account.current_balance - amount)
        db.add(Transaction(
            user_id=account.id,
            bet_id=bet.id,
            type=BET_PLACED,
            amount=-amount,
            balance_after=new_balance,
        ))
        account.current_balance = new_balance
        bet_id = bet.id

    logger.info(
        "Bet %d placed: %s %s %s @ %s, stake %.2f, balance now %.2f",
        bet_id, user.username, spread.team_name, format_line(spread.point),
        format_american(spread.price),
        amount, new_balance,
    )
    return _reload(db, Bet, bet_id)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def settle_bet(db: Session, user: User, bet_id: int, result: str) -> Bet:
    """
    Settle one of ``user``'s PENDING bets with a declared result.

    Writes the terminal status and actual/fair amounts, appends one
    BET_SETTLED transaction crediting the payout and updates the balance,
    all in one database transaction.  The status change is conditional on
    the bet still being PENDING, so a second settle (from another tab, or
    a retry) fails as "already settled" and writes nothing.
    """
    result = (result or "").strip().upper()
    if result not in SETTLE_RESULTS:
        raise ValidationError(
            f"Unknown result {result!r}; expected one of {', '.join(SETTLE_RESULTS)}"
        )

    with _store_read(db, "Load bet"):
        bet = db.query(Bet).filter(Bet.id == bet_id, Bet.user_id == user.id).first()
    if bet is None:
        raise NotFoundError(f"Bet {bet_id} not found")
    if bet.status != PENDING:
        raise ValidationError("Bet is already settled.")

    amounts = settle_amounts(bet.stake, bet.odds_american, result)

    with _unit_of_work(db, "Settle bet"):
        account = _lock_user(db, user.id)

        updated = (
            db.query(Bet)
            .filter(Bet.id == bet_id, Bet.status == PENDING)
            .update(
                {
                    Bet.status: amounts.result,
                    Bet.payout: amounts.payout,
                    Bet.profit: amounts.profit,
                    Bet.fair_payout: amounts.fair_payout,
                    Bet.fair_profit: amounts.fair_profit,
                    Bet.settled_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise ValidationError("Bet is already settled.")

        new_balance = round_money(account.current_balance + amounts.payout)
        db.add(Transaction(
            user_id=account.id,
            bet_id=bet_id,
            type=BET_SETTLED,
            amount=amounts.payout,
            balance_after=new_balance,
        ))
        account.current_balance = new_balance

    logger.info(
        "%s: bet %d (%s) | profit %.2f, payout %.2f, fair profit %.2f, balance now %.2f",
        amounts.result, bet_id, user.username, amounts.profit, amounts.payout,
        amounts.fair_profit, new_balance,
    )
    return _reload(db, Bet, bet_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def bets_for_user(db: Session, user: User) -> List[Bet]:
    """Newest first, with the game eagerly loaded."""
    with _store_read(db, "Load bets"):
        return (
            db.query(Bet)
            .options(joinedload(Bet.game))
            .filter(Bet.user_id == user.id)
            .order_by(Bet.placed_at.desc(), Bet.id.desc())
            .all()
        )


def transactions_for_user(db: Session, user: User) -> List[Transaction]:
    with _store_read(db, "Load transactions"):
        return (
            db.query(Transaction)
            .filter(Transaction.user_id == user.id)
            .order_by(Transaction.id.asc())
            .all()
        )


def fair_balance(db: Session, user: User) -> float:
    """Starting balance plus fair (no-vig) profit over settled bets."""
    with _store_read(db, "Load fair balance"):
        fair_total = (
            db.query(func.coalesce(func.sum(Bet.fair_profit), 0.0))
            .filter(Bet.user_id == user.id, Bet.fair_profit.isnot(None))
            .scalar()
        )
        starting = user.starting_balance
    return round_money(starting + (fair_total or 0.0))


@dataclass
class LedgerAudit:
    starting_balance: float
    ledger_total: float        # Σ amount, INITIAL included
    movement_total: float      # Σ amount excluding INITIAL
    current_balance: float
    last_balance_after: Optional[float]
    transaction_count: int

    @property
    def consistent(self) -> bool:
        checks = [
            abs(self.current_balance - self.ledger_total) < _CENT_TOL,
            abs(self.current_balance - (self.starting_balance + self.movement_total)) < _CENT_TOL,
        ]
        if self.last_balance_after is not None:
            checks.append(abs(self.current_balance - self.last_balance_after) < _CENT_TOL)
        return all(checks)

    def to_dict(self) -> dict:
        return {
            "starting_balance": self.starting_balance,
            "ledger_total": self.ledger_total,
            "movement_total": self.movement_total,
            "current_balance": self.current_balance,
            "last_balance_after": self.last_balance_after,
            "transaction_count": self.transaction_count,
            "consistent": self.consistent,
        }


def audit_ledger(db: Session, user: User) -> LedgerAudit:
    """Compare the cached balance against the transaction ledger."""
    entries = transactions_for_user(db, user)
    ledger_total = round_money(sum(t.amount for t in entries))
    movement_total = round_money(sum(t.amount for t in entries if t.type != INITIAL))

    with _store_read(db, "Load user"):
        audit = LedgerAudit(
            starting_balance=user.starting_balance,
            ledger_total=ledger_total,
            movement_total=movement_total,
            current_balance=user.current_balance,
            last_balance_after=entries[-1].balance_after if entries else None,
            transaction_count=len(entries),
        )
    if not audit.consistent:
        logger.warning("Ledger drift for %s: %s", user.username, audit.to_dict())
    return audit
