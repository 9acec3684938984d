"""
Database models for the mock spread book
SQLAlchemy ORM; SQLite by default, any SQLAlchemy URL via DATABASE_URL
"""

from sqlalchemy import (
    create_engine,
    CheckConstraint,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mockbook.db")


def make_engine(url: str = DATABASE_URL):
    """Engine for ``url``; SQLite connections may be shared across FastAPI worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, echo=False, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class User(Base):
    """A player identified by name; balance is a cache of the transaction ledger"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String)

    starting_balance = Column(Float, nullable=False)
    current_balance = Column(Float, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    bets = relationship("Bet", back_populates="user")
    transactions = relationship(
        "Transaction", back_populates="user", order_by="Transaction.id"
    )


class Game(Base):
    """NFL game referenced by at least one bet"""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    external_game_id = Column(String, unique=True, nullable=False, index=True)  # From odds API
    season = Column(Integer)
    week = Column(Integer, default=0)
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)
    kickoff_at = Column(DateTime, index=True)

    bets = relationship("Bet", back_populates="game")

    created_at = Column(DateTime, default=datetime.utcnow)


class Bet(Base):
    """A spread wager; team, line and price are frozen at placement"""

    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)

    # What was bet
    side = Column(String(4), nullable=False)  # "HOME" | "AWAY"
    team_name = Column(String, nullable=False)
    spread_line = Column(Float, nullable=False)  # Bet team's perspective
    odds_american = Column(Integer, nullable=False)
    stake = Column(Float, nullable=False)

    status = Column(String(10), nullable=False, default="PENDING", index=True)
    placed_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Settlement (NULL while PENDING)
    settled_at = Column(DateTime)
    payout = Column(Float)
    profit = Column(Float)
    fair_payout = Column(Float)  # Even-money market, no vig
    fair_profit = Column(Float)

    user = relationship("User", back_populates="bets")
    game = relationship("Game", back_populates="bets")

    __table_args__ = (
        CheckConstraint("stake > 0", name="ck_bets_stake_positive"),
        CheckConstraint("odds_american != 0", name="ck_bets_odds_nonzero"),
    )


class Transaction(Base):
    """Append-only ledger entry; never updated or deleted"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    bet_id = Column(Integer, ForeignKey("bets.id"), index=True)

    type = Column(String(20), nullable=False)  # INITIAL | BET_PLACED | BET_SETTLED
    amount = Column(Float, nullable=False)  # Signed
    balance_after = Column(Float, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", back_populates="transactions")
    bet = relationship("Bet")


# Create all tables
def init_db(bind=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
