"""Shared pytest fixtures: an isolated in-memory database and quoted games."""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mockbook.models import Base
from mockbook.services.odds import SpreadGame, SpreadSide


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Fresh in-memory SQLite database per test, shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


def make_quote(
    game_id="evt-kc-buf",
    home="Kansas City Chiefs",
    away="Buffalo Bills",
    home_point=-3.5,
    home_price=-110,
    away_point=3.5,
    away_price=-110,
    commence_time="2026-10-19T00:20:00Z",
    home_quoted=True,
    away_quoted=True,
) -> SpreadGame:
    return SpreadGame(
        id=game_id,
        commence_time=commence_time,
        home_team=home,
        away_team=away,
        bookmaker="DraftKings",
        home_spread=SpreadSide(home, home_point, home_price) if home_quoted else None,
        away_spread=SpreadSide(away, away_point, away_price) if away_quoted else None,
    )


@pytest.fixture
def quote():
    return make_quote()
