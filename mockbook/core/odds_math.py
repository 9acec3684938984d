"""Settlement arithmetic: the single source of truth for money math.

Every function here is **pure**: no I/O and no logging.
Import from this module; never reimplement locally in services or routes.

Two ledgers are computed for each settled bet:

1. **Actual**: what the quoted American price pays.
2. **Fair**: what an even-money (zero-vig) market would have paid.  A won
   bet always nets exactly its stake.  The gap between the two isolates the
   bookmaker's edge from the correctness of the pick.

Design decisions
----------------
* Odds are American integers as returned by The Odds API.  Zero is not a
  representable price and is rejected.
* Money is rounded to cents (:data:`MONEY_PLACES`) before it reaches any
  persisted field.  Payout is derived from the *rounded* profit so that
  ``payout - stake == profit`` holds exactly on the stored values.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Currency precision for every persisted money field.
MONEY_PLACES: Final[int] = 2

WON: Final[str] = "WON"
LOST: Final[str] = "LOST"
PUSH: Final[str] = "PUSH"
PENDING: Final[str] = "PENDING"

#: Results a user may declare when settling.
SETTLE_RESULTS: Final[tuple[str, ...]] = (WON, LOST, PUSH)


def round_money(value: float) -> float:
    """Round to cents.  ``-0.0`` is normalised to ``0.0``."""
    return round(value, MONEY_PLACES) + 0.0


# ---------------------------------------------------------------------------
# Profit
# ---------------------------------------------------------------------------


def compute_profit(stake: float, american_odds: int | float) -> float:
    """Profit on a winning bet at American odds, rounded to cents.

    Examples::

        compute_profit(100, -110) → 90.91   (risk 110 to win 100)
        compute_profit(100, +150) → 150.00  (risk 100 to win 150)

    Args:
        stake: Amount risked.  Must be positive.
        american_odds: American odds.  Positive = profit per 100 staked;
            negative = stake needed to profit 100.

    Returns:
        Profit excluding the returned stake.

    Raises:
        ValueError: If ``american_odds`` is 0 or ``stake`` is not positive.
    """
    if american_odds == 0:
        raise ValueError("American odds cannot be 0")
    if stake <= 0:
        raise ValueError(f"stake must be positive, got {stake!r}")

    if american_odds > 0:
        profit = stake * (american_odds / 100.0)
    else:
        profit = stake * (100.0 / abs(american_odds))
    return round_money(profit)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementAmounts:
    result: str
    profit: float
    payout: float
    fair_profit: float
    fair_payout: float


def settle_amounts(stake: float, american_odds: int | float, result: str) -> SettlementAmounts:
    """Actual and fair profit/payout for a declared result.

    ======  ==============  ==============  ===========  ===========
    result  profit          payout          fair_profit  fair_payout
    ======  ==============  ==============  ===========  ===========
    WON     compute_profit  stake + profit  +stake       2 * stake
    LOST    -stake          0               -stake       0
    PUSH    0               stake           0            stake
    ======  ==============  ==============  ===========  ===========

    Raises:
        ValueError: For an unknown result, zero odds or a non-positive stake.
    """
    if result not in SETTLE_RESULTS:
        raise ValueError(
            f"Unknown result {result!r}; expected one of {', '.join(SETTLE_RESULTS)}"
        )
    if stake <= 0:
        raise ValueError(f"stake must be positive, got {stake!r}")

    stake = round_money(stake)

    if result == WON:
        profit = compute_profit(stake, american_odds)
        return SettlementAmounts(
            result=WON,
            profit=profit,
            payout=round_money(stake + profit),
            fair_profit=stake,
            fair_payout=round_money(stake + stake),
        )
    if result == LOST:
        return SettlementAmounts(
            result=LOST,
            profit=-stake,
            payout=0.0,
            fair_profit=-stake,
            fair_payout=0.0,
        )
    return SettlementAmounts(
        result=PUSH,
        profit=0.0,
        payout=stake,
        fair_profit=0.0,
        fair_payout=stake,
    )


def format_american(odds: int | float) -> str:
    """Display form of an American price: ``+150`` / ``-110``."""
    odds = int(odds)
    return f"+{odds}" if odds > 0 else str(odds)
