"""Point-spread settlement rules.

Pure functions describing how a spread bet grades against a final margin.
The text from :func:`explain_spread` is advisory: the result recorded on a
bet is whatever the user declares, never checked against real scores.

Margins are always from the bet team's perspective (positive = bet team
won by that many points).  Spread lines are from the bet team's
perspective too (negative = favourite, positive = underdog).
"""

from __future__ import annotations

import math

from mockbook.core.odds_math import LOST, PUSH, WON

HOME = "HOME"
AWAY = "AWAY"
SIDES = (HOME, AWAY)


def format_points(value: float) -> str:
    """``3.0`` → ``"3"``, ``3.5`` → ``"3.5"``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_line(line: float) -> str:
    """Signed display form of a spread: ``+3``, ``-7.5``, ``0``."""
    text = format_points(line)
    return f"+{text}" if line > 0 else text


def has_hook(line: float) -> bool:
    """True when the line carries a half point, so a push is impossible."""
    return abs(line) % 1 != 0


def grade_spread(line: float, margin: float) -> str:
    """
    Grade a spread bet for a final margin.

        margin + line > 0  →  WON
        margin + line = 0  →  PUSH
        margin + line < 0  →  LOST
    """
    cover_margin = margin + line
    if abs(cover_margin) < 0.01:
        return PUSH
    return WON if cover_margin > 0 else LOST


def bet_teams(side: str, home_team: str, away_team: str) -> tuple[str, str]:
    """Return ``(bet_team, opponent)`` for a side."""
    if side == HOME:
        return home_team, away_team
    if side == AWAY:
        return away_team, home_team
    raise ValueError(f"Unknown side {side!r}; expected HOME or AWAY")


def explain_spread(side: str, line: float, home_team: str, away_team: str) -> str:
    """
    Plain-language WON/LOST/PUSH criteria for a spread bet.

    Thresholds:
      pick'em (0)        win → WON, tie → PUSH, loss → LOST
      favourite, hook    win by floor(|line|)+1 or more → WON, else LOST
      favourite, whole   win by more than |line| → WON, exactly → PUSH
      underdog, hook     win or lose by floor(line) or fewer → WON
      underdog, whole    win or lose by fewer than line → WON, exactly → PUSH
    """
    bet_team, opp_team = bet_teams(side, home_team, away_team)
    abs_line = abs(line)
    abs_text = format_points(abs_line)
    line_text = format_line(line)

    if line == 0:
        return (
            f"You bet {bet_team} (pick'em). If {bet_team} win, select WON. "
            f"If {opp_team} win, select LOST. If the game ends tied, select PUSH."
        )

    if line < 0:
        if has_hook(line):
            needed = math.floor(abs_line) + 1
            return (
                f"You bet {bet_team} {line_text}. If {bet_team} win by {needed} or more "
                f"points, select WON. If {opp_team} win or {bet_team} win by "
                f"{needed - 1} or fewer, select LOST."
            )
        return (
            f"You bet {bet_team} {line_text}. If {bet_team} win by more than {abs_text} "
            f"points, select WON. If they win by exactly {abs_text}, select PUSH. "
            f"If they win by fewer than {abs_text} points or lose, select LOST."
        )

    if has_hook(line):
        max_lose = math.floor(abs_line)
        return (
            f"You bet {bet_team} {line_text}. If {bet_team} win or lose by {max_lose} "
            f"points or fewer, select WON. If they lose by {max_lose + 1} or more, "
            f"select LOST."
        )
    return (
        f"You bet {bet_team} {line_text}. If {bet_team} win or lose by fewer than "
        f"{abs_text} points, select WON. If they lose by exactly {abs_text}, select "
        f"PUSH. If they lose by more than {abs_text}, select LOST."
    )
