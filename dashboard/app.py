"""
Streamlit Dashboard for the mock spread book
Log in by name, bet on DraftKings NFL spreads and settle your own bets
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import streamlit as st
import pandas as pd
from datetime import datetime
from urllib.parse import quote

from dashboard.utils import STATUS_ICONS, api_get, api_post, api_put, signed

st.set_page_config(
    page_title="Mock NFL Betting",
    page_icon="🏈",
    layout="wide",
)


def _user_path(username: str) -> str:
    return f"/api/users/{quote(username, safe='')}"


def _login(name: str) -> None:
    user = api_post("/api/users/login", {"username": name})
    if user:
        st.session_state["user"] = user
        st.session_state.pop("slip", None)


def _refresh_user() -> None:
    user = st.session_state.get("user")
    if user:
        fresh = api_get(_user_path(user["username"]))
        if fresh:
            st.session_state["user"] = fresh


# Username from the URL (?user=alice) logs in directly
if "user" not in st.session_state:
    from_url = st.query_params.get("user")
    if from_url:
        _login(from_url)


# ==============================================================================
# LOGIN
# ==============================================================================

st.title("🏈 Mock NFL Betting")

with st.form("login_form"):
    col1, col2 = st.columns([3, 1])
    with col1:
        username = st.text_input("Username", placeholder="Enter username", label_visibility="collapsed")
    with col2:
        submitted = st.form_submit_button("Join / Login")
if submitted and username.strip():
    _login(username.strip())

_refresh_user()
user = st.session_state.get("user")
if user:
    st.markdown(
        f"Logged in as **{user.get('display_name') or user['username']}** · "
        f"Balance {user['current_balance']:.2f}"
    )
    if st.checkbox("Show fair balance (no vig)"):
        st.caption(f"Fair balance (if spreads were even money): {user['fair_balance']:.2f}")


# ==============================================================================
# LEADERBOARD
# ==============================================================================

st.subheader("Leaderboard")
board = api_get("/api/users/leaderboard")
if board and board.get("users"):
    df = pd.DataFrame(
        [
            {"User": u.get("display_name") or u["username"], "Balance": u["current_balance"]}
            for u in board["users"]
        ]
    )
    st.dataframe(df.style.format({"Balance": "{:.2f}"}), use_container_width=True, hide_index=True)
else:
    st.info("No users yet.")


# ==============================================================================
# MY BETS
# ==============================================================================

if user:
    st.subheader("My Bets")
    data = api_get(f"{_user_path(user['username'])}/bets")
    bets = (data or {}).get("bets", [])
    if not bets:
        st.info("No bets yet.")

    for b in bets:
        placed = datetime.fromisoformat(b["placed_at"]).strftime("%b %d, %I:%M %p")
        cols = st.columns([2, 3, 1, 1, 1, 1, 3])
        cols[0].write(placed)
        cols[1].write(f"{b['team_name']} ({b['side']})")
        cols[2].write(f"{b['stake']:.2f}")
        cols[3].write(signed(b["spread_line"]))
        cols[4].write(signed(b["odds_american"]))
        cols[5].write(f"{STATUS_ICONS.get(b['status'], '')} {b['status']}")

        if b["status"] == "PENDING":
            won, lost, push = cols[6].columns(3)
            for col, result in ((won, "WON"), (lost, "LOST"), (push, "PUSH")):
                if col.button(result.title(), key=f"settle_{b['id']}_{result}", help=b["explanation"]):
                    settled = api_put(
                        f"{_user_path(user['username'])}/bets/{b['id']}/settle",
                        {"result": result},
                    )
                    if settled:
                        st.session_state["user"] = settled["user"]
                        st.rerun()
        else:
            cols[6].write(f"Profit {b['profit']:+.2f} · Fair {b['fair_profit']:+.2f}")
else:
    st.info("Log in to see your bets.")


# ==============================================================================
# ODDS BOARD
# ==============================================================================

head, refresh = st.columns([4, 1])
head.subheader("Upcoming NFL Spreads (DraftKings)")
if refresh.button("Refresh Odds"):
    st.session_state.pop("odds", None)

if "odds" not in st.session_state:
    odds = api_get("/api/odds/nfl")
    st.session_state["odds"] = (odds or {}).get("games", [])

games = st.session_state["odds"]
if not games:
    st.info("No games returned.")

for g in games:
    with st.container(border=True):
        kickoff = g.get("commence_time") or ""
        st.markdown(f"**{g['away_team']} @ {g['home_team']}** · {kickoff} · {g['bookmaker']}")
        away_col, home_col = st.columns(2)
        for col, side, spread, team in (
            (away_col, "AWAY", g.get("away_spread"), g["away_team"]),
            (home_col, "HOME", g.get("home_spread"), g["home_team"]),
        ):
            if spread:
                col.write(
                    f"{spread['team_name']} · Spread {signed(spread['point'])} · "
                    f"Odds {signed(spread['price'])}"
                )
                if col.button(f"Bet {side.title()}", key=f"slip_{g['id']}_{side}"):
                    if not user:
                        st.error("Log in first to place a bet.")
                    else:
                        st.session_state["slip"] = {"game": g, "side": side, "spread": spread}
            else:
                col.write(f"{team} · No spread")


# ==============================================================================
# BET SLIP
# ==============================================================================

slip = st.session_state.get("slip")
if slip and user:
    g = slip["game"]
    st.markdown("---")
    st.subheader("Bet Slip")
    st.write(f"{g['away_team']} @ {g['home_team']}")
    st.write(
        f"Side {slip['spread']['team_name']} · Spread {signed(slip['spread']['point'])} · "
        f"Odds {signed(slip['spread']['price'])}"
    )
    with st.form("bet_slip"):
        stake = st.text_input("Stake", placeholder="Stake")
        place, cancel = st.columns(2)
        placed = place.form_submit_button("Place Bet", type="primary")
        cancelled = cancel.form_submit_button("Cancel")

    if cancelled:
        st.session_state.pop("slip", None)
        st.rerun()
    if placed:
        result = api_post(
            f"{_user_path(user['username'])}/bets",
            {"external_game_id": g["id"], "side": slip["side"], "stake": stake},
        )
        if result:
            st.session_state["user"] = result["user"]
            st.session_state.pop("slip", None)
            st.rerun()
