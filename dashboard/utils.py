"""Shared helpers for the dashboard: API calls and display formatting."""

import os
import requests
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

_API_URL = os.getenv("API_URL", "http://localhost:8000")


def _detail(exc: requests.HTTPError) -> str:
    try:
        return exc.response.json().get("detail", str(exc))
    except ValueError:
        return str(exc)


def api_get(endpoint: str, params: dict = None):
    try:
        r = requests.get(f"{_API_URL}{endpoint}", params=params, timeout=15)
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        st.error(f"API {exc.response.status_code}: {_detail(exc)}")
        return None
    except Exception as exc:
        st.error(f"API error: {exc}")
        return None


def api_post(endpoint: str, payload: dict):
    try:
        r = requests.post(f"{_API_URL}{endpoint}", json=payload, timeout=15)
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        st.error(f"API {exc.response.status_code}: {_detail(exc)}")
        return None
    except Exception as exc:
        st.error(f"Request failed: {exc}")
        return None


def api_put(endpoint: str, payload: dict):
    try:
        r = requests.put(f"{_API_URL}{endpoint}", json=payload, timeout=15)
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        st.error(f"API {exc.response.status_code}: {_detail(exc)}")
        return None
    except Exception as exc:
        st.error(f"Request failed: {exc}")
        return None


def signed(value) -> str:
    """+3.5 / -7 / 0 for lines and American prices."""
    if value is None:
        return "-"
    if float(value).is_integer():
        value = int(value)
    return f"+{value}" if value > 0 else str(value)


STATUS_ICONS = {
    "PENDING": "⏳",
    "WON":     "🟢",
    "LOST":    "🔴",
    "PUSH":    "⚪",
}
