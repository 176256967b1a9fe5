"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import path for the backend package and small
    snapshot/selection builders used across placement tests.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from app.models.odds import Market, MarketSnapshot, Outcome  # noqa: E402

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_event(
    event_id: str = "evt-ars-che",
    *,
    home: str = "Arsenal",
    away: str = "Chelsea",
    sport_key: str = "soccer_epl",
    kickoff: datetime | None = None,
    markets: list[Market] | None = None,
) -> MarketSnapshot:
    if markets is None:
        markets = [
            Market(key="h2h", outcomes=[
                Outcome(name=home, price=1.88),
                Outcome(name="Draw", price=3.6),
                Outcome(name=away, price=4.2),
            ]),
            Market(key="totals", outcomes=[
                Outcome(name="Over", price=1.95, point=2.5),
                Outcome(name="Under", price=1.85, point=2.5),
            ]),
        ]
    return MarketSnapshot(
        event_id=event_id,
        sport_key=sport_key,
        sport_title="EPL",
        commence_time=kickoff or NOW + timedelta(hours=3),
        home_team=home,
        away_team=away,
        markets=markets,
    )


@pytest.fixture
def now() -> datetime:
    return NOW
