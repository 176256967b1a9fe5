"""Normalized odds snapshot models: one event with its priced markets."""

from datetime import datetime
from typing import List, Optional

from app.models.common import CamelModel


class Outcome(CamelModel):
    """One priced option within a market, e.g. a team or "Over" at 2.5."""
    name: str
    price: float
    point: Optional[float] = None


class Market(CamelModel):
    """A bettable category on an event (h2h, totals, spreads, ...)."""
    key: str
    outcomes: List[Outcome] = []


class MarketSnapshot(CamelModel):
    """Point-in-time view of one event's markets.

    Built fresh for every validation request and discarded afterwards;
    never shared between requests.
    """
    event_id: str
    sport_key: str
    sport_title: str = ""
    commence_time: Optional[datetime] = None
    home_team: str = ""
    away_team: str = ""
    markets: List[Market] = []

    def market(self, key: str) -> Optional[Market]:
        for market in self.markets:
            if market.key == key:
                return market
        return None

    @property
    def market_keys(self) -> list[str]:
        return [m.key for m in self.markets]
