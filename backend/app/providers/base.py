from abc import ABC, abstractmethod
from typing import Optional, Sequence

from app.models.odds import MarketSnapshot


class BaseOddsProvider(ABC):
    """Abstract base class for live odds providers."""

    @abstractmethod
    async def fetch_snapshot(
        self, sport_key: str, market_keys: Sequence[str],
    ) -> list[MarketSnapshot]:
        """Fetch every listed event of a sport with the requested markets.

        Raises:
        - UnsupportedMarketsError when the provider rejects part of the
          market list (carries the rejected keys)
        - UpstreamError for any other provider failure
        """
        ...

    @abstractmethod
    async def fetch_event_markets(
        self, event_id: str, sport_key: str, market_keys: Optional[Sequence[str]] = None,
    ) -> Optional[MarketSnapshot]:
        """Fetch one event with an extended market list. None when unknown."""
        ...
