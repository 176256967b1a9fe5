import logging
from typing import Any, Optional, Sequence

import httpx

from app.config import settings
from app.models.odds import Market, MarketSnapshot, Outcome
from app.providers.base import BaseOddsProvider
from app.providers.http_client import CircuitOpenError, ResilientClient, safe_url
from app.services.placement_errors import (
    MisconfiguredError,
    UnsupportedMarketsError,
    UpstreamError,
)
from app.utils import parse_utc

logger = logging.getLogger("betslip.odds_api")

UNSUPPORTED_MARKETS_MARKER = "Markets not supported by this endpoint:"


def parse_unsupported_markets(message: str) -> list[str]:
    """Pull the rejected market keys out of a provider error message."""
    if not message or UNSUPPORTED_MARKETS_MARKER not in message:
        return []
    tail = message.split(UNSUPPORTED_MARKETS_MARKER, 1)[1]
    return [item.strip() for item in tail.split(",") if item.strip()]


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_event(raw: dict[str, Any]) -> MarketSnapshot:
    """Normalize one TheOddsAPI event; markets come from the first bookmaker."""
    markets: list[Market] = []
    bookmakers = raw.get("bookmakers") or []
    if bookmakers:
        for market in bookmakers[0].get("markets") or []:
            outcomes = []
            for outcome in market.get("outcomes") or []:
                price = _to_float(outcome.get("price"))
                if price is None:
                    continue
                outcomes.append(Outcome(
                    name=str(outcome.get("name") or ""),
                    price=price,
                    point=_to_float(outcome.get("point")),
                ))
            markets.append(Market(key=str(market.get("key") or ""), outcomes=outcomes))

    return MarketSnapshot(
        event_id=str(raw.get("id") or ""),
        sport_key=str(raw.get("sport_key") or ""),
        sport_title=str(raw.get("sport_title") or ""),
        commence_time=parse_utc(raw.get("commence_time")),
        home_team=str(raw.get("home_team") or ""),
        away_team=str(raw.get("away_team") or ""),
        markets=markets,
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return resp.text or "Odds API error"


class TheOddsAPIProvider(BaseOddsProvider):
    """TheOddsAPI v4 client. Every call goes to the network; nothing is cached."""

    def __init__(self, client: Optional[ResilientClient] = None):
        self._client = client or ResilientClient(
            "odds_api",
            timeout=settings.ODDS_HTTP_TIMEOUT_SECONDS,
            max_retries=settings.ODDS_HTTP_MAX_RETRIES,
            headers={"Content-Type": "application/json"},
        )
        self._api_usage: dict[str, Optional[int]] = {"requests_used": 0, "requests_remaining": None}

    def _track_usage_headers(self, resp: httpx.Response) -> None:
        """Extract and store API usage from response headers."""
        used = resp.headers.get("x-requests-used")
        remaining = resp.headers.get("x-requests-remaining")
        try:
            if used is not None:
                self._api_usage["requests_used"] = int(used)
            if remaining is not None:
                self._api_usage["requests_remaining"] = int(remaining)
        except ValueError:
            logger.debug("Unparseable usage headers: used=%r remaining=%r", used, remaining)

    def _params(self, markets: str) -> dict[str, str]:
        return {
            "apiKey": settings.ODDSAPIKEY,
            "regions": settings.ODDS_REGIONS,
            "markets": markets,
            "oddsFormat": "decimal",
            "dateFormat": "iso",
        }

    async def _get(self, path: str, markets: str, sport_key: str) -> httpx.Response:
        if not settings.ODDSAPIKEY:
            raise MisconfiguredError()
        url = f"{settings.THEODDSAPI_BASE_URL}{path}"
        try:
            resp = await self._client.get(url, params=self._params(markets))
        except CircuitOpenError as exc:
            logger.warning("Circuit open for odds, refusing %s", path)
            raise UpstreamError("Odds provider temporarily unavailable.", sport_key=sport_key) from exc
        except httpx.HTTPError as exc:
            logger.error("TheOddsAPI network error for %s: %s", safe_url(url), exc)
            raise UpstreamError(str(exc) or "Odds API error", sport_key=sport_key) from exc

        self._track_usage_headers(resp)
        return resp

    async def fetch_snapshot(
        self, sport_key: str, market_keys: Sequence[str],
    ) -> list[MarketSnapshot]:
        markets = ",".join(market_keys)
        resp = await self._get(f"/sports/{sport_key}/odds", markets, sport_key)

        if resp.status_code >= 400:
            message = _error_message(resp)
            unsupported = parse_unsupported_markets(message)
            if unsupported:
                logger.info("TheOddsAPI rejected markets for %s: %s", sport_key, unsupported)
                raise UnsupportedMarketsError(unsupported, message, sport_key=sport_key)
            logger.error("TheOddsAPI error %d for %s: %s", resp.status_code, sport_key, message)
            raise UpstreamError(message, sport_key=sport_key)

        raw = resp.json()
        events = raw if isinstance(raw, list) else []
        snapshots = [parse_event(event) for event in events if isinstance(event, dict)]
        logger.debug("Fetched %d events for %s (markets=%s)", len(snapshots), sport_key, markets)
        return snapshots

    async def fetch_event_markets(
        self, event_id: str, sport_key: str, market_keys: Optional[Sequence[str]] = None,
    ) -> Optional[MarketSnapshot]:
        markets = ",".join(market_keys) if market_keys else settings.ODDS_EVENT_MARKETS
        resp = await self._get(f"/sports/{sport_key}/events/{event_id}/odds", markets, sport_key)

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            message = _error_message(resp)
            raise UpstreamError(message, event_id=event_id, sport_key=sport_key)

        raw = resp.json()
        # The event endpoint answers with one object; tolerate a one-element list.
        if isinstance(raw, list):
            raw = raw[0] if raw else None
        if not isinstance(raw, dict):
            return None
        return parse_event(raw)

    @property
    def api_usage(self) -> dict:
        return self._api_usage

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    @property
    def circuit_state(self) -> dict:
        return self._client.circuit.snapshot()

    async def aclose(self) -> None:
        await self._client.aclose()


# Singleton provider instance
odds_provider = TheOddsAPIProvider()


def get_odds_provider() -> BaseOddsProvider:
    return odds_provider
