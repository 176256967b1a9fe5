"""
backend/app/services/placement_errors.py

Purpose:
    Closed set of placement failures. Each variant carries a machine-readable
    ``code`` plus the context a caller needs to decide between retrying with
    fresh odds and abandoning the ticket (event id, market, both prices).

Dependencies:
    - fastapi.status
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class PlacementError(Exception):
    """Base class; subclasses fix ``code`` and ``status_code``."""

    code: str = "placement_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Place bet error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        event_id: Optional[str] = None,
        market: Optional[str] = None,
        sport_key: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.event_id = event_id
        self.market = market
        self.sport_key = sport_key
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.event_id is not None:
            payload["eventId"] = self.event_id
        if self.market is not None:
            payload["market"] = self.market
        if self.sport_key is not None:
            payload["sportKey"] = self.sport_key
        return payload


# ---------- Input validation (no network calls made) ----------

class InvalidStakeError(PlacementError):
    code = "invalid_stake"
    default_message = "Invalid stake."


class NoSelectionsError(PlacementError):
    code = "no_selections"
    default_message = "No selections."


class InvalidPolicyError(PlacementError):
    code = "invalid_policy"
    default_message = "Invalid placement policy."


# ---------- Resolution ----------

class EventNotFoundError(PlacementError):
    code = "event_not_found"
    default_message = "Event not found"


class MarketNotSupportedError(PlacementError):
    code = "market_not_supported"
    default_message = "Market not available"


class OutcomeNotFoundError(PlacementError):
    code = "outcome_not_found"
    default_message = "Outcome not available"


# ---------- Policy ----------

class LiveNotSupportedError(PlacementError):
    code = "live_not_supported"
    default_message = "Live betting is not available."


class EventStartedError(PlacementError):
    code = "event_started"
    default_message = "Event already started"


class CutoffError(PlacementError):
    code = "cutoff"
    default_message = "Event too close to start"


class InvalidOddsError(PlacementError):
    code = "invalid_odds"
    default_message = "Invalid odds"


class PriceChangedError(PlacementError):
    code = "price_changed"
    default_message = "Price changed"

    def __init__(self, *, event_id: str, requested_odds: float, current_odds: float, **kwargs: Any) -> None:
        super().__init__(event_id=event_id, **kwargs)
        self.requested_odds = requested_odds
        self.current_odds = current_odds

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["requestedOdds"] = self.requested_odds
        payload["currentOdds"] = self.current_odds
        return payload


class MarketsNotSupportedError(PlacementError):
    code = "markets_not_supported"

    def __init__(self, unsupported: list[str], *, sport_key: Optional[str] = None) -> None:
        self.unsupported = list(unsupported)
        super().__init__(
            f"Markets not supported: {', '.join(self.unsupported)}",
            sport_key=sport_key,
        )


# ---------- Collaborators ----------

class UpstreamError(PlacementError):
    """Odds provider failure, surfaced verbatim; the ticket fails closed."""
    code = "upstream_error"
    default_message = "Odds API error"


class UnsupportedMarketsError(UpstreamError):
    """Provider rejected the requested market list; carries the rejected keys."""
    code = "markets_rejected"

    def __init__(self, unsupported: list[str], message: str, *, sport_key: Optional[str] = None) -> None:
        self.unsupported = list(unsupported)
        super().__init__(message, sport_key=sport_key)


class SettlementError(PlacementError):
    """Ledger refused the ticket (e.g. insufficient balance); message passes through."""
    code = "settlement_failed"
    default_message = "Settlement failed"


class UnauthorizedError(PlacementError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized."


class MisconfiguredError(PlacementError):
    code = "misconfigured"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server misconfigured."
