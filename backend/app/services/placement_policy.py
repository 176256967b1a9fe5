"""
backend/app/services/placement_policy.py

Purpose:
    Timing and price-drift policy for a ticket. Every selection is resolved
    and checked before any is approved; the first failure aborts the whole
    ticket, so there is never a partial placement.

Per-selection order:
    1. live pre-check on the kickoff the client recorded (live_not_supported)
    2. event resolution (event_not_found)
    3. event_started / cutoff against the fresh snapshot kickoff
    4. market and outcome resolution (market_not_supported / outcome_not_found)
    5. odds sanity (invalid_odds) and asymmetric price drift (price_changed)

Dependencies:
    - app.services.outcome_resolver
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from app.models.bet_slip import PlaceBetRequest, ResolvedSelection, Selection
from app.models.odds import MarketSnapshot, Outcome
from app.services.outcome_resolver import find_event, resolve_outcome
from app.services.placement_errors import (
    CutoffError,
    EventStartedError,
    InvalidOddsError,
    InvalidPolicyError,
    LiveNotSupportedError,
    PlacementError,
    PriceChangedError,
)
from app.utils import ensure_utc, utcnow

logger = logging.getLogger("betslip.placement_policy")


@dataclass(frozen=True)
class PlacementPolicy:
    """Per-request policy; never persisted."""
    allow_live: bool = True
    cutoff_minutes: float = 2.0
    price_tolerance: float = 0.02

    @classmethod
    def from_request(cls, body: PlaceBetRequest) -> "PlacementPolicy":
        cutoff = max(0.0, float(body.cutoff_minutes))
        tolerance = max(0.0, float(body.price_tolerance))
        if tolerance >= 1:
            raise InvalidPolicyError("priceTolerance must be below 1.")
        return cls(allow_live=bool(body.allow_live), cutoff_minutes=cutoff, price_tolerance=tolerance)


def check_live_precheck(selection: Selection, policy: PlacementPolicy, now: datetime) -> None:
    if policy.allow_live or selection.commence_time is None:
        return
    if now >= ensure_utc(selection.commence_time):
        raise LiveNotSupportedError(event_id=selection.event_id)


def check_timing(
    selection: Selection, event: MarketSnapshot, policy: PlacementPolicy, now: datetime,
) -> Optional[datetime]:
    """Apply event_started and cutoff; returns the kickoff used (snapshot wins)."""
    kickoff = event.commence_time or selection.commence_time
    if kickoff is None:
        return None
    kickoff = ensure_utc(kickoff)
    if policy.allow_live:
        return kickoff
    if now >= kickoff:
        raise EventStartedError(event_id=selection.event_id)
    if now >= kickoff - timedelta(minutes=policy.cutoff_minutes):
        raise CutoffError(event_id=selection.event_id)
    return kickoff


def check_price(selection: Selection, outcome: Outcome, policy: PlacementPolicy) -> float:
    """Reject adverse drift beyond tolerance; a better live price is always accepted.

    Returns the live price.
    """
    current = float(outcome.price or 0)
    requested = float(selection.odds or 0)
    if current <= 0 or requested <= 0:
        raise InvalidOddsError(event_id=selection.event_id)

    if current < requested:
        diff = Decimal(str(requested)) - Decimal(str(current))
        allowed = Decimal(str(requested)) * Decimal(str(policy.price_tolerance))
        if diff > allowed:
            raise PriceChangedError(
                event_id=selection.event_id,
                requested_odds=requested,
                current_odds=current,
            )
    return current


def _resolved(
    selection: Selection,
    event: MarketSnapshot,
    outcome: Outcome,
    live_price: float,
    kickoff: Optional[datetime],
) -> ResolvedSelection:
    data = selection.model_dump()
    data.update(
        event_id=event.event_id or selection.event_id,
        odds=live_price,
        requested_odds=float(selection.odds),
        point=outcome.point if outcome.point is not None else selection.point,
        commence_time=kickoff or selection.commence_time,
        home_team=event.home_team,
        away_team=event.away_team,
        match=f"{event.home_team} vs {event.away_team}",
        league=event.sport_title or selection.league,
    )
    return ResolvedSelection(**data)


def validate_selection(
    selection: Selection,
    snapshots: Sequence[MarketSnapshot],
    policy: PlacementPolicy,
    now: datetime,
) -> ResolvedSelection:
    check_live_precheck(selection, policy, now)
    event = find_event(selection, snapshots)
    kickoff = check_timing(selection, event, policy, now)
    _market, outcome = resolve_outcome(selection, event)
    live_price = check_price(selection, outcome, policy)
    return _resolved(selection, event, outcome, live_price, kickoff)


def validate_ticket(
    selections: Sequence[Selection],
    snapshots_by_sport: Mapping[str, Sequence[MarketSnapshot]],
    policy: PlacementPolicy,
    now: Optional[datetime] = None,
) -> list[ResolvedSelection]:
    """Validate every selection; all-or-nothing."""
    now = ensure_utc(now) if now is not None else utcnow()
    resolved: list[ResolvedSelection] = []
    for selection in selections:
        snapshots = snapshots_by_sport.get(selection.sport_key, [])
        try:
            resolved.append(validate_selection(selection, snapshots, policy, now))
        except PlacementError as exc:
            logger.info(
                "Ticket rejected: code=%s event=%s market=%s",
                exc.code, selection.event_id, selection.market,
            )
            raise
    return resolved
