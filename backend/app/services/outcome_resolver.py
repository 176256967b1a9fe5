"""
backend/app/services/outcome_resolver.py

Purpose:
    Resolve a (possibly stale) client selection to a live outcome inside a
    freshly fetched snapshot. The selection and the snapshot come from
    independently evolving systems, so every comparison is label
    reconciliation on normalized text rather than raw string equality.

Resolution steps:
    1. Event: exact event id, else team-name containment on both sides plus
       a kickoff window (fallback heuristic, see team_matching notes).
    2. Market: exact key; ``alternate_totals`` may fall back to ``totals``.
    3. Outcome: market-specific label mapping (home/away/draw, 1/X/2,
       over/under + line, team + handicap).

Dependencies:
    - app.utils.team_matching
    - app.models.odds
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from app.config import settings
from app.models.bet_slip import Selection
from app.models.odds import Market, MarketSnapshot, Outcome
from app.services.placement_errors import (
    EventNotFoundError,
    MarketNotSupportedError,
    OutcomeNotFoundError,
)
from app.utils import ensure_utc
from app.utils.team_matching import names_overlap, normalize, parse_match_teams

logger = logging.getLogger("betslip.outcome_resolver")

DRAW = "draw"
TOTALS_MARKETS = {"totals", "alternate_totals"}
TEAM_SIDE_MARKETS = {"h2h", "draw_no_bet", "spreads"}


@dataclass(frozen=True)
class Resolution:
    event: MarketSnapshot
    market: Market
    outcome: Outcome


# ---------- event ----------

def _within_window(selection: Selection, event: MarketSnapshot, window_hours: float) -> bool:
    if selection.commence_time is None or event.commence_time is None:
        return True
    delta = ensure_utc(event.commence_time) - ensure_utc(selection.commence_time)
    return abs(delta) <= timedelta(hours=window_hours)


def _selection_teams(selection: Selection) -> tuple[str, str] | None:
    parsed = parse_match_teams(selection.match)
    home = selection.home_team or (parsed[0] if parsed else "")
    away = selection.away_team or (parsed[1] if parsed else "")
    if not home or not away:
        return None
    return home, away


def find_event(
    selection: Selection,
    snapshots: Sequence[MarketSnapshot],
    window_hours: Optional[float] = None,
) -> MarketSnapshot:
    """Locate the selection's event; exact id first, then the team/kickoff fallback."""
    if selection.event_id:
        for event in snapshots:
            if event.event_id == selection.event_id:
                return event

    teams = _selection_teams(selection)
    if teams is not None:
        home, away = teams
        window = settings.FALLBACK_KICKOFF_WINDOW_HOURS if window_hours is None else window_hours
        for event in snapshots:
            if not (names_overlap(event.home_team, home) and names_overlap(event.away_team, away)):
                continue
            if _within_window(selection, event, window):
                logger.info(
                    "Event %r matched by teams to %s (%s vs %s)",
                    selection.event_id, event.event_id, event.home_team, event.away_team,
                )
                return event

    raise EventNotFoundError(event_id=selection.event_id)


# ---------- market ----------

def find_market(selection: Selection, event: MarketSnapshot) -> Market:
    market = event.market(selection.market)
    if market is None and selection.market == "alternate_totals":
        market = event.market("totals")
    if market is None:
        raise MarketNotSupportedError(event_id=selection.event_id, market=selection.market)
    return market


# ---------- outcome ----------

def map_outcome_label(selection: Selection, event: MarketSnapshot) -> str:
    """Translate positional labels (home/away/1/X/2) into provider outcome names."""
    outcome = normalize(selection.outcome)
    market = selection.market
    if market == "h2h_3_way":
        if outcome == "1":
            return normalize(event.home_team)
        if outcome == "2":
            return normalize(event.away_team)
        if outcome in ("x", DRAW):
            return DRAW
    if market in TEAM_SIDE_MARKETS:
        if outcome == "home":
            return normalize(event.home_team)
        if outcome == "away":
            return normalize(event.away_team)
        if market == "h2h" and outcome in ("x", DRAW):
            return DRAW
    return outcome


def split_label_point(label: str) -> tuple[str, Optional[float]]:
    """Split ``"Over 2.5"`` / ``"Arsenal -1.5"`` into text and trailing number."""
    head, _, tail = label.strip().rpartition(" ")
    if not head:
        return label.strip(), None
    try:
        return head.strip(), float(tail)
    except ValueError:
        return label.strip(), None


def _event_side(target: str, event: MarketSnapshot) -> Optional[str]:
    """Reconcile a team label to exactly one side of the event, or None."""
    sides = [team for team in (event.home_team, event.away_team) if team and names_overlap(team, target)]
    if len(sides) != 1:
        return None
    return normalize(sides[0])


def _team_outcomes(target: str, event: MarketSnapshot, outcomes: Sequence[Outcome]) -> list[Outcome]:
    """All outcomes (every line) named like ``target``.

    An exact name wins. Otherwise phrasing differences ("Arsenal FC" vs
    "Arsenal") are reconciled against the event's home/away teams, never
    against the outcome list: in a derby the rival shares words with the
    picked side, and a label overlapping both sides or neither matches
    nothing.
    """
    if not target:
        return []
    exact = [o for o in outcomes if normalize(o.name) == target]
    if exact or target == DRAW:
        return exact
    side = _event_side(target, event)
    if side is None:
        return []
    return [o for o in outcomes if normalize(o.name) == side]


def _match_name(target: str, event: MarketSnapshot, outcomes: Sequence[Outcome]) -> Optional[Outcome]:
    hits = _team_outcomes(target, event, outcomes)
    return hits[0] if len(hits) == 1 else None


def _match_totals(selection: Selection, label: str, market: Market) -> Optional[Outcome]:
    text, label_point = split_label_point(label)
    point = selection.point if selection.point is not None else label_point
    if point is None:
        return None
    side = text.split(" ")[0] if text else ""
    if not side:
        return None
    for outcome in market.outcomes:
        if outcome.point is None:
            continue
        if normalize(outcome.name).startswith(side) and outcome.point == point:
            return outcome
    return None


def _match_spread(
    label: str, point: Optional[float], event: MarketSnapshot, market: Market,
) -> Optional[Outcome]:
    # The side is settled on the full market first; the point only selects
    # among that side's lines. A flipped line is a miss, not the rival.
    hits = _team_outcomes(label, event, market.outcomes)
    if point is None:
        return hits[0] if len(hits) == 1 else None
    for outcome in hits:
        if outcome.point is None or outcome.point == point:
            return outcome
    return None


def match_outcome(selection: Selection, event: MarketSnapshot, market: Market) -> Optional[Outcome]:
    label = map_outcome_label(selection, event)

    if market.key in TOTALS_MARKETS:
        return _match_totals(selection, label, market)

    if market.key == "spreads":
        point = selection.point
        if point is None:
            # Client labels read "{team} {point}"; a team name that itself ends
            # in a number is only safe when it matches exactly.
            for outcome in market.outcomes:
                if normalize(outcome.name) == label:
                    return outcome
            text, label_point = split_label_point(label)
            if label_point is not None:
                label = map_outcome_label(selection.model_copy(update={"outcome": text}), event)
                point = label_point
        return _match_spread(label, point, event, market)

    return _match_name(label, event, market.outcomes)


def resolve_outcome(selection: Selection, event: MarketSnapshot) -> tuple[Market, Outcome]:
    market = find_market(selection, event)
    outcome = match_outcome(selection, event, market)
    if outcome is None:
        raise OutcomeNotFoundError(event_id=selection.event_id, market=selection.market)
    return market, outcome


def resolve_selection(selection: Selection, snapshots: Sequence[MarketSnapshot]) -> Resolution:
    """Run all three steps; raises the scoped not-found error of the first that fails."""
    event = find_event(selection, snapshots)
    market, outcome = resolve_outcome(selection, event)
    return Resolution(event=event, market=market, outcome=outcome)
