"""
backend/app/services/snapshot_service.py

Purpose:
    Fetch fresh market snapshots for the sports and events a ticket touches.
    Primary per-sport fetches fail closed; per-event enrichment only fills
    market gaps and degrades to primary-only data when it fails.

Dependencies:
    - app.providers.base
    - app.config
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Sequence

from app.config import settings
from app.models.bet_slip import Selection
from app.models.odds import MarketSnapshot
from app.providers.base import BaseOddsProvider
from app.services.placement_errors import MarketsNotSupportedError, UnsupportedMarketsError

logger = logging.getLogger("betslip.snapshot_service")

ALTERNATE_TOTALS = "alternate_totals"
TOTALS = "totals"


def _split_keys(value: str) -> list[str]:
    return [k.strip() for k in value.split(",") if k.strip()]


def build_requested_markets(selections: Iterable[Selection]) -> list[str]:
    """Distinct market keys a set of selections needs, in first-seen order.

    ``alternate_totals`` is requested as ``totals``; the sport endpoint does
    not serve alternates and the resolver falls back to plain totals.
    """
    markets: list[str] = []
    for sel in selections:
        if not sel.market:
            continue
        key = TOTALS if sel.market == ALTERNATE_TOTALS else sel.market
        if key not in markets:
            markets.append(key)
    return markets


async def fetch_sport_snapshots(
    provider: BaseOddsProvider,
    sport_key: str,
    market_keys: Sequence[str],
) -> list[MarketSnapshot]:
    """Fetch one sport, retrying once with the supported subset if markets are rejected."""
    requested = list(market_keys) or _split_keys(settings.ODDS_DEFAULT_MARKETS)
    try:
        return await provider.fetch_snapshot(sport_key, requested)
    except UnsupportedMarketsError as exc:
        allowed = [m for m in requested if m not in exc.unsupported]
        if not allowed:
            raise MarketsNotSupportedError(exc.unsupported, sport_key=sport_key) from exc
        logger.info(
            "Retrying %s with supported markets %s (rejected: %s)",
            sport_key, allowed, exc.unsupported,
        )
        # One bounded retry only; a second rejection fails the sport.
        try:
            return await provider.fetch_snapshot(sport_key, allowed)
        except UnsupportedMarketsError as again:
            raise MarketsNotSupportedError(
                [*exc.unsupported, *again.unsupported], sport_key=sport_key,
            ) from again


async def fetch_ticket_snapshots(
    provider: BaseOddsProvider,
    selections: Sequence[Selection],
    concurrency: Optional[int] = None,
) -> dict[str, list[MarketSnapshot]]:
    """Fetch every distinct sport of a ticket concurrently.

    Any sport failing fails the whole ticket. When several fail, the error
    of the first sport in ticket order is raised.
    """
    sport_keys: list[str] = []
    for sel in selections:
        if sel.sport_key and sel.sport_key not in sport_keys:
            sport_keys.append(sel.sport_key)

    semaphore = asyncio.Semaphore(max(1, concurrency or settings.ODDS_FETCH_CONCURRENCY))

    async def _fetch(sport_key: str) -> list[MarketSnapshot]:
        requested = build_requested_markets(s for s in selections if s.sport_key == sport_key)
        async with semaphore:
            return await fetch_sport_snapshots(provider, sport_key, requested)

    results = await asyncio.gather(*(_fetch(k) for k in sport_keys), return_exceptions=True)

    by_sport: dict[str, list[MarketSnapshot]] = {}
    for sport_key, result in zip(sport_keys, results):
        if isinstance(result, BaseException):
            raise result
        by_sport[sport_key] = result
    return by_sport


def merge_event_markets(primary: MarketSnapshot, enrichment: Optional[MarketSnapshot]) -> MarketSnapshot:
    """Add enrichment markets the primary snapshot lacks; primary markets always win."""
    if enrichment is None:
        return primary
    present = set(primary.market_keys)
    extra = [m for m in enrichment.markets if m.key not in present]
    if not extra:
        return primary
    return primary.model_copy(update={"markets": [*primary.markets, *extra]})


def _missing_markets(snapshot: MarketSnapshot, selections: Iterable[Selection]) -> list[str]:
    missing: list[str] = []
    for sel in selections:
        # alternate_totals is still requested when totals exists: totals only
        # carries the main line.
        if snapshot.market(sel.market) is not None:
            continue
        if sel.market not in missing:
            missing.append(sel.market)
    return missing


async def enrich_snapshots(
    provider: BaseOddsProvider,
    snapshots_by_sport: dict[str, list[MarketSnapshot]],
    selections: Sequence[Selection],
    concurrency: Optional[int] = None,
) -> dict[str, list[MarketSnapshot]]:
    """Fill market gaps for ticket events with per-event fetches.

    One task per event needing markets, bounded by a semaphore. A failed
    task leaves that event with its primary markets only.
    """
    wanted: dict[tuple[str, str], list[str]] = {}
    for sport_key, snapshots in snapshots_by_sport.items():
        by_id = {s.event_id: s for s in snapshots}
        for sel in selections:
            if sel.sport_key != sport_key or sel.event_id not in by_id:
                continue
            for market in _missing_markets(by_id[sel.event_id], [sel]):
                keys = wanted.setdefault((sport_key, sel.event_id), [])
                if market not in keys:
                    keys.append(market)

    if not wanted:
        return snapshots_by_sport

    semaphore = asyncio.Semaphore(max(1, concurrency or settings.ODDS_ENRICHMENT_CONCURRENCY))

    async def _enrich(sport_key: str, event_id: str, markets: list[str]) -> Optional[MarketSnapshot]:
        async with semaphore:
            return await provider.fetch_event_markets(event_id, sport_key, markets)

    jobs = list(wanted.items())
    results = await asyncio.gather(
        *(_enrich(sport, event, markets) for (sport, event), markets in jobs),
        return_exceptions=True,
    )

    enrichment: dict[tuple[str, str], MarketSnapshot] = {}
    for ((sport_key, event_id), markets), result in zip(jobs, results):
        if isinstance(result, BaseException):
            logger.warning(
                "Enrichment failed for event %s (%s, markets=%s): %s",
                event_id, sport_key, markets, result,
            )
            continue
        if result is not None:
            enrichment[(sport_key, event_id)] = result

    merged: dict[str, list[MarketSnapshot]] = {}
    for sport_key, snapshots in snapshots_by_sport.items():
        merged[sport_key] = [
            merge_event_markets(s, enrichment.get((sport_key, s.event_id))) for s in snapshots
        ]
    return merged


async def fetch_live_snapshots(
    provider: BaseOddsProvider,
    selections: Sequence[Selection],
) -> dict[str, list[MarketSnapshot]]:
    """Primary fetch for every sport of the ticket, then optional enrichment."""
    snapshots = await fetch_ticket_snapshots(provider, selections)
    if settings.ODDS_ENRICHMENT_ENABLED:
        snapshots = await enrich_snapshots(provider, snapshots, selections)
    return snapshots
