"""Normalized odds read API used by clients to build selections."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.config import settings
from app.providers.base import BaseOddsProvider
from app.providers.odds_api import get_odds_provider

router = APIRouter(prefix="/api/odds", tags=["odds"])


def _keys(value: str) -> list[str]:
    return [k.strip() for k in value.split(",") if k.strip()]


@router.get("/{sport_key}")
async def featured_odds(
    sport_key: str,
    provider: BaseOddsProvider = Depends(get_odds_provider),
):
    """Featured markets for every listed event of a sport."""
    snapshots = await provider.fetch_snapshot(sport_key, _keys(settings.ODDS_FEATURED_MARKETS))
    return [s.to_json_dict() for s in snapshots]


@router.get("/{sport_key}/events/{event_id}")
async def event_odds(
    sport_key: str,
    event_id: str,
    provider: BaseOddsProvider = Depends(get_odds_provider),
):
    """All extended markets for one event."""
    snapshot = await provider.fetch_event_markets(event_id, sport_key)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found.")
    return snapshot.to_json_dict()
