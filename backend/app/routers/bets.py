"""Bet placement API: revalidate a client ticket against live odds, then settle."""

from fastapi import APIRouter, Depends

from app.models.bet_slip import PlaceBetRequest
from app.providers.base import BaseOddsProvider
from app.providers.odds_api import get_odds_provider
from app.services.auth_service import get_current_user_id
from app.services.ledger_gateway import LedgerGateway, get_ledger_gateway
from app.services.placement_service import place_ticket, quote_ticket

router = APIRouter(prefix="/api/bets", tags=["bets"])


@router.post("")
async def place_bet(
    body: PlaceBetRequest,
    user_id: str = Depends(get_current_user_id),
    provider: BaseOddsProvider = Depends(get_odds_provider),
    ledger: LedgerGateway = Depends(get_ledger_gateway),
):
    """Place a ticket. Every leg is re-priced server-side before any money moves."""
    result = await place_ticket(user_id, body, provider, ledger)
    return result.to_json_dict()


@router.post("/quote")
async def quote_bet(
    body: PlaceBetRequest,
    user_id: str = Depends(get_current_user_id),
    provider: BaseOddsProvider = Depends(get_odds_provider),
):
    """Revalidate a ticket and return live prices without settling it."""
    result = await quote_ticket(body, provider)
    return result.to_json_dict()
