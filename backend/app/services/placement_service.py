"""
backend/app/services/placement_service.py

Purpose:
    Two-phase placement: the client proposes a ticket at the prices it last
    saw, the server re-resolves every leg against freshly fetched odds, and
    only a fully approved ticket is committed to the ledger. Client-submitted
    prices are never used for settlement.

Dependencies:
    - app.services.snapshot_service
    - app.services.placement_policy
    - app.services.ledger_gateway
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from app.models.bet_slip import PlaceBetRequest, PlaceBetResponse, QuoteResponse, ResolvedSelection
from app.providers.base import BaseOddsProvider
from app.services.bet_slip import combined_odds, potential_win
from app.services.ledger_gateway import LedgerGateway
from app.services.placement_errors import InvalidStakeError, NoSelectionsError
from app.services.placement_policy import PlacementPolicy, validate_ticket
from app.services.snapshot_service import fetch_live_snapshots

logger = logging.getLogger("betslip.placement_service")


def validate_request(body: PlaceBetRequest) -> tuple[float, PlacementPolicy]:
    """Reject malformed input before any network call."""
    stake = body.stake
    if stake is None or not math.isfinite(stake) or stake <= 0:
        raise InvalidStakeError()
    if not body.selections:
        raise NoSelectionsError()
    return float(stake), PlacementPolicy.from_request(body)


async def _revalidate(
    body: PlaceBetRequest,
    provider: BaseOddsProvider,
    policy: PlacementPolicy,
    now: Optional[datetime],
) -> list[ResolvedSelection]:
    snapshots = await fetch_live_snapshots(provider, body.selections)
    return validate_ticket(body.selections, snapshots, policy, now=now)


async def quote_ticket(
    body: PlaceBetRequest,
    provider: BaseOddsProvider,
    now: Optional[datetime] = None,
) -> QuoteResponse:
    """Propose phase only: live-priced legs and totals, nothing settled."""
    stake, policy = validate_request(body)
    resolved = await _revalidate(body, provider, policy, now)
    total = combined_odds(resolved)
    return QuoteResponse(
        selections=resolved,
        combined_odds=total,
        potential_win=potential_win(stake, total),
    )


async def place_ticket(
    user_id: str,
    body: PlaceBetRequest,
    provider: BaseOddsProvider,
    ledger: LedgerGateway,
    now: Optional[datetime] = None,
) -> PlaceBetResponse:
    """Revalidate every leg, then hand the approved ticket to the ledger."""
    stake, policy = validate_request(body)
    resolved = await _revalidate(body, provider, policy, now)

    receipt = await ledger.place_bet(user_id, stake, body.currency, resolved)

    total = combined_odds(resolved)
    logger.info(
        "Ticket placed: user=%s bet=%s selections=%d stake=%.2f %s total_odds=%.2f",
        user_id, receipt.bet_id, len(resolved), stake, body.currency, total,
    )
    return PlaceBetResponse(bet_id=receipt.bet_id, selections=resolved, ledger=receipt.payload)
