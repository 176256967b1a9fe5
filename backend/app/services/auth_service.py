"""
backend/app/services/auth_service.py

Purpose:
    Bearer-token dependency for bet placement. Identity is owned by the
    external ledger; this module only extracts the token and asks the ledger
    who it belongs to.

Dependencies:
    - app.services.ledger_gateway
"""

import logging
import re

from fastapi import Depends, Request

from app.services.ledger_gateway import LedgerGateway, get_ledger_gateway
from app.services.placement_errors import UnauthorizedError

logger = logging.getLogger("betslip.auth_service")

_BEARER = re.compile(r"bearer\s+", re.IGNORECASE)


def extract_bearer_token(request: Request) -> str:
    header = request.headers.get("authorization") or ""
    return _BEARER.sub("", header).strip()


async def get_current_user_id(
    request: Request,
    ledger: LedgerGateway = Depends(get_ledger_gateway),
) -> str:
    """FastAPI dependency: resolve the caller's user id or answer 401."""
    token = extract_bearer_token(request)
    if not token:
        raise UnauthorizedError()
    user_id = await ledger.get_user_id(token)
    if not user_id:
        logger.info("Rejected bearer token on %s", request.url.path)
        raise UnauthorizedError()
    return user_id
