"""
backend/app/services/ledger_gateway.py

Purpose:
    Settlement gateway to the external ledger. The ledger owns the wallet
    balance and ticket rows; one idempotent ``place_bet`` call verifies funds,
    debits and persists the ticket atomically. This module never retries and
    performs no compensation: no funds move until the ledger succeeds.

Dependencies:
    - app.providers.http_client
    - app.config
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from app.config import settings
from app.models.bet_slip import ResolvedSelection
from app.providers.http_client import CircuitOpenError, ResilientClient
from app.services.placement_errors import MisconfiguredError, SettlementError

logger = logging.getLogger("betslip.ledger_gateway")


@dataclass(frozen=True)
class LedgerReceipt:
    bet_id: str
    payload: dict[str, Any] = field(default_factory=dict)


class LedgerGateway(ABC):
    """Contract consumed by the placement service."""

    @abstractmethod
    async def place_bet(
        self,
        user_id: str,
        stake: float,
        currency: str,
        selections: Sequence[ResolvedSelection],
    ) -> LedgerReceipt:
        """Debit and persist atomically. Raises SettlementError on refusal."""
        ...

    @abstractmethod
    async def get_user_id(self, token: str) -> Optional[str]:
        """Resolve a bearer token to a user id; None when the token is invalid."""
        ...


def _extract_bet_id(payload: Any) -> Optional[str]:
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if isinstance(payload, dict):
        value = payload.get("bet_id") or payload.get("id")
        return str(value) if value else None
    if isinstance(payload, (str, int)) and payload:
        return str(payload)
    return None


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text or "Settlement failed"
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or "Settlement failed")
    return "Settlement failed"


class RpcLedgerGateway(LedgerGateway):
    """PostgREST-style RPC client (``/rest/v1/rpc/place_bet``, ``/auth/v1/user``)."""

    def __init__(self, client: Optional[ResilientClient] = None):
        self._client = client or ResilientClient(
            "ledger",
            timeout=settings.LEDGER_HTTP_TIMEOUT_SECONDS,
            max_retries=0,
        )

    @staticmethod
    def _ensure_configured() -> None:
        if not (settings.LEDGER_URL and settings.LEDGER_ANON_KEY and settings.LEDGER_SERVICE_KEY):
            raise MisconfiguredError()

    async def get_user_id(self, token: str) -> Optional[str]:
        self._ensure_configured()
        try:
            resp = await self._client.get(
                f"{settings.LEDGER_URL}/auth/v1/user",
                headers={"apikey": settings.LEDGER_ANON_KEY, "Authorization": f"Bearer {token}"},
            )
        except (httpx.HTTPError, CircuitOpenError) as exc:
            logger.warning("Token lookup failed: %s", exc)
            return None
        if resp.status_code != 200:
            return None
        try:
            payload = resp.json()
        except ValueError:
            return None
        user_id = payload.get("id") if isinstance(payload, dict) else None
        return str(user_id) if user_id else None

    async def place_bet(
        self,
        user_id: str,
        stake: float,
        currency: str,
        selections: Sequence[ResolvedSelection],
    ) -> LedgerReceipt:
        self._ensure_configured()
        body = {
            "p_user_id": user_id,
            "p_stake": stake,
            "p_currency": currency,
            "p_selections": [s.to_json_dict() for s in selections],
        }
        try:
            resp = await self._client.post(
                f"{settings.LEDGER_URL}/rest/v1/rpc/place_bet",
                json=body,
                headers={
                    "apikey": settings.LEDGER_SERVICE_KEY,
                    "Authorization": f"Bearer {settings.LEDGER_SERVICE_KEY}",
                },
            )
        except (httpx.HTTPError, CircuitOpenError) as exc:
            logger.error("Ledger unreachable for user=%s: %s", user_id, exc)
            raise SettlementError(str(exc) or "Ledger unreachable") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.info("Ledger refused ticket for user=%s: %s", user_id, message)
            raise SettlementError(message)

        try:
            payload = resp.json() if resp.content else None
        except ValueError as exc:
            logger.error("Ledger returned a non-JSON receipt for user=%s", user_id)
            raise SettlementError("Ledger returned an unreadable receipt") from exc
        bet_id = _extract_bet_id(payload)
        if not bet_id:
            raise SettlementError("Ledger returned no ticket id")
        if isinstance(payload, list):
            payload = payload[0]
        return LedgerReceipt(bet_id=bet_id, payload=payload if isinstance(payload, dict) else {})

    async def aclose(self) -> None:
        await self._client.aclose()


ledger_gateway = RpcLedgerGateway()


def get_ledger_gateway() -> LedgerGateway:
    return ledger_gateway
