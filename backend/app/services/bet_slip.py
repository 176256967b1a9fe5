"""
backend/app/services/bet_slip.py

Purpose:
    In-memory bet slip: ordered unique selections, a raw stake string and a
    single-level undo log. Pure and synchronous; nothing here touches the
    network. The slip is only ever a proposal; prices are re-resolved by the
    placement service at submit time.

Dependencies:
    - app.models.bet_slip
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from app.models.bet_slip import PlaceBetRequest, Selection, SlipActionType

logger = logging.getLogger("betslip.bet_slip")

DEFAULT_STAKE = "1000"
_CENT = Decimal("0.01")


def _to_decimal(value: float | str | Decimal) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def combined_odds(selections: Iterable[Selection]) -> float:
    """Product of all selection odds rounded to 2 dp; 0 for an empty slip."""
    product: Optional[Decimal] = None
    for sel in selections:
        odds = _to_decimal(sel.odds)
        product = odds if product is None else product * odds
    if product is None:
        return 0.0
    return float(product.quantize(_CENT, rounding=ROUND_HALF_UP))


def potential_win(stake: float | str | Decimal, total_odds: float) -> float:
    """Stake times combined odds, rounded to 2 dp."""
    amount = _to_decimal(stake) * _to_decimal(total_odds)
    return float(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def parse_stake(raw: Optional[str]) -> Decimal:
    """Parse a raw stake string; empty, non-numeric or non-finite input is zero."""
    text = (raw or "").strip()
    if not text:
        return Decimal(0)
    try:
        value = Decimal(text)
    except InvalidOperation:
        return Decimal(0)
    if not value.is_finite():
        return Decimal(0)
    return value


@dataclass(frozen=True)
class SlipAction:
    """The one recorded action that ``undo_last_action`` can reverse.

    add:    ``selection`` was appended.
    remove: ``selection`` was removed from position ``index``.
    clear:  ``removed`` holds the whole slip as it was before clearing.
    """
    type: SlipActionType
    selection: Optional[Selection] = None
    index: int = 0
    removed: tuple[Selection, ...] = field(default_factory=tuple)


class BetSlip:
    """Selection store for one bettor's pending ticket."""

    def __init__(self, stake: str = DEFAULT_STAKE) -> None:
        self._selections: list[Selection] = []
        self._stake = stake
        self._last_action: Optional[SlipAction] = None

    # ---------- read side ----------

    @property
    def selections(self) -> tuple[Selection, ...]:
        return tuple(self._selections)

    @property
    def stake(self) -> str:
        return self._stake

    @property
    def stake_amount(self) -> Decimal:
        return parse_stake(self._stake)

    @property
    def last_action(self) -> Optional[SlipAction]:
        return self._last_action

    @property
    def combined_odds(self) -> float:
        return combined_odds(self._selections)

    @property
    def potential_win(self) -> float:
        return potential_win(self.stake_amount, self.combined_odds)

    def __len__(self) -> int:
        return len(self._selections)

    def is_selected(self, selection_id: str) -> bool:
        return any(s.id == selection_id for s in self._selections)

    def _index_of_key(self, key: tuple[str, str, str]) -> Optional[int]:
        for i, sel in enumerate(self._selections):
            if sel.key == key:
                return i
        return None

    # ---------- operations ----------

    def add_selection(self, selection: Selection) -> None:
        """Append a selection, or toggle it off if the same leg is already present."""
        idx = self._index_of_key(selection.key)
        if idx is not None:
            existing = self._selections.pop(idx)
            self._last_action = SlipAction(SlipActionType.remove, selection=existing, index=idx)
            return
        self._selections.append(selection)
        self._last_action = SlipAction(SlipActionType.add, selection=selection, index=len(self._selections) - 1)

    def remove_selection(self, selection_id: str) -> None:
        for i, sel in enumerate(self._selections):
            if sel.id == selection_id:
                del self._selections[i]
                self._last_action = SlipAction(SlipActionType.remove, selection=sel, index=i)
                return

    def clear_selections(self) -> None:
        if not self._selections:
            return
        removed = tuple(self._selections)
        self._selections = []
        self._last_action = SlipAction(SlipActionType.clear, removed=removed)

    def set_stake(self, value: str) -> None:
        # Parsed lazily; see stake_amount.
        self._stake = value

    def undo_last_action(self) -> bool:
        """Reverse the most recent add/remove/clear. Returns False when there is none."""
        action = self._last_action
        if action is None:
            return False

        if action.type == SlipActionType.add:
            idx = self._index_of_key(action.selection.key)
            if idx is not None:
                del self._selections[idx]
        elif action.type == SlipActionType.remove:
            if self._index_of_key(action.selection.key) is None:
                position = min(action.index, len(self._selections))
                self._selections.insert(position, action.selection)
        elif action.type == SlipActionType.clear:
            restored = list(action.removed)
            restored_ids = {s.id for s in restored}
            restored.extend(s for s in self._selections if s.id not in restored_ids)
            self._selections = restored

        self._last_action = None
        return True

    # ---------- submission ----------

    def build_request(
        self,
        currency: Optional[str] = None,
        *,
        allow_live: Optional[bool] = None,
        cutoff_minutes: Optional[float] = None,
        price_tolerance: Optional[float] = None,
    ) -> PlaceBetRequest:
        """Snapshot the slip into a placement request; the stake is parsed here."""
        body: dict = {
            "stake": float(self.stake_amount),
            "selections": [s.model_copy() for s in self._selections],
        }
        if currency is not None:
            body["currency"] = currency
        if allow_live is not None:
            body["allow_live"] = allow_live
        if cutoff_minutes is not None:
            body["cutoff_minutes"] = cutoff_minutes
        if price_tolerance is not None:
            body["price_tolerance"] = price_tolerance
        logger.debug("Slip submitted: selections=%d stake=%s", len(self._selections), self._stake)
        return PlaceBetRequest(**body)
