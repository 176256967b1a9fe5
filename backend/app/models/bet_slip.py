from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from app.config import settings
from app.models.common import CamelModel


class SlipActionType(str, Enum):
    add = "add"
    remove = "remove"
    clear = "clear"


class Selection(CamelModel):
    """One leg of a wager against a single market outcome of one event.

    Identity for de-duplication is ``(event_id, market, outcome)``. The
    ``id`` is derived from those three when the client does not send one.

    Labels by market:

    h2h / draw_no_bet:
        outcome = team name | "home" | "away" | "draw"

    h2h_3_way:
        outcome = "1" | "X" | "2"

    totals / alternate_totals:
        outcome = "Over 2.5" | "Under" (+ point)

    spreads:
        outcome = team name | "home" | "away" (+ point, or "Team -1.5")
    """
    id: str = ""
    event_id: str = ""
    sport_key: str = ""
    league: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    match: Optional[str] = None                  # "Home vs Away" display label
    market: str
    outcome: str
    odds: float
    point: Optional[float] = None
    commence_time: Optional[datetime] = None     # Kickoff as the client last saw it

    @model_validator(mode="after")
    def _derive_id(self) -> "Selection":
        if not self.id:
            self.id = f"{self.event_id}-{self.market}-{self.outcome}"
        return self

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.event_id, self.market, self.outcome)


class ResolvedSelection(Selection):
    """A selection re-priced against the live market at validation time.

    ``odds`` is the live price; ``requested_odds`` keeps what the client
    submitted. Only this form is ever forwarded to settlement.
    """
    requested_odds: float


# ---------- Request / Response models ----------

class PlaceBetRequest(CamelModel):
    """Request body for placing (or quoting) a ticket.

    Stake and selections are checked by the placement service rather than
    by field constraints so that malformed input answers with the same
    ``{error, code}`` body as every other placement failure.
    """
    stake: Optional[float] = None
    currency: str = Field(default_factory=lambda: settings.PLACEMENT_DEFAULT_CURRENCY)
    selections: List[Selection] = []
    allow_live: bool = Field(default_factory=lambda: settings.PLACEMENT_DEFAULT_ALLOW_LIVE)
    cutoff_minutes: float = Field(default_factory=lambda: settings.PLACEMENT_DEFAULT_CUTOFF_MINUTES)
    price_tolerance: float = Field(default_factory=lambda: settings.PLACEMENT_DEFAULT_PRICE_TOLERANCE)


class QuoteResponse(CamelModel):
    """Propose-phase result: resolved legs without any money moving."""
    selections: List[ResolvedSelection]
    combined_odds: float
    potential_win: float


class PlaceBetResponse(CamelModel):
    """Ledger receipt merged with the resolved legs that were settled."""
    bet_id: str
    selections: List[ResolvedSelection]
    ledger: Dict[str, Any] = {}

    def to_json_dict(self) -> dict:
        payload = dict(self.ledger)
        payload["bet_id"] = self.bet_id
        payload["selections"] = [s.to_json_dict() for s in self.selections]
        return payload
