"""
backend/tests/test_placement_policy.py

Purpose:
    Timing gates, asymmetric price-drift guard and all-or-nothing ticket
    validation.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.models.bet_slip import PlaceBetRequest, Selection
from app.models.odds import Outcome
from app.services.placement_errors import (
    CutoffError,
    EventNotFoundError,
    EventStartedError,
    InvalidOddsError,
    InvalidPolicyError,
    LiveNotSupportedError,
    PriceChangedError,
)
from app.services.placement_policy import (
    PlacementPolicy,
    check_price,
    check_timing,
    validate_ticket,
)
from conftest import NOW, make_event

STRICT = PlacementPolicy(allow_live=False, cutoff_minutes=2, price_tolerance=0.02)


def _sel(**overrides) -> Selection:
    data = {
        "event_id": "evt-ars-che",
        "sport_key": "soccer_epl",
        "market": "h2h",
        "outcome": "Arsenal",
        "odds": 1.9,
    }
    data.update(overrides)
    return Selection(**data)


# ---------- price drift ----------

@pytest.mark.parametrize("current", [2.00, 1.97, 2.10, 5.0])
def test_price_within_tolerance_or_better_is_accepted(current):
    assert check_price(_sel(odds=2.0), Outcome(name="Arsenal", price=current), STRICT) == current


def test_adverse_drift_beyond_tolerance_is_rejected():
    with pytest.raises(PriceChangedError) as exc_info:
        check_price(_sel(odds=2.0), Outcome(name="Arsenal", price=1.95), STRICT)
    payload = exc_info.value.to_payload()
    assert payload["code"] == "price_changed"
    assert payload["eventId"] == "evt-ars-che"
    assert payload["requestedOdds"] == 2.0
    assert payload["currentOdds"] == 1.95


def test_drift_exactly_at_tolerance_is_accepted():
    # 2.00 * 0.02 == 0.04, compared in Decimal so float noise does not tip it over
    assert check_price(_sel(odds=2.0), Outcome(name="Arsenal", price=1.96), STRICT) == 1.96


@pytest.mark.parametrize("requested, current", [(0, 1.9), (1.9, 0), (-2.0, 1.9), (1.9, -1.5)])
def test_zero_missing_or_negative_price_is_invalid(requested, current):
    with pytest.raises(InvalidOddsError):
        check_price(_sel(odds=requested), Outcome(name="Arsenal", price=current), STRICT)


# ---------- timing ----------

def test_inside_cutoff_window_is_rejected():
    event = make_event(kickoff=NOW + timedelta(minutes=1))
    with pytest.raises(CutoffError):
        check_timing(_sel(), event, STRICT, NOW)


def test_outside_cutoff_window_passes():
    event = make_event(kickoff=NOW + timedelta(minutes=3))
    assert check_timing(_sel(), event, STRICT, NOW) == NOW + timedelta(minutes=3)


def test_started_event_is_rejected():
    event = make_event(kickoff=NOW - timedelta(minutes=10))
    with pytest.raises(EventStartedError):
        check_timing(_sel(), event, STRICT, NOW)


def test_snapshot_kickoff_wins_over_client_kickoff():
    event = make_event(kickoff=NOW + timedelta(hours=2))
    sel = _sel(commence_time=NOW + timedelta(minutes=1))
    assert check_timing(sel, event, STRICT, NOW) == NOW + timedelta(hours=2)


def test_allow_live_skips_timing_gates():
    event = make_event(kickoff=NOW - timedelta(minutes=10))
    policy = PlacementPolicy(allow_live=True)
    assert check_timing(_sel(), event, policy, NOW) == NOW - timedelta(minutes=10)


def test_live_precheck_runs_before_event_lookup():
    sel = _sel(event_id="evt-gone", commence_time=NOW - timedelta(minutes=5))
    with pytest.raises(LiveNotSupportedError):
        validate_ticket([sel], {"soccer_epl": []}, STRICT, now=NOW)


# ---------- policy parsing ----------

def test_policy_from_request_clamps_negative_values():
    body = PlaceBetRequest(stake=10, cutoff_minutes=-5, price_tolerance=-0.1)
    policy = PlacementPolicy.from_request(body)
    assert policy.cutoff_minutes == 0
    assert policy.price_tolerance == 0


def test_policy_rejects_tolerance_of_one_or_more():
    with pytest.raises(InvalidPolicyError):
        PlacementPolicy.from_request(PlaceBetRequest(stake=10, price_tolerance=1))


def test_policy_defaults():
    policy = PlacementPolicy.from_request(PlaceBetRequest(stake=10))
    assert policy == PlacementPolicy(allow_live=True, cutoff_minutes=2.0, price_tolerance=0.02)


# ---------- ticket ----------

def test_validate_ticket_reprices_to_live_odds():
    event = make_event()
    resolved = validate_ticket([_sel(odds=1.9)], {"soccer_epl": [event]}, STRICT, now=NOW)

    assert len(resolved) == 1
    leg = resolved[0]
    assert leg.odds == 1.88
    assert leg.requested_odds == 1.9
    assert leg.match == "Arsenal vs Chelsea"
    assert leg.commence_time == NOW + timedelta(hours=3)
    assert leg.league == "EPL"


def test_validate_ticket_uses_canonical_event_id_and_point():
    event = make_event("evt-canonical")
    sel = _sel(event_id="evt-stale", match="Arsenal vs Chelsea", market="totals", outcome="Over 2.5", odds=1.95)

    leg = validate_ticket([sel], {"soccer_epl": [event]}, STRICT, now=NOW)[0]

    assert leg.event_id == "evt-canonical"
    assert leg.point == 2.5


def test_one_bad_leg_fails_the_whole_ticket():
    event = make_event()
    good = _sel()
    bad = _sel(event_id="evt-missing", outcome="Nobody", match="Nobody vs Someone")
    with pytest.raises(EventNotFoundError):
        validate_ticket([good, bad], {"soccer_epl": [event]}, STRICT, now=NOW)


def test_selection_for_unfetched_sport_is_not_found():
    with pytest.raises(EventNotFoundError):
        validate_ticket([_sel(sport_key="basketball_nba")], {"soccer_epl": [make_event()]}, STRICT, now=NOW)
