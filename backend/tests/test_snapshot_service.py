"""
backend/tests/test_snapshot_service.py

Purpose:
    Snapshot fetching for a ticket: per-sport fan-out, one bounded retry on
    rejected markets, and best-effort per-event enrichment.
"""

from __future__ import annotations

import asyncio

import pytest

from app.models.bet_slip import Selection
from app.models.odds import Market, Outcome
from app.providers.base import BaseOddsProvider
from app.services import snapshot_service
from app.services.placement_errors import (
    MarketsNotSupportedError,
    UnsupportedMarketsError,
    UpstreamError,
)
from app.services.snapshot_service import (
    build_requested_markets,
    enrich_snapshots,
    fetch_live_snapshots,
    fetch_sport_snapshots,
    fetch_ticket_snapshots,
    merge_event_markets,
)
from conftest import make_event


class _FakeProvider(BaseOddsProvider):
    def __init__(self, sports=None, events=None, reject=None, fail_sports=None, fail_events=None):
        self.sports = sports or {}
        self.events = events or {}
        self.reject = set(reject or [])
        self.fail_sports = set(fail_sports or [])
        self.fail_events = set(fail_events or [])
        self.snapshot_calls: list[tuple[str, list[str]]] = []
        self.event_calls: list[tuple[str, str, list[str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_snapshot(self, sport_key, market_keys):
        self.snapshot_calls.append((sport_key, list(market_keys)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if sport_key in self.fail_sports:
                raise UpstreamError(f"{sport_key} down", sport_key=sport_key)
            rejected = [m for m in market_keys if m in self.reject]
            if rejected:
                raise UnsupportedMarketsError(
                    rejected,
                    f"Markets not supported by this endpoint: {','.join(rejected)}",
                    sport_key=sport_key,
                )
            return list(self.sports.get(sport_key, []))
        finally:
            self.in_flight -= 1

    async def fetch_event_markets(self, event_id, sport_key, market_keys=None):
        self.event_calls.append((event_id, sport_key, list(market_keys or [])))
        if event_id in self.fail_events:
            raise UpstreamError("event endpoint down", event_id=event_id)
        return self.events.get(event_id)


def _sel(event_id="evt-ars-che", sport_key="soccer_epl", market="h2h", outcome="Arsenal"):
    return Selection(event_id=event_id, sport_key=sport_key, market=market, outcome=outcome, odds=1.9)


def test_requested_markets_dedupe_and_map_alternate_totals():
    selections = [
        _sel(market="h2h"),
        _sel(market="alternate_totals", outcome="Over 3.5"),
        _sel(market="totals", outcome="Over 2.5"),
        _sel(market="h2h", outcome="Chelsea"),
    ]
    assert build_requested_markets(selections) == ["h2h", "totals"]


@pytest.mark.asyncio
async def test_rejected_markets_retry_once_with_supported_subset():
    provider = _FakeProvider(sports={"soccer_epl": [make_event()]}, reject=["btts"])

    snapshots = await fetch_sport_snapshots(provider, "soccer_epl", ["h2h", "btts", "totals"])

    assert len(snapshots) == 1
    assert provider.snapshot_calls == [
        ("soccer_epl", ["h2h", "btts", "totals"]),
        ("soccer_epl", ["h2h", "totals"]),
    ]


@pytest.mark.asyncio
async def test_all_markets_rejected_raises_markets_not_supported():
    provider = _FakeProvider(reject=["btts", "draw_no_bet"])

    with pytest.raises(MarketsNotSupportedError) as exc_info:
        await fetch_sport_snapshots(provider, "soccer_epl", ["btts", "draw_no_bet"])

    assert exc_info.value.unsupported == ["btts", "draw_no_bet"]
    assert exc_info.value.to_payload()["code"] == "markets_not_supported"
    assert len(provider.snapshot_calls) == 1


@pytest.mark.asyncio
async def test_second_rejection_raises_markets_not_supported_with_all_keys():
    provider = _FakeProvider(sports={"soccer_epl": [make_event()]}, reject=["btts"])
    original = provider.fetch_snapshot

    async def _reject_totals_on_retry(sport_key, market_keys):
        if len(provider.snapshot_calls) == 1:
            provider.reject.add("totals")
        return await original(sport_key, market_keys)

    provider.fetch_snapshot = _reject_totals_on_retry

    with pytest.raises(MarketsNotSupportedError) as exc_info:
        await fetch_sport_snapshots(provider, "soccer_epl", ["h2h", "btts", "totals"])

    assert exc_info.value.unsupported == ["btts", "totals"]
    assert exc_info.value.to_payload()["code"] == "markets_not_supported"
    assert exc_info.value.sport_key == "soccer_epl"
    assert len(provider.snapshot_calls) == 2


@pytest.mark.asyncio
async def test_empty_market_list_uses_configured_defaults(monkeypatch):
    monkeypatch.setattr(snapshot_service.settings, "ODDS_DEFAULT_MARKETS", "h2h, totals")
    provider = _FakeProvider()

    await fetch_sport_snapshots(provider, "soccer_epl", [])

    assert provider.snapshot_calls == [("soccer_epl", ["h2h", "totals"])]


@pytest.mark.asyncio
async def test_ticket_fetch_groups_by_sport():
    nba = make_event("evt-nba", home="Lakers", away="Celtics", sport_key="basketball_nba")
    provider = _FakeProvider(sports={"soccer_epl": [make_event()], "basketball_nba": [nba]})
    selections = [
        _sel(),
        _sel(event_id="evt-nba", sport_key="basketball_nba", outcome="Lakers"),
        _sel(market="totals", outcome="Over 2.5"),
    ]

    by_sport = await fetch_ticket_snapshots(provider, selections)

    assert set(by_sport) == {"soccer_epl", "basketball_nba"}
    assert sorted(provider.snapshot_calls) == [
        ("basketball_nba", ["h2h"]),
        ("soccer_epl", ["h2h", "totals"]),
    ]


@pytest.mark.asyncio
async def test_ticket_fetch_fails_closed_on_first_failing_sport():
    provider = _FakeProvider(
        sports={"soccer_epl": [make_event()]},
        fail_sports=["basketball_nba", "tennis_atp"],
    )
    selections = [
        _sel(),
        _sel(event_id="evt-x", sport_key="tennis_atp"),
        _sel(event_id="evt-y", sport_key="basketball_nba"),
    ]

    with pytest.raises(UpstreamError) as exc_info:
        await fetch_ticket_snapshots(provider, selections)

    assert exc_info.value.sport_key == "tennis_atp"


@pytest.mark.asyncio
async def test_ticket_fetch_respects_concurrency_bound():
    sports = {f"sport_{i}": [] for i in range(6)}
    provider = _FakeProvider(sports=sports)
    selections = [_sel(event_id=f"evt-{i}", sport_key=key) for i, key in enumerate(sports)]

    await fetch_ticket_snapshots(provider, selections, concurrency=2)

    assert len(provider.snapshot_calls) == 6
    assert provider.max_in_flight <= 2


def test_merge_keeps_primary_markets():
    primary = make_event()
    enrichment = make_event(markets=[
        Market(key="h2h", outcomes=[Outcome(name="Arsenal", price=9.99)]),
        Market(key="btts", outcomes=[Outcome(name="Yes", price=1.7)]),
    ])

    merged = merge_event_markets(primary, enrichment)

    assert merged.market_keys == ["h2h", "totals", "btts"]
    assert merged.market("h2h").outcomes[0].price == 1.88
    assert primary.market_keys == ["h2h", "totals"]


def test_merge_without_enrichment_returns_primary():
    primary = make_event()
    assert merge_event_markets(primary, None) is primary


@pytest.mark.asyncio
async def test_enrichment_fills_missing_markets_only():
    btts = make_event(markets=[Market(key="btts", outcomes=[Outcome(name="Yes", price=1.7)])])
    provider = _FakeProvider(events={"evt-ars-che": btts})
    snapshots = {"soccer_epl": [make_event()]}
    selections = [_sel(), _sel(market="btts", outcome="Yes")]

    merged = await enrich_snapshots(provider, snapshots, selections)

    assert provider.event_calls == [("evt-ars-che", "soccer_epl", ["btts"])]
    assert merged["soccer_epl"][0].market("btts") is not None


@pytest.mark.asyncio
async def test_enrichment_skipped_when_nothing_is_missing():
    provider = _FakeProvider()
    snapshots = {"soccer_epl": [make_event()]}

    merged = await enrich_snapshots(provider, snapshots, [_sel()])

    assert merged is snapshots
    assert provider.event_calls == []


@pytest.mark.asyncio
async def test_enrichment_failure_degrades_to_primary(caplog):
    provider = _FakeProvider(fail_events=["evt-ars-che"])
    snapshots = {"soccer_epl": [make_event()]}

    with caplog.at_level("WARNING", logger="betslip.snapshot_service"):
        merged = await enrich_snapshots(provider, snapshots, [_sel(market="btts", outcome="Yes")])

    assert merged["soccer_epl"][0].market_keys == ["h2h", "totals"]
    assert "Enrichment failed for event evt-ars-che" in caplog.text


@pytest.mark.asyncio
async def test_live_snapshots_skip_enrichment_when_disabled(monkeypatch):
    monkeypatch.setattr(snapshot_service.settings, "ODDS_ENRICHMENT_ENABLED", False)
    provider = _FakeProvider(sports={"soccer_epl": [make_event()]})

    snapshots = await fetch_live_snapshots(provider, [_sel(market="btts", outcome="Yes")])

    assert snapshots["soccer_epl"][0].market("btts") is None
    assert provider.event_calls == []
