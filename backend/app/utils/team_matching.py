"""
backend/app/utils/team_matching.py

Purpose:
    Team-name reconciliation helpers shared by the outcome resolver. A cached
    client label and a freshly fetched provider label come from independently
    evolving systems, so comparison is done on normalized text, never on raw
    string equality.

Notes:
    - Event ids always take precedence over names.
    - Name matching is a fallback only and can produce false positives for
      close or reused team names across leagues; callers keep it scoped to a
      single sport's snapshot and a kickoff window.
    - Outcome names are reconciled against the event's home/away teams, not
      against each other; derby rivals ("Real Betis"/"Real Madrid") share
      words and must never stand in for one another.
"""

from __future__ import annotations


def normalize(value: str | None) -> str:
    """Lower-case and trim; the comparison form used for labels."""
    return (value or "").strip().lower()


def names_overlap(name_a: str | None, name_b: str | None) -> bool:
    """Return True when one normalized name contains the other."""
    left = normalize(name_a)
    right = normalize(name_b)
    if not left or not right:
        return False
    if left == right:
        return True
    return left in right or right in left


def parse_match_teams(match: str | None) -> tuple[str, str] | None:
    """Split a ``"Home vs Away"`` label into its two team names."""
    if not match:
        return None
    parts = match.split(" vs ")
    if len(parts) != 2:
        return None
    home, away = parts[0].strip(), parts[1].strip()
    if not home or not away:
        return None
    return home, away
