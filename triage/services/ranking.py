"""
Ranking of the waiting entries of one (hospital, department) partition.

Ranking is always a full recompute: scores are refreshed at ``now`` because
the waiting-time boost changes every entry continuously, then the waiting
set is sorted by score (descending) and admission time (ascending).
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from triage.domain import EntrySnapshot, Tier
from triage.services.priority import score

CONSULTATION_MINUTES = {
    Tier.CRITICAL.value: 45,
    Tier.HIGH.value: 25,
    Tier.MEDIUM.value: 20,
    Tier.STANDARD.value: 15,
    Tier.LOW.value: 10,
}
TURNOVER_MINUTES = 5


def estimated_wait_minutes(position: int, tier: str) -> int:
    """Estimated minutes until the entry at ``position`` is seen.

    Position 1 always estimates 0 minutes.
    """
    per_patient = CONSULTATION_MINUTES[str(tier)] + TURNOVER_MINUTES
    return max(0, (position - 1) * per_patient)


def rescore(entry: EntrySnapshot, now: datetime) -> EntrySnapshot:
    """Return ``entry`` with a fresh score, tier and escalation flag."""
    result = score(entry, now)
    return entry.evolve(
        priority_score=result.score,
        priority_tier=result.tier,
        escalated=entry.escalated or entry.escalation_override or result.auto_escalated,
    )


def sort_key(entry: EntrySnapshot):
    # ``id`` only separates entries admitted in the same instant.
    return (-entry.priority_score, entry.created_at, entry.id if entry.id is not None else 0, entry.ticket_id)


def rank(entries: Iterable[EntrySnapshot], now: datetime) -> list[EntrySnapshot]:
    """Rank the waiting entries among ``entries``.

    Entries in any other status are dropped from the result.  The returned
    snapshots carry ``current_position`` (1-based) and
    ``estimated_wait_minutes``.
    """
    waiting = [rescore(e, now) for e in entries if e.is_waiting]
    waiting.sort(key=sort_key)
    return [
        e.evolve(
            current_position=position,
            estimated_wait_minutes=estimated_wait_minutes(position, e.priority_tier),
        )
        for position, e in enumerate(waiting, start=1)
    ]


def position_of(ranked: Iterable[EntrySnapshot], entry_id: int) -> Optional[EntrySnapshot]:
    for e in ranked:
        if e.id == entry_id:
            return e
    return None
