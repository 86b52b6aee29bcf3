from __future__ import annotations

from datetime import datetime
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from triage.domain import Status, Tier
from triage.services.events import partition_group
from triage.services.priority import elapsed_minutes


def stats_cache_key(hospital: str, department: str) -> str:
    return f"queue:stats:{partition_group(hospital, department)}"


def invalidate(hospital: str, department: str) -> None:
    cache.delete(stats_cache_key(hospital, department))


def compute_stats(store, hospital: str, department: str, now: datetime) -> dict:
    counts = store.status_counts(hospital, department)
    waiting = store.list_waiting(hospital, department)
    by_tier = {t.value: 0 for t in Tier}
    for e in waiting:
        by_tier[str(e.priority_tier)] += 1
    estimates = [e.estimated_wait_minutes for e in waiting if e.estimated_wait_minutes is not None]
    return {
        'hospital': hospital,
        'department': department,
        'counts': {s.value: counts.get(s.value, 0) for s in Status},
        'total': sum(counts.values()),
        'waitingByTier': by_tier,
        'escalatedWaiting': sum(1 for e in waiting if e.escalated),
        'avgEstimatedWaitMinutes': round(sum(estimates) / len(estimates)) if estimates else 0,
        'longestWaitMinutes': int(max((elapsed_minutes(e.created_at, now) for e in waiting), default=0)),
        'updatedAt': now.isoformat(),
    }


def partition_stats(store, hospital: str, department: str, *, now: Optional[datetime] = None) -> dict:
    """Per-partition queue statistics, cached until the next re-rank."""
    ck = stats_cache_key(hospital, department)
    cached = cache.get(ck)
    if cached:
        return cached
    payload = compute_stats(store, hospital, department, now or timezone.now())
    cache.set(ck, payload, settings.TRIAGE_STATS_CACHE_SECONDS)
    return payload
