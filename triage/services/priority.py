"""
Priority scoring for queue entries.

``score`` is a pure function of the entry's age, symptom text, flags,
escalation override and elapsed waiting time.  Every caller (admission,
escalation, status transitions, the periodic re-rank job) goes through it so
that there is exactly one definition of a patient's priority.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from triage.domain import Tier

MIN_SCORE = 0
MAX_SCORE = 200

STANDARD_BASE = 40
HIGH_BASE = 80
CRITICAL_BASE = 100
ESCALATION_FLOOR = CRITICAL_BASE + 10

# Score at which an entry is flagged as escalated without operator action.
AUTO_ESCALATION_THRESHOLD = HIGH_BASE

CRITICAL_SYMPTOMS = (
    'chest pain', 'difficulty breathing', 'unconscious', 'severe bleeding',
    'heart attack', 'stroke', 'seizure', 'severe abdominal pain',
    'head injury', 'high fever', 'vomiting blood', 'severe burns',
    'allergic reaction', 'overdose', 'shortness of breath', 'choking',
)

HIGH_PRIORITY_SYMPTOMS = (
    'broken bone', 'deep cut', 'severe pain', 'infection', 'dehydration',
    'migraine', 'stomach pain', 'back pain', 'joint pain', 'fever',
)

# (minimum elapsed minutes, boost), highest first; only the first match applies.
TIME_BOOSTS = (
    (180, 40),
    (120, 25),
    (90, 15),
    (60, 10),
    (30, 5),
)

# (minimum score, tier), highest first.
TIER_BANDS = (
    (90, Tier.CRITICAL),
    (70, Tier.HIGH),
    (50, Tier.MEDIUM),
    (30, Tier.STANDARD),
)

PREGNANCY_BONUS = 15
DISABILITY_BONUS = 10


@dataclass(frozen=True)
class PriorityResult:
    score: int
    tier: Tier
    reasons: tuple[str, ...] = field(default=())

    @property
    def auto_escalated(self) -> bool:
        return self.score >= AUTO_ESCALATION_THRESHOLD


def _matches(text: str, keywords: Iterable[str]) -> Optional[str]:
    for keyword in keywords:
        if keyword in text:
            return keyword
    return None


def age_bonus(age: Optional[int]) -> int:
    """Return the age adjustment; missing or negative ages count as 0."""
    if age is None or age < 0:
        age = 0
    if age <= 2 or age >= 75:
        return 20
    if age <= 12 or age >= 65:
        return 10
    return 0


def time_boost(elapsed_minutes: float) -> int:
    for threshold, boost in TIME_BOOSTS:
        if elapsed_minutes >= threshold:
            return boost
    return 0


def tier_for(score: int) -> Tier:
    for floor, tier in TIER_BANDS:
        if score >= floor:
            return tier
    return Tier.LOW


def elapsed_minutes(created_at: datetime, now: datetime) -> float:
    """Minutes between ``created_at`` and ``now``, never negative."""
    return max(0.0, (now - created_at).total_seconds() / 60.0)


def score(entry, now: datetime) -> PriorityResult:
    """Compute the priority score and tier of ``entry`` at ``now``.

    ``entry`` may be an :class:`~triage.domain.EntrySnapshot` or a
    :class:`~triage.models.QueueEntry`; only ``age``, ``symptom_text``,
    ``is_pregnant``, ``has_disability``, ``escalation_override`` and
    ``created_at`` are read.

    Critical symptoms pin the clinical part of the score to the Critical base
    and skip the high-symptom, age and flag adjustments.  The escalation
    floor and the waiting-time boost apply on top of either path.
    """
    text = (entry.symptom_text or '').lower()
    reasons: list[str] = []

    critical = _matches(text, CRITICAL_SYMPTOMS)
    if critical:
        total = CRITICAL_BASE
        reasons.append(f"critical symptom: {critical}")
    else:
        total = STANDARD_BASE
        high = _matches(text, HIGH_PRIORITY_SYMPTOMS)
        if high:
            total = HIGH_BASE
            reasons.append(f"high priority symptom: {high}")
        bonus = age_bonus(entry.age)
        if bonus:
            total += bonus
            reasons.append(f"age {entry.age}: +{bonus}")
        if entry.is_pregnant:
            total += PREGNANCY_BONUS
            reasons.append(f"pregnant: +{PREGNANCY_BONUS}")
        if entry.has_disability:
            total += DISABILITY_BONUS
            reasons.append(f"disability: +{DISABILITY_BONUS}")

    if entry.escalation_override and total < ESCALATION_FLOOR:
        total = ESCALATION_FLOOR
        reasons.append("escalated by operator")

    boost = time_boost(elapsed_minutes(entry.created_at, now))
    if boost:
        total += boost
        reasons.append(f"waiting time: +{boost}")

    total = max(MIN_SCORE, min(MAX_SCORE, total))
    return PriorityResult(score=total, tier=tier_for(total), reasons=tuple(reasons))
