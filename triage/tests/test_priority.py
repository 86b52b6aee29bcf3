from datetime import datetime, timedelta, timezone

import pytest

from triage.domain import EntrySnapshot, Tier
from triage.services import priority
from triage.services.ranking import rescore

NOW = datetime(2024, 10, 19, 9, 0, tzinfo=timezone.utc)


def make_entry(**kw) -> EntrySnapshot:
    base = dict(
        ticket_id='QCE241019-1000',
        hospital='City',
        department='ER',
        patient_ref='p-1',
        age=30,
        created_at=NOW,
    )
    base.update(kw)
    return EntrySnapshot(**base)


def test_standard_adult_with_mild_symptoms():
    result = priority.score(make_entry(age=30, symptom_text="mild headache"), NOW)
    assert result.score == 40
    assert result.tier == Tier.STANDARD
    assert not result.auto_escalated


def test_elderly_patient_gets_age_bonus():
    result = priority.score(make_entry(age=80, symptom_text=""), NOW)
    assert result.score == 60
    assert result.tier == Tier.MEDIUM


def test_critical_symptom_sets_critical_tier_and_escalates():
    entry = rescore(make_entry(age=25, symptom_text="Severe CHEST PAIN since morning"), NOW)
    assert entry.priority_score == 100
    assert entry.priority_tier == Tier.CRITICAL
    assert entry.escalated is True
    assert entry.escalation_override is False


def test_critical_symptom_skips_age_and_flag_bonuses():
    entry = make_entry(age=1, symptom_text="chest pain", is_pregnant=True, has_disability=True)
    assert priority.score(entry, NOW).score == 100


def test_high_priority_symptom_with_bonuses():
    entry = make_entry(age=70, symptom_text="broken bone", is_pregnant=True, has_disability=True)
    # 80 + 10 (age) + 15 + 10
    assert priority.score(entry, NOW).score == 115
    assert priority.score(entry, NOW).tier == Tier.CRITICAL


@pytest.mark.parametrize('age,bonus', [
    (0, 20), (2, 20), (3, 10), (12, 10), (13, 0), (64, 0), (65, 10), (74, 10), (75, 20), (None, 20), (-4, 20),
])
def test_age_bonus_bands(age, bonus):
    assert priority.age_bonus(age) == bonus


def test_escalation_override_raises_score_to_floor():
    entry = make_entry(symptom_text="", escalation_override=True)
    result = priority.score(entry, NOW)
    assert result.score == priority.ESCALATION_FLOOR
    assert result.tier == Tier.CRITICAL


def test_escalation_override_keeps_higher_scores():
    entry = make_entry(age=80, symptom_text="broken bone", is_pregnant=True, has_disability=True,
                       escalation_override=True)
    assert priority.score(entry, NOW).score == 125


def test_time_boost_applies_on_top_of_escalation():
    entry = make_entry(escalation_override=True, created_at=NOW - timedelta(minutes=95))
    assert priority.score(entry, NOW).score == 125


def test_highest_reachable_score_stays_in_range():
    entry = make_entry(age=80, symptom_text="broken bone", is_pregnant=True, has_disability=True,
                       created_at=NOW - timedelta(days=2))
    # 80 + 20 + 15 + 10 + 40
    assert priority.score(entry, NOW).score == 165
    assert priority.score(entry, NOW).score <= priority.MAX_SCORE


@pytest.mark.parametrize('minutes,boost', [
    (0, 0), (29, 0), (30, 5), (59, 5), (60, 10), (90, 15), (120, 25), (179, 25), (180, 40), (600, 40),
])
def test_time_boost_bands(minutes, boost):
    assert priority.time_boost(minutes) == boost


def test_time_boost_never_decreases_with_waiting():
    entry = make_entry()
    scores = [priority.score(entry, NOW + timedelta(minutes=m)).score for m in range(0, 240, 7)]
    assert scores == sorted(scores)


def test_future_created_at_counts_as_no_wait():
    entry = make_entry(created_at=NOW + timedelta(minutes=10))
    assert priority.score(entry, NOW).score == 40


def test_score_is_deterministic():
    entry = make_entry(age=68, symptom_text="back pain and fever", has_disability=True,
                       created_at=NOW - timedelta(minutes=61))
    assert priority.score(entry, NOW) == priority.score(entry, NOW)


@pytest.mark.parametrize('score,tier', [
    (0, Tier.LOW), (29, Tier.LOW), (30, Tier.STANDARD), (49, Tier.STANDARD), (50, Tier.MEDIUM),
    (69, Tier.MEDIUM), (70, Tier.HIGH), (89, Tier.HIGH), (90, Tier.CRITICAL), (200, Tier.CRITICAL),
])
def test_tier_bands(score, tier):
    assert priority.tier_for(score) == tier


def test_auto_escalation_is_sticky_after_score_drops():
    entry = rescore(make_entry(age=30, symptom_text="migraine"), NOW)
    assert entry.escalated
    calmer = rescore(entry.evolve(symptom_text=""), NOW)
    assert calmer.priority_score == 40
    assert calmer.escalated
