from datetime import datetime, timedelta, timezone

from triage.domain import EntrySnapshot, Status, Tier
from triage.services.ranking import estimated_wait_minutes, position_of, rank

NOW = datetime(2024, 10, 19, 9, 0, tzinfo=timezone.utc)


def entry(n: int, **kw) -> EntrySnapshot:
    base = dict(
        id=n,
        ticket_id=f'QCE241019-{1000 + n}',
        hospital='City',
        department='ER',
        patient_ref=f'p-{n}',
        age=30,
        created_at=NOW,
    )
    base.update(kw)
    return EntrySnapshot(**base)


def test_equal_scores_are_served_first_come_first_served():
    early = entry(2, created_at=NOW - timedelta(minutes=2))
    late = entry(1, created_at=NOW - timedelta(minutes=1))
    ranked = rank([late, early], NOW)
    assert [e.id for e in ranked] == [2, 1]
    assert [e.current_position for e in ranked] == [1, 2]
    assert ranked[0].priority_score == ranked[1].priority_score == 40


def test_higher_score_outranks_earlier_admission():
    walk_in = entry(1, created_at=NOW - timedelta(minutes=20))
    emergency = entry(2, symptom_text="difficulty breathing")
    ranked = rank([walk_in, emergency], NOW)
    assert [e.id for e in ranked] == [2, 1]


def test_wait_estimate_for_standard_entry_at_position_five():
    assert estimated_wait_minutes(5, Tier.STANDARD) == 80
    assert estimated_wait_minutes(1, Tier.CRITICAL) == 0

    ranked = rank([entry(i, created_at=NOW - timedelta(seconds=10 - i)) for i in range(1, 6)], NOW)
    fifth = ranked[4]
    assert fifth.current_position == 5
    assert fifth.priority_tier == Tier.STANDARD
    assert fifth.estimated_wait_minutes == 80


def test_positions_are_dense_and_only_cover_waiting_entries():
    entries = [
        entry(1),
        entry(2, status=Status.CALLED),
        entry(3, symptom_text="fever"),
        entry(4, status=Status.COMPLETED),
        entry(5, age=80),
    ]
    ranked = rank(entries, NOW)
    assert [e.id for e in ranked] == [3, 5, 1]
    assert [e.current_position for e in ranked] == [1, 2, 3]


def test_ranking_is_idempotent():
    entries = [entry(i, age=20 + 9 * i, created_at=NOW - timedelta(minutes=5 * i)) for i in range(1, 8)]
    once = rank(entries, NOW)
    twice = rank(once, NOW)
    assert once == twice


def test_ranking_ignores_input_order():
    entries = [entry(i, created_at=NOW - timedelta(minutes=i % 3)) for i in range(1, 7)]
    assert rank(entries, NOW) == rank(list(reversed(entries)), NOW)


def test_waiting_time_boost_is_applied_on_rerank():
    patient = entry(1, created_at=NOW - timedelta(minutes=40))
    newer_elderly = entry(2, age=70, created_at=NOW)
    assert [e.id for e in rank([patient, newer_elderly], NOW)] == [2, 1]
    # after an hour 40 + 10 ties the later 50, and the earlier admission wins
    later = NOW + timedelta(minutes=25)
    assert [e.id for e in rank([patient, newer_elderly], later)] == [1, 2]


def test_position_of():
    ranked = rank([entry(1), entry(2, symptom_text="stroke")], NOW)
    assert position_of(ranked, 1).current_position == 2
    assert position_of(ranked, 99) is None
