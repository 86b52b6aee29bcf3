"""
Queue lifecycle: admissions, status transitions, escalations and re-ranking.

Every operation that changes a partition runs under that partition's lock
and inside one database transaction: the mutation, the full re-rank and the
ranking write either all commit or none do.  Side effects that talk to the
outside world (audit records, realtime events, notifications) run after the
transaction block and never fail the operation.
"""
from __future__ import annotations

import html
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import bleach
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from triage.domain import (
    EntrySnapshot, NotificationKind, Partition, Severity, Status,
)
from triage.exceptions import EntryNotFound, InvalidInput, InvalidTransition, RankingConflict
from triage.store import DjangoQueueStore
from triage.services import events, stats
from triage.services.audit import AuditFact, DatabaseAuditSink, record_quietly
from triage.services.dispatch import DispatchReport, NotificationDispatcher
from triage.services.identifiers import generate, ticket_prefix
from triage.services.notifications import NotificationEvent, diff, diff_partition, make_event
from triage.services.ranking import position_of, rank, rescore

logger = logging.getLogger(__name__)

TRANSITIONS = {
    Status.WAITING.value: frozenset({Status.CALLED.value, Status.NO_SHOW.value}),
    Status.CALLED.value: frozenset({Status.IN_PROGRESS.value, Status.NO_SHOW.value}),
    Status.IN_PROGRESS.value: frozenset({Status.COMPLETED.value}),
    Status.COMPLETED.value: frozenset(),
    Status.NO_SHOW.value: frozenset(),
}

MAX_AGE = 150
MAX_SYMPTOM_LENGTH = 2000
MAX_NAME_LENGTH = 128
MAX_PHONE_LENGTH = 32
INSERT_ATTEMPTS = 3


def can_transition(current: str, new: str) -> bool:
    """Return True if an entry may move from ``current`` to ``new``."""
    return str(new) in TRANSITIONS.get(str(current), ())


def ensure_transition(current: str, new: str) -> None:
    if not can_transition(current, new):
        raise InvalidTransition(f"cannot move from {current} to {new}")


def _required_text(name: str, value, max_length: int = MAX_NAME_LENGTH) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} is required")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidInput(f"{name} is longer than {max_length} characters")
    return value


def _flag(name: str, value) -> bool:
    if not isinstance(value, bool):
        raise InvalidInput(f"{name} must be a boolean")
    return value


def _optional_text(name: str, value, max_length: int) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidInput(f"{name} is longer than {max_length} characters")
    return value


def plain_text(value: str) -> str:
    """Drop every tag and attribute and undo entity escaping."""
    return html.unescape(bleach.clean(value or '', tags=set(), attributes={}, strip=True)).strip()


def validate_admission(hospital, department, patient_ref, age, symptom_text, is_pregnant, has_disability) -> dict:
    """Check admission input; malformed values are rejected, never coerced."""
    if isinstance(age, bool) or not isinstance(age, int):
        raise InvalidInput("age must be an integer")
    if age < 0 or age > MAX_AGE:
        raise InvalidInput(f"age must be between 0 and {MAX_AGE}")
    if symptom_text is None:
        symptom_text = ''
    if not isinstance(symptom_text, str):
        raise InvalidInput("symptom text must be a string")
    if len(symptom_text) > MAX_SYMPTOM_LENGTH:
        raise InvalidInput(f"symptom text is longer than {MAX_SYMPTOM_LENGTH} characters")
    return {
        'hospital': _required_text('hospital', hospital),
        'department': _required_text('department', department),
        'patient_ref': _required_text('patient reference', patient_ref),
        'age': age,
        'symptom_text': symptom_text.strip(),
        'is_pregnant': _flag('isPregnant', is_pregnant),
        'has_disability': _flag('hasDisability', has_disability),
    }


_locks: dict[Partition, threading.RLock] = defaultdict(threading.RLock)
_locks_guard = threading.Lock()


def partition_lock(partition: Partition) -> threading.RLock:
    with _locks_guard:
        return _locks[partition]


@dataclass
class Outcome:
    """Result of one queue operation."""
    entry: Optional[EntrySnapshot]
    ranking: list[EntrySnapshot] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)
    report: Optional[DispatchReport] = None
    version: Optional[int] = None


@dataclass
class _Pending:
    partition: Partition
    ranking: Optional[list[EntrySnapshot]] = None
    version: Optional[int] = None
    deliveries: list = field(default_factory=list)
    facts: list[AuditFact] = field(default_factory=list)
    status_change: Optional[tuple[EntrySnapshot, str]] = None


class QueueService:

    def __init__(self, store=None, dispatcher=None, audit=None,
                 clock: Optional[Callable[[], datetime]] = None, ranking_retries: Optional[int] = None):
        self.store = store or DjangoQueueStore()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.audit = audit or DatabaseAuditSink()
        self.clock = clock or timezone.now
        if ranking_retries is None:
            ranking_retries = settings.TRIAGE_RANKING_RETRIES
        self.ranking_retries = ranking_retries

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    @contextmanager
    def _serialized(self, partition: Partition):
        with partition_lock(partition):
            with transaction.atomic():
                self.store.partition(partition.hospital, partition.department, lock=True)
                yield

    def _rerank_locked(self, partition: Partition, now: datetime):
        """Re-rank ``partition`` from a fresh snapshot; caller holds the lock.

        Returns ``(snapshot, ranked, version)``.
        """
        attempts = max(1, self.ranking_retries)
        for attempt in range(1, attempts + 1):
            snap = self.store.snapshot(partition.hospital, partition.department)
            ranked = rank(snap.entries, now)
            try:
                version = self.store.update_ranking(partition, ranked, expected_version=snap.version, ranked_at=now)
            except RankingConflict:
                if attempt == attempts:
                    raise
                logger.warning("ranking of %s conflicted (attempt %d/%d), retrying", partition, attempt, attempts)
                continue
            return snap, ranked, version
        raise RankingConflict(f"could not rank {partition}")

    def _require_entry(self, ticket_id: str) -> EntrySnapshot:
        entry = self.store.get(ticket_id)
        if entry is None:
            raise EntryNotFound(f"ticket {ticket_id} not found")
        return entry

    def _finish(self, pending: _Pending, outcome: Outcome) -> Outcome:
        for fact in pending.facts:
            record_quietly(self.audit, fact)
        if pending.status_change:
            events.status_changed(*pending.status_change)
        if pending.ranking is not None:
            events.ranking_changed(pending.partition, pending.ranking, pending.version)
        stats.invalidate(*pending.partition)
        outcome.notifications = [event for _, event in pending.deliveries]
        outcome.report = self.dispatcher.dispatch(pending.deliveries)
        if outcome.report.failures:
            logger.warning("%d notification(s) for %s not delivered", len(outcome.report.failures), pending.partition)
        return outcome

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def admit(self, hospital, department, patient_ref, age, symptom_text='', *,
              is_pregnant=False, has_disability=False, patient_name='', contact_phone='', actor='') -> Outcome:
        """Admit a patient: score, ticket, insert and re-rank the partition."""
        data = validate_admission(hospital, department, patient_ref, age, symptom_text, is_pregnant, has_disability)
        extra = {
            'patient_name': _optional_text('patient name', patient_name, MAX_NAME_LENGTH),
            'contact_phone': _optional_text('contact phone', contact_phone, MAX_PHONE_LENGTH),
        }
        partition = Partition(data['hospital'], data['department'])
        with self._serialized(partition):
            now = self.clock()
            entry = self._insert_new(partition, data, now, **extra)
            snap, ranked, version = self._rerank_locked(partition, now)
        entry = position_of(ranked, entry.id) or entry
        before = {e.id: e for e in snap.entries if e.id != entry.id}
        pending = _Pending(partition=partition, ranking=ranked, version=version)
        pending.deliveries = diff_partition(before, ranked)
        pending.facts.append(AuditFact(
            action='admit', subject=entry.ticket_id, entry_id=entry.id, timestamp=now,
            new_status=Status.WAITING, actor=actor,
            detail={'score': entry.priority_score, 'tier': str(entry.priority_tier), 'position': entry.current_position},
        ))
        logger.info("admitted %s to %s at position %s (score %d)",
                    entry.ticket_id, partition, entry.current_position, entry.priority_score)
        return self._finish(pending, Outcome(entry=entry, ranking=ranked, version=version))

    def _insert_new(self, partition: Partition, data: dict, now: datetime, **extra) -> EntrySnapshot:
        today = now.date()
        existing = self.store.ticket_ids(ticket_prefix(partition.hospital, partition.department, today))
        for attempt in range(1, INSERT_ATTEMPTS + 1):
            ticket_id = generate(partition.hospital, partition.department, existing, today)
            draft = rescore(EntrySnapshot(
                ticket_id=ticket_id,
                created_at=now,
                last_status_change_at=now,
                status=Status.WAITING,
                **data,
                **extra,
            ), now)
            try:
                with transaction.atomic():
                    return self.store.insert(draft)
            except IntegrityError:
                # Another writer outside this partition claimed the same id.
                if attempt == INSERT_ATTEMPTS:
                    raise
                existing.add(ticket_id)
        raise AssertionError("unreachable")

    def transition(self, ticket_id: str, new_status: str, *, actor: str = '', reason: str = '') -> Outcome:
        """Move an entry to ``new_status``; illegal moves raise InvalidTransition."""
        current = self._require_entry(ticket_id)
        ensure_transition(current.status, new_status)
        partition = current.partition
        ranked = snap = version = None
        with self._serialized(partition):
            now = self.clock()
            before = self.store.get_by_id(current.id)
            ensure_transition(before.status, new_status)
            after = self.store.update_status(before.id, new_status, now)
            if before.is_waiting:
                snap, ranked, version = self._rerank_locked(partition, now)
        pending = _Pending(partition=partition, ranking=ranked, version=version)
        pending.deliveries = [(after, event) for event in diff(before, after)]
        if ranked is not None:
            pending.deliveries += diff_partition({e.id: e for e in snap.entries}, ranked)
        pending.status_change = (after, before.status)
        pending.facts.append(AuditFact(
            action='transition', subject=after.ticket_id, entry_id=after.id, timestamp=now,
            old_status=before.status, new_status=after.status, actor=actor, reason=reason,
        ))
        logger.info("%s: %s -> %s by %s", after.ticket_id, before.status, after.status, actor or 'system')
        return self._finish(pending, Outcome(entry=after, ranking=ranked or [], version=version))

    def escalate(self, ticket_id: str, *, actor: str = '', reason: str = '') -> Outcome:
        """Force an entry to escalated priority and re-rank its partition.

        Only waiting entries can be escalated; the status does not change.
        """
        current = self._require_entry(ticket_id)
        partition = current.partition
        with self._serialized(partition):
            now = self.clock()
            before = self.store.get_by_id(current.id)
            if not before.is_waiting:
                raise InvalidTransition(f"cannot escalate an entry that is {before.status}")
            self.store.set_escalated(before.id)
            snap, ranked, version = self._rerank_locked(partition, now)
        after = position_of(ranked, before.id)
        previous = {e.id: e for e in snap.entries}
        previous[before.id] = before
        pending = _Pending(partition=partition, ranking=ranked, version=version)
        pending.deliveries = diff_partition(previous, ranked)
        pending.facts.append(AuditFact(
            action='escalate', subject=after.ticket_id, entry_id=after.id, timestamp=now,
            old_status=before.status, new_status=after.status, actor=actor, reason=reason,
            detail={'fromScore': before.priority_score, 'toScore': after.priority_score,
                    'fromPosition': before.current_position, 'toPosition': after.current_position},
        ))
        logger.info("%s escalated by %s: position %s -> %s",
                    after.ticket_id, actor or 'system', before.current_position, after.current_position)
        return self._finish(pending, Outcome(entry=after, ranking=ranked, version=version))

    def rerank(self, hospital: str, department: str) -> Outcome:
        """Recompute the ranking of one partition (waiting-time boost accrual)."""
        partition = Partition(hospital, department)
        with self._serialized(partition):
            now = self.clock()
            snap, ranked, version = self._rerank_locked(partition, now)
        pending = _Pending(partition=partition, ranking=ranked, version=version)
        pending.deliveries = diff_partition({e.id: e for e in snap.entries}, ranked)
        return self._finish(pending, Outcome(entry=None, ranking=ranked, version=version))

    def call_next(self, hospital: str, department: str, *, actor: str = '') -> Optional[Outcome]:
        """Call the entry at position 1, or return None when nobody waits.

        The partition lock is held from the re-rank to the transition, so two
        desks calling at once get two different patients.
        """
        with partition_lock(Partition(hospital, department)):
            ranked = self.rerank(hospital, department).ranking
            if not ranked:
                return None
            return self.transition(ranked[0].ticket_id, Status.CALLED, actor=actor, reason='call next')

    def broadcast(self, hospital: str, department: str, message: str, *,
                  actor: str = '', severity: str = Severity.WARNING) -> Outcome:
        """Send an operator message to every waiting entry of a partition."""
        text = plain_text(message) if isinstance(message, str) else ''
        if not text:
            raise InvalidInput("broadcast message is empty")
        partition = Partition(hospital, department)
        now = self.clock()
        waiting = self.store.list_waiting(hospital, department)
        pending = _Pending(partition=partition)
        pending.deliveries = [
            (e, make_event(NotificationKind.BROADCAST, severity, e, text=text)) for e in waiting
        ]
        pending.facts.append(AuditFact(
            action='broadcast', subject=str(partition), object_type='partition', timestamp=now,
            actor=actor, detail={'message': text, 'recipients': len(waiting)},
        ))
        return self._finish(pending, Outcome(entry=None, ranking=waiting))


_default_service: Optional[QueueService] = None


def get_queue_service() -> QueueService:
    global _default_service
    if _default_service is None:
        _default_service = QueueService()
    return _default_service
