"""
Django-backed store for queue entries.

The queue engine only sees :class:`~triage.domain.EntrySnapshot` values; this
module is the one place that reads and writes :class:`~triage.models.QueueEntry`
rows, and it also serves their transition and notification history.  Every
write that changes a partition's waiting set bumps the partition version, and
ranking writes are applied only if the version they were computed from is
still current.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Count, F

from .domain import EntrySnapshot, Partition, PartitionSnapshot, Status
from .exceptions import EntryNotFound, RankingConflict
from .models import NotificationLog, QueueEntry, QueuePartition, StatusTransition

logger = logging.getLogger(__name__)

RANKING_FIELDS = ['priority_score', 'priority_tier', 'escalated', 'current_position', 'estimated_wait_minutes']


class DjangoQueueStore:

    # ------------------------------------------------------------------
    # partitions
    # ------------------------------------------------------------------
    def partition(self, hospital: str, department: str, *, lock: bool = False) -> QueuePartition:
        """Return the partition row, creating it on first use.

        With ``lock=True`` the row is locked until the surrounding transaction
        ends, which serializes writers of the same partition across processes.
        """
        qs = QueuePartition.objects.all()
        if lock:
            qs = qs.select_for_update()
        row, _ = qs.get_or_create(hospital=hospital, department=department)
        return row

    def _bump(self, hospital: str, department: str) -> None:
        QueuePartition.objects.filter(hospital=hospital, department=department).update(version=F('version') + 1)

    def partition_keys(self, *, waiting_only: bool = True) -> list[Partition]:
        qs = QueueEntry.objects.all()
        if waiting_only:
            qs = qs.filter(status=Status.WAITING)
        pairs = qs.values_list('hospital', 'department').distinct().order_by('hospital', 'department')
        return [Partition(h, d) for h, d in pairs]

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def _waiting_qs(self, hospital: str, department: str):
        return QueueEntry.objects.filter(hospital=hospital, department=department, status=Status.WAITING)

    def list_waiting(self, hospital: str, department: str) -> list[EntrySnapshot]:
        return [e.to_snapshot() for e in self._waiting_qs(hospital, department).order_by('current_position', 'created_at', 'id')]

    def snapshot(self, hospital: str, department: str) -> PartitionSnapshot:
        # Version first: a write landing between the two reads makes the
        # snapshot look older than it is, which can only cause a retry.
        version = self.partition(hospital, department).version
        return PartitionSnapshot(
            partition=Partition(hospital, department),
            version=version,
            entries=tuple(self.list_waiting(hospital, department)),
        )

    def get(self, ticket_id: str) -> Optional[EntrySnapshot]:
        row = QueueEntry.objects.filter(ticket_id=ticket_id).first()
        return row.to_snapshot() if row else None

    def get_by_id(self, entry_id: int) -> EntrySnapshot:
        row = QueueEntry.objects.filter(id=entry_id).first()
        if not row:
            raise EntryNotFound(f"queue entry {entry_id} not found")
        return row.to_snapshot()

    def ticket_ids(self, prefix: str) -> set[str]:
        return set(QueueEntry.objects.filter(ticket_id__startswith=prefix).values_list('ticket_id', flat=True))

    def status_counts(self, hospital: str, department: str) -> dict[str, int]:
        rows = (
            QueueEntry.objects.filter(hospital=hospital, department=department)
            .values('status').annotate(n=Count('id'))
        )
        return {r['status']: r['n'] for r in rows}

    # ------------------------------------------------------------------
    # history
    # ------------------------------------------------------------------
    def transitions(self, entry_id: int) -> list[StatusTransition]:
        """Status history of one entry, oldest first."""
        return list(StatusTransition.objects.filter(entry_id=entry_id).order_by('timestamp', 'id'))

    def notifications(self, entry_id: int, limit: int = 100) -> list[NotificationLog]:
        """Notification log of one entry, newest first."""
        return list(NotificationLog.objects.filter(entry_id=entry_id).order_by('-created_at', '-id')[:limit])

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def insert(self, entry: EntrySnapshot) -> EntrySnapshot:
        row = QueueEntry.objects.create(
            ticket_id=entry.ticket_id,
            hospital=entry.hospital,
            department=entry.department,
            patient_ref=entry.patient_ref,
            patient_name=entry.patient_name,
            contact_phone=entry.contact_phone,
            age=entry.age,
            symptom_text=entry.symptom_text,
            is_pregnant=entry.is_pregnant,
            has_disability=entry.has_disability,
            status=entry.status,
            priority_score=entry.priority_score,
            priority_tier=entry.priority_tier,
            escalated=entry.escalated,
            escalation_override=entry.escalation_override,
            created_at=entry.created_at,
            last_status_change_at=entry.last_status_change_at or entry.created_at,
        )
        self._bump(entry.hospital, entry.department)
        return row.to_snapshot()

    def update_ranking(self, partition: Partition, rows: Iterable[EntrySnapshot], *,
                       expected_version: int, ranked_at: datetime) -> int:
        """Write positions, scores and wait estimates for ``partition``.

        Raises :class:`~triage.exceptions.RankingConflict` when the partition
        changed since the snapshot at ``expected_version`` was read.  Returns
        the new partition version.
        """
        rows = list(rows)
        with transaction.atomic():
            part = self.partition(partition.hospital, partition.department, lock=True)
            if part.version != expected_version:
                raise RankingConflict(
                    f"{partition} is at version {part.version}, ranking was computed for {expected_version}"
                )
            by_id = {e.id: e for e in rows}
            objs = list(QueueEntry.objects.filter(id__in=by_id.keys()))
            stale = [o.ticket_id for o in objs if o.status != Status.WAITING]
            if stale or len(objs) != len(by_id):
                raise RankingConflict(f"{partition} waiting set changed under the ranking ({stale})")
            for obj in objs:
                ranked = by_id[obj.id]
                obj.priority_score = ranked.priority_score
                obj.priority_tier = ranked.priority_tier
                obj.escalated = ranked.escalated
                obj.current_position = ranked.current_position
                obj.estimated_wait_minutes = ranked.estimated_wait_minutes
            QueueEntry.objects.bulk_update(objs, RANKING_FIELDS)
            part.version += 1
            part.last_ranked_at = ranked_at
            part.save(update_fields=['version', 'last_ranked_at'])
        logger.info("ranked %s: %d waiting, version %d", partition, len(objs), part.version)
        return part.version

    def update_status(self, entry_id: int, new_status: str, timestamp: datetime) -> EntrySnapshot:
        row = QueueEntry.objects.select_for_update().filter(id=entry_id).first()
        if not row:
            raise EntryNotFound(f"queue entry {entry_id} not found")
        row.status = new_status
        row.last_status_change_at = timestamp
        fields = ['status', 'last_status_change_at']
        if new_status != Status.WAITING:
            row.current_position = None
            row.estimated_wait_minutes = None
            fields += ['current_position', 'estimated_wait_minutes']
        row.save(update_fields=fields)
        self._bump(row.hospital, row.department)
        return row.to_snapshot()

    def set_escalated(self, entry_id: int) -> EntrySnapshot:
        row = QueueEntry.objects.select_for_update().filter(id=entry_id).first()
        if not row:
            raise EntryNotFound(f"queue entry {entry_id} not found")
        row.escalation_override = True
        row.escalated = True
        row.save(update_fields=['escalation_override', 'escalated'])
        self._bump(row.hospital, row.department)
        return row.to_snapshot()
