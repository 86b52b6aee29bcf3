"""
Value types shared by the queue engine.

The engine works on immutable :class:`EntrySnapshot` records rather than on
ORM rows so that scoring, ranking and notification diffing stay pure
functions over an in-memory copy of a partition.  The enumerations double as
Django field choices for the persistent models.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import NamedTuple, Optional

from django.db import models


class Status(models.TextChoices):
    WAITING = 'waiting', 'Waiting'
    CALLED = 'called', 'Called'
    IN_PROGRESS = 'in-progress', 'In progress'
    COMPLETED = 'completed', 'Completed'
    NO_SHOW = 'no-show', 'No show'


class Tier(models.TextChoices):
    CRITICAL = 'critical', 'Critical'
    HIGH = 'high', 'High'
    MEDIUM = 'medium', 'Medium'
    STANDARD = 'standard', 'Standard'
    LOW = 'low', 'Low'


class Severity(models.TextChoices):
    INFO = 'info', 'Info'
    WARNING = 'warning', 'Warning'
    URGENT = 'urgent', 'Urgent'
    SUCCESS = 'success', 'Success'


class NotificationKind(models.TextChoices):
    POSITION_IMPROVED = 'position_improved', 'Position improved'
    ALMOST_READY = 'almost_ready', 'Almost ready'
    NEXT_PATIENT = 'next_patient', 'Next patient'
    CALLED = 'called', 'Called'
    COMPLETED = 'completed', 'Completed'
    PRIORITY_ESCALATED = 'priority_escalated', 'Priority escalated'
    BROADCAST = 'broadcast', 'Broadcast'


# Plain string values: lookups happen with raw strings read from the store.
TERMINAL_STATUSES = frozenset({Status.COMPLETED.value, Status.NO_SHOW.value})


class Partition(NamedTuple):
    """The (hospital, department) scope of one queue."""
    hospital: str
    department: str

    def __str__(self) -> str:
        return f"{self.hospital}/{self.department}"


@dataclass(frozen=True)
class EntrySnapshot:
    """An in-memory copy of one queue entry.

    Only ``age``, ``symptom_text``, the two flags, ``escalation_override`` and
    ``created_at`` feed the priority score; the remaining derived fields are
    filled in by the ranker.
    """
    ticket_id: str
    hospital: str
    department: str
    patient_ref: str
    age: int
    created_at: datetime
    symptom_text: str = ''
    is_pregnant: bool = False
    has_disability: bool = False
    status: str = Status.WAITING
    id: Optional[int] = None
    escalation_override: bool = False
    escalated: bool = False
    priority_score: int = 0
    priority_tier: str = Tier.STANDARD
    current_position: Optional[int] = None
    estimated_wait_minutes: Optional[int] = None
    last_status_change_at: Optional[datetime] = None
    patient_name: str = ''
    contact_phone: str = ''

    @property
    def partition(self) -> Partition:
        return Partition(self.hospital, self.department)

    @property
    def is_waiting(self) -> bool:
        return self.status == Status.WAITING

    def evolve(self, **changes) -> 'EntrySnapshot':
        return replace(self, **changes)


@dataclass(frozen=True)
class PartitionSnapshot:
    """Waiting entries of a partition together with the version they were read at."""
    partition: Partition
    version: int
    entries: tuple[EntrySnapshot, ...]
