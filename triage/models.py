"""
Database models for the patient queue.

A :class:`QueueEntry` is one patient's ticket in one (hospital, department)
partition.  Its score, tier, position and wait estimate are derived values
written back by the ranker; :class:`QueuePartition` carries the version
counter that makes those ranking writes conditional.  Status transitions,
dispatched notifications and other audit facts are kept for analytics and
are never deleted by the queue engine.
"""
from __future__ import annotations

from django.db import models

from .domain import EntrySnapshot, NotificationKind, Severity, Status, Tier


class QueuePartition(models.Model):
    """One (hospital, department) queue.

    ``version`` is bumped by every write that changes the waiting set or its
    ranking so that a ranking computed from an older snapshot is rejected.
    """
    hospital = models.CharField(max_length=128)
    department = models.CharField(max_length=128)
    version = models.PositiveBigIntegerField(default=0)
    last_ranked_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['hospital', 'department'], name='uniq_queue_partition'),
        ]

    def __str__(self) -> str:
        return f"{self.hospital}/{self.department} v{self.version}"


class QueueEntry(models.Model):
    ticket_id = models.CharField(max_length=32, unique=True)
    hospital = models.CharField(max_length=128)
    department = models.CharField(max_length=128)
    patient_ref = models.CharField(max_length=128, db_index=True)
    patient_name = models.CharField(max_length=128, blank=True)
    contact_phone = models.CharField(max_length=32, blank=True)

    age = models.PositiveIntegerField()
    symptom_text = models.TextField(blank=True)
    is_pregnant = models.BooleanField(default=False)
    has_disability = models.BooleanField(default=False)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.WAITING)
    priority_score = models.PositiveSmallIntegerField(default=0)
    priority_tier = models.CharField(max_length=16, choices=Tier.choices, default=Tier.STANDARD)
    escalated = models.BooleanField(default=False)
    escalation_override = models.BooleanField(default=False)

    current_position = models.PositiveIntegerField(null=True, blank=True)
    estimated_wait_minutes = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField()
    last_status_change_at = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=['hospital', 'department', 'status'], name='entry_partition_status_idx'),
            models.Index(fields=['hospital', 'department', 'current_position'], name='entry_partition_pos_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.ticket_id} ({self.status})"

    def to_snapshot(self) -> EntrySnapshot:
        return EntrySnapshot(
            id=self.id,
            ticket_id=self.ticket_id,
            hospital=self.hospital,
            department=self.department,
            patient_ref=self.patient_ref,
            patient_name=self.patient_name,
            contact_phone=self.contact_phone,
            age=self.age,
            symptom_text=self.symptom_text,
            is_pregnant=self.is_pregnant,
            has_disability=self.has_disability,
            status=self.status,
            priority_score=self.priority_score,
            priority_tier=self.priority_tier,
            escalated=self.escalated,
            escalation_override=self.escalation_override,
            current_position=self.current_position,
            estimated_wait_minutes=self.estimated_wait_minutes,
            created_at=self.created_at,
            last_status_change_at=self.last_status_change_at,
        )


class StatusTransition(models.Model):
    """Records a status transition (or an escalation) of a queue entry."""
    entry = models.ForeignKey(QueueEntry, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=16, choices=Status.choices)
    to_status = models.CharField(max_length=16, choices=Status.choices)
    actor = models.CharField(max_length=150, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    escalation = models.BooleanField(default=False)
    timestamp = models.DateTimeField()

    class Meta:
        indexes = [models.Index(fields=['entry', 'timestamp'], name='transition_entry_ts_idx')]

    def __str__(self) -> str:
        return f"{self.entry_id}: {self.from_status} → {self.to_status}"


class NotificationLog(models.Model):
    """One notification event handed to a delivery channel."""
    OUTCOME_CHOICES = (
        ('sent', 'sent'),
        ('failed', 'failed'),
        ('skipped', 'skipped'),
    )
    entry = models.ForeignKey(QueueEntry, related_name='notifications', on_delete=models.CASCADE)
    kind = models.CharField(max_length=32, choices=NotificationKind.choices)
    severity = models.CharField(max_length=16, choices=Severity.choices)
    message = models.TextField()
    channel = models.CharField(max_length=32, default='push')
    outcome = models.CharField(max_length=16, choices=OUTCOME_CHOICES, default='sent')
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['entry', 'created_at'], name='notification_entry_ts_idx')]

    def __str__(self) -> str:
        return f"{self.kind} → {self.entry_id} via {self.channel} ({self.outcome})"


class AuditEvent(models.Model):
    actor = models.CharField(max_length=150, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=255, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_ts_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_ts_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.object_type}:{self.object_id}"
