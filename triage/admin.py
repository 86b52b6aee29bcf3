"""
Django admin registrations for the queue models.

Ranking fields are read-only here: they are derived values and are
rewritten by the next re-rank anyway.
"""
from django.contrib import admin

from .models import AuditEvent, NotificationLog, QueueEntry, QueuePartition, StatusTransition


@admin.register(QueuePartition)
class QueuePartitionAdmin(admin.ModelAdmin):
    list_display = ('hospital', 'department', 'version', 'last_ranked_at')
    search_fields = ('hospital', 'department')


class StatusTransitionInline(admin.TabularInline):
    model = StatusTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'actor', 'reason', 'escalation', 'timestamp')


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ('ticket_id', 'hospital', 'department', 'status', 'priority_tier',
                    'priority_score', 'current_position', 'escalated', 'created_at')
    list_filter = ('status', 'priority_tier', 'escalated', 'hospital', 'department')
    search_fields = ('ticket_id', 'patient_ref', 'patient_name')
    readonly_fields = ('priority_score', 'priority_tier', 'current_position', 'estimated_wait_minutes')
    inlines = [StatusTransitionInline]


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ('entry', 'kind', 'severity', 'channel', 'outcome', 'created_at')
    list_filter = ('kind', 'channel', 'outcome')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'actor', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'actor')
