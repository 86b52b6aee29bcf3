from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from django.db import transaction

from triage.models import AuditEvent, StatusTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditFact:
    action: str
    subject: str
    timestamp: datetime
    object_type: str = 'queue_entry'
    entry_id: Optional[int] = None
    old_status: str = ''
    new_status: str = ''
    actor: str = ''
    reason: str = ''
    detail: Dict[str, Any] = field(default_factory=dict)


class DatabaseAuditSink:
    """Stores transition history rows plus a generic audit event per fact."""

    TRANSITION_ACTIONS = ('transition', 'escalate')

    def record(self, fact: AuditFact) -> None:
        if fact.action in self.TRANSITION_ACTIONS and fact.entry_id is not None:
            StatusTransition.objects.create(
                entry_id=fact.entry_id,
                from_status=fact.old_status,
                to_status=fact.new_status,
                actor=fact.actor,
                reason=fact.reason,
                escalation=fact.action == 'escalate',
                timestamp=fact.timestamp,
            )
        AuditEvent.objects.create(
            actor=fact.actor,
            action=fact.action,
            object_type=fact.object_type,
            object_id=fact.subject,
            detail={
                'from': str(fact.old_status),
                'to': str(fact.new_status),
                'reason': fact.reason,
                'at': fact.timestamp.isoformat(),
                **fact.detail,
            },
        )


def record_quietly(sink, fact: AuditFact) -> bool:
    """Hand ``fact`` to ``sink``; failures are logged and never propagate."""
    try:
        with transaction.atomic():
            sink.record(fact)
        return True
    except Exception:
        logger.error("audit record %s for %s failed", fact.action, fact.subject, exc_info=True)
        return False
