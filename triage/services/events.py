"""
Realtime "ranking changed" / "status changed" events.

Subscribers join a channel-layer group per partition (or per patient) via
the websocket consumers in :mod:`triage.realtime.consumers`.  Group names
are hashed because channel-layer group names only allow a restricted ASCII
alphabet.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from triage.domain import EntrySnapshot, Partition

logger = logging.getLogger(__name__)


def _digest(*parts: str) -> str:
    return hashlib.sha1('\x1f'.join(parts).encode('utf-8')).hexdigest()[:20]


def partition_group(hospital: str, department: str) -> str:
    return f"queue.{_digest(hospital, department)}"


def patient_group(patient_ref: str) -> str:
    return f"patient.{_digest(patient_ref)}"


def send(group: str, payload: dict) -> None:
    """Deliver ``payload`` to ``group``; raises whatever the channel layer raises."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    async_to_sync(channel_layer.group_send)(group, payload)


def publish(group: str, payload: dict) -> None:
    try:
        send(group, payload)
    except Exception:
        logger.warning("publishing %s to %s failed", payload.get('type'), group, exc_info=True)


def entry_payload(entry: EntrySnapshot) -> dict:
    return {
        'ticketId': entry.ticket_id,
        'status': str(entry.status),
        'position': entry.current_position,
        'score': entry.priority_score,
        'tier': str(entry.priority_tier),
        'escalated': entry.escalated,
        'estimatedWaitMinutes': entry.estimated_wait_minutes,
    }


def ranking_changed(partition: Partition, ranked: Iterable[EntrySnapshot], version: int) -> None:
    publish(partition_group(*partition), {
        'type': 'queue.ranking',
        'hospital': partition.hospital,
        'department': partition.department,
        'version': version,
        'entries': [entry_payload(e) for e in ranked],
    })


def status_changed(entry: EntrySnapshot, old_status: str) -> None:
    publish(partition_group(entry.hospital, entry.department), {
        'type': 'queue.status',
        'hospital': entry.hospital,
        'department': entry.department,
        'from': str(old_status),
        'entry': entry_payload(entry),
    })
