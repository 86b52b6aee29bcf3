"""
Delivery of notification events.

The dispatcher hands each event to every configured sink and writes one
:class:`~triage.models.NotificationLog` row per attempt.  Delivery is
fire-and-forget: failures are logged and recorded, never raised, so a failed
SMS cannot undo the queue change that triggered it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import requests
from django.conf import settings
from django.db import transaction

from triage.domain import EntrySnapshot
from triage.exceptions import NotificationDeliveryFailed
from triage.models import NotificationLog
from triage.services import events
from triage.services.notifications import NotificationEvent

logger = logging.getLogger(__name__)

Delivery = tuple[EntrySnapshot, NotificationEvent]


class ChannelsSink:
    """Pushes events to the patient's websocket group."""
    channel = 'push'

    def notify(self, entry: EntrySnapshot, event: NotificationEvent) -> bool:
        try:
            events.send(events.patient_group(entry.patient_ref), {'type': 'queue.notification', **event.as_payload()})
        except Exception as exc:
            raise NotificationDeliveryFailed(f"push to {entry.ticket_id} failed: {exc}") from exc
        return True


class SmsSink:
    """Sends events as SMS through a Twilio-compatible REST API."""
    channel = 'sms'

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def notify(self, entry: EntrySnapshot, event: NotificationEvent) -> bool:
        if not settings.SMS_ENABLE or not entry.contact_phone:
            return False
        url = f"{settings.SMS_API_BASE}/Accounts/{settings.SMS_ACCOUNT_SID}/Messages.json"
        data = {'To': entry.contact_phone, 'From': settings.SMS_FROM_NUMBER, 'Body': event.message}
        try:
            r = self.session.post(
                url,
                data=data,
                auth=(settings.SMS_ACCOUNT_SID, settings.SMS_AUTH_TOKEN),
                timeout=settings.SMS_TIMEOUT,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationDeliveryFailed(f"sms to {entry.ticket_id} failed: {exc}") from exc
        return True


def default_sinks() -> list:
    return [ChannelsSink(), SmsSink()]


@dataclass
class DispatchReport:
    sent: int = 0
    skipped: int = 0
    failures: list[str] = field(default_factory=list)


class NotificationDispatcher:

    def __init__(self, sinks: Optional[Sequence] = None):
        self.sinks = list(sinks) if sinks is not None else default_sinks()

    def dispatch(self, deliveries: Iterable[Delivery]) -> DispatchReport:
        report = DispatchReport()
        for entry, event in deliveries:
            for sink in self.sinks:
                outcome, error = self._deliver(sink, entry, event)
                if outcome == 'sent':
                    report.sent += 1
                elif outcome == 'skipped':
                    report.skipped += 1
                else:
                    report.failures.append(f"{sink.channel}:{event.ticket_id}:{event.kind}")
                self._log(entry, event, sink.channel, outcome, error)
        return report

    def _deliver(self, sink, entry: EntrySnapshot, event: NotificationEvent) -> tuple[str, str]:
        try:
            delivered = sink.notify(entry, event)
        except NotificationDeliveryFailed as exc:
            logger.warning("%s notification %s for %s not delivered: %s",
                           sink.channel, event.kind, entry.ticket_id, exc)
            return 'failed', str(exc)
        except Exception as exc:
            logger.error("%s sink crashed delivering %s for %s",
                         sink.channel, event.kind, entry.ticket_id, exc_info=True)
            return 'failed', str(exc)
        return ('sent' if delivered else 'skipped'), ''

    def _log(self, entry: EntrySnapshot, event: NotificationEvent, channel: str, outcome: str, error: str) -> None:
        if entry.id is None:
            return
        try:
            with transaction.atomic():
                NotificationLog.objects.create(
                    entry_id=entry.id,
                    kind=str(event.kind),
                    severity=str(event.severity),
                    message=event.message,
                    channel=channel,
                    outcome=outcome,
                    detail={'error': error} if error else {},
                )
        except Exception:
            logger.error("could not log notification %s for %s", event.kind, entry.ticket_id, exc_info=True)
