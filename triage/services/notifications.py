"""
Notification decisions.

``diff`` compares what a patient saw before an operation with what they see
after it and returns the events that should be sent.  Rendering and delivery
belong to the sinks in :mod:`triage.services.dispatch`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from triage.domain import EntrySnapshot, NotificationKind, Severity, Status

ALMOST_READY_POSITION = 3

MESSAGES = {
    NotificationKind.POSITION_IMPROVED.value: (
        "{hospital}: your position in the {department} queue improved from "
        "{previous_position} to {position}. Estimated wait: {wait} minutes. Ticket {ticket}."
    ),
    NotificationKind.ALMOST_READY.value: (
        "{hospital}: you are number {position} in line for {department}. "
        "You're almost next, please be ready. Ticket {ticket}."
    ),
    NotificationKind.NEXT_PATIENT.value: (
        "{hospital}: you're next in the {department} queue. "
        "Please proceed to the counter. Ticket {ticket}."
    ),
    NotificationKind.CALLED.value: (
        "{hospital}: please proceed to {department}. "
        "Your ticket {ticket} is now being called."
    ),
    NotificationKind.COMPLETED.value: (
        "{hospital}: your consultation at {department} is complete. "
        "We hope you have a speedy recovery. Ticket {ticket}."
    ),
    NotificationKind.PRIORITY_ESCALATED.value: (
        "{hospital}: your ticket {ticket} has been marked as priority. "
        "Please be ready for immediate consultation at {department}."
    ),
    NotificationKind.BROADCAST.value: "{hospital} - {department}: {text}",
}


@dataclass(frozen=True)
class QueueView:
    """What a patient can observe about their ticket at one instant."""
    position: Optional[int]
    status: str
    escalated: bool = False
    escalation_override: bool = False

    @classmethod
    def of(cls, entry: Optional[EntrySnapshot]) -> Optional['QueueView']:
        if entry is None:
            return None
        return cls(
            position=entry.current_position if entry.is_waiting else None,
            status=entry.status,
            escalated=entry.escalated,
            escalation_override=entry.escalation_override,
        )


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    severity: str
    message: str
    ticket_id: str
    patient_ref: str
    position: Optional[int] = None
    previous_position: Optional[int] = None
    estimated_wait_minutes: Optional[int] = None

    def as_payload(self) -> dict:
        return {
            'kind': str(self.kind),
            'severity': str(self.severity),
            'message': self.message,
            'ticketId': self.ticket_id,
            'position': self.position,
            'previousPosition': self.previous_position,
            'estimatedWaitMinutes': self.estimated_wait_minutes,
        }


def render(kind: str, entry: EntrySnapshot, *, previous_position: Optional[int] = None, text: str = '') -> str:
    return MESSAGES[str(kind)].format(
        hospital=entry.hospital,
        department=entry.department,
        ticket=entry.ticket_id,
        position=entry.current_position,
        previous_position=previous_position,
        wait=entry.estimated_wait_minutes if entry.estimated_wait_minutes is not None else 0,
        text=text,
    )


def make_event(kind: str, severity: str, entry: EntrySnapshot, *,
               previous_position: Optional[int] = None, text: str = '') -> NotificationEvent:
    return NotificationEvent(
        kind=kind,
        severity=severity,
        message=render(kind, entry, previous_position=previous_position, text=text),
        ticket_id=entry.ticket_id,
        patient_ref=entry.patient_ref,
        position=entry.current_position if entry.is_waiting else None,
        previous_position=previous_position,
        estimated_wait_minutes=entry.estimated_wait_minutes if entry.is_waiting else None,
    )


def diff_views(previous: Optional[QueueView], current: QueueView) -> list[tuple[str, str]]:
    """Return ``(kind, severity)`` pairs fired by moving from ``previous`` to ``current``.

    ``previous`` is ``None`` for a freshly admitted entry.  Each rule is
    evaluated independently, so one change can fire several events, but a
    rule never fires twice for the same change.
    """
    fired: list[tuple[str, str]] = []
    prev_position = previous.position if previous else None
    prev_status = previous.status if previous else None
    waiting = current.status == Status.WAITING and current.position is not None

    if waiting:
        if prev_position is not None and current.position < prev_position:
            fired.append((NotificationKind.POSITION_IMPROVED, Severity.INFO))
        if (prev_position is not None and prev_position > ALMOST_READY_POSITION
                and current.position <= ALMOST_READY_POSITION):
            fired.append((NotificationKind.ALMOST_READY, Severity.WARNING))
        if current.position == 1 and prev_position != 1:
            fired.append((NotificationKind.NEXT_PATIENT, Severity.URGENT))

    if current.status != prev_status:
        if current.status == Status.CALLED:
            fired.append((NotificationKind.CALLED, Severity.URGENT))
        elif current.status == Status.COMPLETED:
            fired.append((NotificationKind.COMPLETED, Severity.SUCCESS))

    # never on admission
    if previous is not None and (
            (current.escalated and not previous.escalated)
            or (current.escalation_override and not previous.escalation_override)):
        fired.append((NotificationKind.PRIORITY_ESCALATED, Severity.URGENT))
    return fired


def diff(previous: Optional[EntrySnapshot], current: EntrySnapshot) -> list[NotificationEvent]:
    """Events fired for ``current`` given its state before the operation."""
    before = QueueView.of(previous)
    prev_position = before.position if before else None
    return [
        make_event(kind, severity, current, previous_position=prev_position)
        for kind, severity in diff_views(before, QueueView.of(current))
    ]


def diff_partition(before: dict, after: list[EntrySnapshot]) -> list[tuple[EntrySnapshot, NotificationEvent]]:
    """Diff every re-ranked entry against its state before the re-rank.

    ``before`` maps entry id to the previous snapshot; entries missing from
    it are treated as new admissions.  Returns ``(entry, event)`` pairs ready
    for the dispatcher.
    """
    return [(entry, event) for entry in after for event in diff(before.get(entry.id), entry)]
