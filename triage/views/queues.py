"""
Queue endpoints.

Reception staff admit patients and drive tickets through their lifecycle;
every endpoint that changes a queue goes through
:class:`~triage.services.lifecycle.QueueService`, which re-ranks the
partition and notifies the affected patients.  Engine errors are rendered
by :func:`triage.exceptions.api_exception_handler`.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..domain import EntrySnapshot
from ..exceptions import EntryNotFound
from ..permissions import IsQueueStaff
from ..serializers.queue import (
    AdmissionSerializer,
    BroadcastSerializer,
    EscalateSerializer,
    PartitionQuerySerializer,
    StatusUpdateSerializer,
    TicketQuerySerializer,
)
from ..services.lifecycle import get_queue_service
from ..services.ranking import rank
from ..services.stats import partition_stats


def _fmt(dt):
    return dt.strftime('%Y-%m-%d %H:%M') if dt else None


def _entry(e: EntrySnapshot) -> dict:
    return {
        'id': e.id,
        'ticketId': e.ticket_id,
        'hospital': e.hospital,
        'department': e.department,
        'patientRef': e.patient_ref,
        'patientName': e.patient_name,
        'age': e.age,
        'status': str(e.status),
        'score': e.priority_score,
        'tier': str(e.priority_tier),
        'escalated': e.escalated,
        'position': e.current_position,
        'estimatedWaitMinutes': e.estimated_wait_minutes,
        'createdAt': _fmt(e.created_at),
        'lastStatusChangeAt': _fmt(e.last_status_change_at),
    }


def _outcome(outcome) -> dict:
    report = outcome.report
    return {
        'ok': True,
        'entry': _entry(outcome.entry) if outcome.entry else None,
        'notifications': [n.as_payload() for n in outcome.notifications],
        'delivery': {
            'sent': report.sent if report else 0,
            'skipped': report.skipped if report else 0,
            'failed': len(report.failures) if report else 0,
        },
    }


def _actor(request) -> str:
    user = getattr(request, 'user', None)
    return getattr(user, 'username', '') or ''


def _lookup(store, ticket_id: str) -> EntrySnapshot:
    entry = store.get(ticket_id)
    if entry is None:
        raise EntryNotFound(f"ticket {ticket_id} not found")
    return entry


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def admit(request):
    """Admit a patient to a (hospital, department) queue.

    The response carries the new entry with its ticket id, score, tier,
    position and estimated wait.
    """
    s = AdmissionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    outcome = get_queue_service().admit(
        v['hospital'],
        v['department'],
        v['patientRef'],
        v['age'],
        v.get('symptomText', ''),
        is_pregnant=v.get('isPregnant', False),
        has_disability=v.get('hasDisability', False),
        patient_name=v.get('patientName', ''),
        contact_phone=v.get('contactPhone', ''),
        actor=_actor(request),
    )
    return Response(_outcome(outcome), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def ranking(request):
    """Return the waiting entries of a partition in position order.

    The order is computed at read time, so waiting-time boosts accrued since
    the last re-rank already count.  Nothing is written: stored positions and
    patient notifications catch up on the next queue change or
    ``rerank_queues`` run.
    """
    q = PartitionQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    service = get_queue_service()
    waiting = service.store.list_waiting(q.validated_data['hospital'], q.validated_data['department'])
    entries = rank(waiting, service.clock())
    return Response({
        'ok': True,
        'hospital': q.validated_data['hospital'],
        'department': q.validated_data['department'],
        'data': [_entry(e) for e in entries],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def entry_detail(request):
    q = TicketQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    store = get_queue_service().store
    entry = _lookup(store, q.validated_data['ticketId'])
    data = _entry(entry)
    data['symptomText'] = entry.symptom_text
    data['isPregnant'] = entry.is_pregnant
    data['hasDisability'] = entry.has_disability
    data['transitionHistory'] = [
        {
            'from': t.from_status,
            'to': t.to_status,
            'operator': t.actor,
            'reason': t.reason,
            'escalation': t.escalation,
            'timestamp': _fmt(t.timestamp),
        }
        for t in store.transitions(entry.id)
    ]
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def update_status(request):
    """Move a ticket to a new status.

    Allowed moves: waiting to called or no-show, called to in-progress or
    no-show, in-progress to completed.  Anything else answers 409.
    """
    s = StatusUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    outcome = get_queue_service().transition(
        s.validated_data['ticketId'],
        s.validated_data['status'],
        actor=_actor(request),
        reason=s.validated_data.get('reason', ''),
    )
    return Response(_outcome(outcome))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def escalate(request):
    s = EscalateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    outcome = get_queue_service().escalate(
        s.validated_data['ticketId'],
        actor=_actor(request),
        reason=s.validated_data.get('reason', ''),
    )
    return Response(_outcome(outcome))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def call_next(request):
    """Call the patient at position 1; ``entry`` is null when nobody waits."""
    s = PartitionQuerySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    outcome = get_queue_service().call_next(
        s.validated_data['hospital'], s.validated_data['department'], actor=_actor(request),
    )
    if outcome is None:
        return Response({'ok': True, 'entry': None, 'notifications': []})
    return Response(_outcome(outcome))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def broadcast(request):
    s = BroadcastSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    outcome = get_queue_service().broadcast(
        s.validated_data['hospital'],
        s.validated_data['department'],
        s.validated_data['message'],
        actor=_actor(request),
        severity=s.validated_data['severity'],
    )
    data = _outcome(outcome)
    data['recipients'] = len(outcome.ranking)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def stats(request):
    q = PartitionQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = partition_stats(get_queue_service().store, q.validated_data['hospital'], q.validated_data['department'])
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsQueueStaff])
def entry_notifications(request):
    """Notification log of one ticket, newest first."""
    q = TicketQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    store = get_queue_service().store
    entry = _lookup(store, q.validated_data['ticketId'])
    logs = store.notifications(entry.id)
    return Response({'ok': True, 'data': [
        {
            'kind': n.kind,
            'severity': n.severity,
            'channel': n.channel,
            'outcome': n.outcome,
            'message': n.message,
            'detail': n.detail,
            'createdAt': _fmt(n.created_at),
        }
        for n in logs
    ]})
