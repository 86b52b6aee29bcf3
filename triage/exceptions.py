"""
Queue error taxonomy and the API exception handler.

Engine errors derive from :class:`QueueError` and carry the HTTP status and
error code the API uses when one escapes a view.  Notification delivery
failures are raised by sinks but never leave the dispatcher.
"""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler


class QueueError(Exception):
    code = 'queue_error'
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidInput(QueueError):
    code = 'invalid_input'
    status_code = status.HTTP_400_BAD_REQUEST


class EntryNotFound(QueueError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(QueueError):
    code = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT


class RankingConflict(QueueError):
    code = 'ranking_conflict'
    status_code = status.HTTP_409_CONFLICT


class GenerationExhausted(QueueError):
    code = 'generation_exhausted'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class NotificationDeliveryFailed(QueueError):
    code = 'notification_delivery_failed'
    status_code = status.HTTP_502_BAD_GATEWAY


def api_exception_handler(exc, context):
    if isinstance(exc, QueueError):
        return Response({'ok': False, 'error': {'code': exc.code, 'message': str(exc)}}, status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
