"""
URL mappings for the queue API.

Trailing slashes are omitted, matching the paths the reception front-end
calls.
"""
from django.urls import path

from .views import health, queues

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),
    path('api/queue/admit', queues.admit, name='queue-admit'),
    path('api/queue/ranking', queues.ranking, name='queue-ranking'),
    path('api/queue/entry', queues.entry_detail, name='queue-entry'),
    path('api/queue/entry/status', queues.update_status, name='queue-entry-status'),
    path('api/queue/entry/escalate', queues.escalate, name='queue-entry-escalate'),
    path('api/queue/entry/notifications', queues.entry_notifications, name='queue-entry-notifications'),
    path('api/queue/call-next', queues.call_next, name='queue-call-next'),
    path('api/queue/broadcast', queues.broadcast, name='queue-broadcast'),
    path('api/queue/stats', queues.stats, name='queue-stats'),
]
