from django.urls import path

from .consumers import PatientUpdatesConsumer, QueueUpdatesConsumer

websocket_urlpatterns = [
    path("ws/queue/<str:hospital>/<str:department>/", QueueUpdatesConsumer.as_asgi()),
    path("ws/patient/<str:patient_ref>/", PatientUpdatesConsumer.as_asgi()),
]
