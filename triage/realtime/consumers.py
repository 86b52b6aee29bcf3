import json

from channels.generic.websocket import AsyncWebsocketConsumer

from triage.services.events import partition_group, patient_group


class QueueUpdatesConsumer(AsyncWebsocketConsumer):
    """Ranking and status updates for one (hospital, department) queue.

    Used by waiting-room displays and reception desks.
    """

    async def connect(self):
        kwargs = self.scope["url_route"]["kwargs"]
        self.group = partition_group(kwargs["hospital"], kwargs["department"])
        await self.channel_layer.group_add(self.group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.group, self.channel_name)

    async def queue_ranking(self, event):
        # event: {"type": "queue.ranking", "version": int, "entries": [...]}
        await self.send(json.dumps(event))

    async def queue_status(self, event):
        await self.send(json.dumps(event))


class PatientUpdatesConsumer(AsyncWebsocketConsumer):
    """Notifications for a single patient's tickets."""

    async def connect(self):
        self.group = patient_group(self.scope["url_route"]["kwargs"]["patient_ref"])
        await self.channel_layer.group_add(self.group, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.group, self.channel_name)

    async def queue_notification(self, event):
        await self.send(json.dumps(event))
