import json

from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.realtime.events import UPDATES_GROUP


class UpdatesConsumer(AsyncWebsocketConsumer):
    GROUP = UPDATES_GROUP

    async def connect(self):
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def broadcast_refresh(self, event):
        # event: {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        await self.send(json.dumps(event))


class NotificationConsumer(AsyncWebsocketConsumer):
    """Per-user stream of new notifications; anonymous sockets are refused."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return
        self.group_name = f"notifications.{user.id}"
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def notification_message(self, event):
        await self.send(json.dumps({"type": "notification", "notification": event["notification"]}))
