import json
from channels.generic.websocket import AsyncWebsocketConsumer

class UpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes ``balance.changed`` events to connected back-office screens."""
    GROUP = "balances"

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4001)
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def balance_changed(self, event):
        # event: {"type": "balance.changed", "account": "...", "id": int, "balance": "...", "ts": "..."}
        await self.send(json.dumps(event))
