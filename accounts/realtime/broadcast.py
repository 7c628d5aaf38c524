"""Fan-out of balance changes to websocket listeners after commit."""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

from .consumers import UpdatesConsumer

logger = logging.getLogger(__name__)


def _send(event: dict) -> None:
    layer = get_channel_layer()
    if layer is None:
        return
    try:
        async_to_sync(layer.group_send)(UpdatesConsumer.GROUP, event)
    except (OSError, RuntimeError) as exc:
        # the mutation is already committed; a lost push only delays a screen refresh
        logger.warning('balance broadcast failed: %s', exc)


def balance_changed(account: str, object_id, balance) -> None:
    event = {
        "type": "balance.changed",
        "account": account,
        "id": object_id,
        "balance": str(balance),
        "ts": timezone.now().isoformat(),
    }
    transaction.on_commit(lambda: _send(event))
