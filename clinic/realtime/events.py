"""Server push helpers for the ``updates`` Channels group."""
from __future__ import annotations

import logging
from typing import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)

UPDATES_GROUP = "updates"


def broadcast_refresh(keys: Iterable[str]) -> None:
    """Tell connected dashboards which collections changed."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    now = timezone.now()
    event = {
        "type": "broadcast.refresh",
        "version": int(now.timestamp()),
        "ts": now.isoformat(),
        "keys": list(keys)[:50],
    }
    async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
    logger.debug("refresh broadcast: %s", event["keys"])
