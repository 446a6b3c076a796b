"""Report change notifications.

Stores publish every create/update/delete/upvote through a ChangeFeed. Local
subscribers are called in-process; when a Redis client is attached the change
is also published on a pub/sub channel so other API workers can relay it to
their websocket clients.
"""
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Subscriber = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class ChangeFeed:
    def __init__(self, redis_client=None, channel: str = "civiclens_reports"):
        self.redis = redis_client
        self.channel = channel
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, change_type: str, report_id: Optional[int], **data):
        change = {"type": change_type, "report_id": report_id, **data}

        for callback in list(self._subscribers):
            try:
                result = callback(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change subscriber failed for %s", change_type)

        if self.redis is not None:
            try:
                await self.redis.publish(self.channel, json.dumps(change, default=str))
            except Exception as e:
                # Notifications are best effort, the write already happened
                logger.warning("Could not publish %s to %s: %s", change_type, self.channel, e)
