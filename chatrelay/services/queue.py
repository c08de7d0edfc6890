"""
ChatRelay - Display queue service.
Holds routed items in priority order and feeds them to browser sources one at a time.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional

from flask_socketio import SocketIO

from chatrelay.models.events import ItemType, QueueItem

logger = logging.getLogger(__name__)


@dataclass(order=True)
class PriorityItem:
    """Wrapper for priority queue items."""
    priority: int
    sequence: int
    item: QueueItem = field(compare=False)


class DisplayQueue:
    """
    Manages the display queue.

    Lower priority numbers play first; equal priorities play in insertion
    order, so a chat item always precedes the greeting queued after it.
    """

    def __init__(self, config, socketio: Optional[SocketIO] = None):
        self.config = config
        self.socketio = socketio

        self._queue: List[PriorityItem] = []
        self._queue_lock = Lock()
        self._sequence = itertools.count()
        self._current_item: Optional[QueueItem] = None
        self._items: Dict[str, QueueItem] = {}

        self._default_priorities = {
            ItemType.CHAT: config.PRIORITY_CHAT,
            ItemType.GREETING: config.PRIORITY_GREETING,
            ItemType.COMMAND: config.PRIORITY_COMMAND,
            ItemType.GIFT: config.PRIORITY_GIFT,
        }

        logger.info(f"Display queue initialized (max_size={config.QUEUE_MAX_SIZE})")

    def add_item(self, item: QueueItem) -> bool:
        """
        Add an item to the queue.

        Args:
            item: The item to queue; a missing priority is filled from config

        Returns:
            True if the item was added, False if the queue is full
        """
        if item.priority is None:
            item.priority = self._default_priorities.get(item.type, self.config.PRIORITY_CHAT)

        with self._queue_lock:
            if len(self._queue) >= self.config.QUEUE_MAX_SIZE:
                logger.warning(f"Queue full, rejected {item.type.value} item from {item.platform}")
                return False

            heapq.heappush(self._queue, PriorityItem(item.priority, next(self._sequence), item))
            self._items[item.id] = item
            logger.debug(f"Queued {item.type.value} item {item.id} (priority={item.priority})")

            # Idle queue: claim the next item while still holding the lock
            next_item = self._pop_next() if self._current_item is None else None

        self._notify_queue_update()
        if next_item is not None:
            self._dispatch(next_item)

        return True

    def get_next(self) -> Optional[QueueItem]:
        """Get the next item from the queue."""
        with self._queue_lock:
            return self._pop_next()

    def _pop_next(self) -> Optional[QueueItem]:
        # Caller holds _queue_lock
        if not self._queue:
            return None
        item = heapq.heappop(self._queue).item
        self._items.pop(item.id, None)
        self._current_item = item
        return item

    def mark_complete(self, item_id: str):
        """Mark an item as displayed and send the next one."""
        with self._queue_lock:
            if self._current_item and self._current_item.id == item_id:
                logger.debug(f"Item completed: {item_id}")
                self._current_item = None
            else:
                logger.debug(f"Completion for unknown or stale item: {item_id}")
                return
            next_item = self._pop_next()

        if next_item is not None:
            self._dispatch(next_item)

    def skip_current(self):
        """Skip the currently displayed item."""
        with self._queue_lock:
            if self._current_item:
                logger.info(f"Skipping item: {self._current_item.id}")
                self._current_item = None
            next_item = self._pop_next()

        self._emit("skip", {})
        if next_item is not None:
            self._dispatch(next_item)

    def clear(self):
        """Clear all queued items."""
        with self._queue_lock:
            self._queue.clear()
            self._items.clear()
            logger.info("Queue cleared")

        self._notify_queue_update()

    def get_status(self) -> dict:
        """Get current queue status."""
        with self._queue_lock:
            return {
                "size": len(self._queue),
                "max_size": self.config.QUEUE_MAX_SIZE,
                "current": self._current_item.to_dict() if self._current_item else None,
                "pending": [entry.item.type.value for entry in sorted(self._queue)],
            }

    def get_item(self, item_id: str) -> Optional[QueueItem]:
        """Get an item by ID."""
        with self._queue_lock:
            if self._current_item and self._current_item.id == item_id:
                return self._current_item
            return self._items.get(item_id)

    def _dispatch(self, item: QueueItem):
        """Send an item to browser clients."""
        self._emit("display_item", item.to_dict())
        logger.info(f"Sent {item.type.value} item to browser: {item.id}")

    def _notify_queue_update(self):
        """Notify clients of queue status change."""
        self._emit("queue_update", self.get_status())

    def _emit(self, event: str, payload: dict):
        if self.socketio is None:
            return
        try:
            self.socketio.emit(event, payload, namespace="/")
        except Exception as e:
            logger.error(f"Failed to emit {event}: {e}")
