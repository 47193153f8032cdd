"""
In-process change feed for scans and vulnerabilities.

Writers publish after commit; subscribers (SSE clients) re-fetch whatever
the invalidation keys point at. Pipeline runs execute in worker threads,
so publishing hops onto the event loop with call_soon_threadsafe.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

QUEUE_SIZE = 20


def invalidation_keys(table: str, entity_id: Any, scan_id: Optional[str]) -> List[str]:
    """Cache keys a client should drop when a row of `table` changes."""
    if table == "scans":
        return ["scans", f"scan:{entity_id}", "dashboard"]
    keys = [table, f"{table}:{scan_id}", f"vulnerability:{entity_id}"]
    if scan_id:
        keys.append(f"scan:{scan_id}")
    keys.append("dashboard")
    return keys


def build_event(table: str, change_type: str, entity_id: Any, scan_id: Optional[str] = None,
                data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "table": table,
        "type": change_type,
        "id": entity_id,
        "scan_id": scan_id,
        "invalidate": invalidation_keys(table, entity_id, scan_id),
        "data": data or {},
    }


class ChangeFeed:
    """Manage subscriptions and delivery for row change events."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[Dict[str, Any]]] = set()
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def subscribe(self) -> asyncio.Queue[Dict[str, Any]]:
        """Register a new subscriber queue bound to the running loop."""
        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=QUEUE_SIZE)
        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Dict[str, Any]]) -> None:
        with self._lock:
            self._subscribers.discard(queue)

    def publish(self, event: Dict[str, Any]) -> None:
        """Fire-and-forget delivery, safe to call from any thread."""
        with self._lock:
            loop = self._loop
            has_subscribers = bool(self._subscribers)
        if not has_subscribers or loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.debug("Change feed loop closed, dropping event for %s %s", event.get("table"), event.get("id"))

    def _deliver(self, event: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        stalled = []
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop the oldest event to make room for the latest change
                try:
                    queue.get_nowait()
                    queue.put_nowait(event)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    stalled.append(queue)

        if stalled:
            with self._lock:
                for queue in stalled:
                    self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


change_feed = ChangeFeed()


def publish_change(table: str, change_type: str, entity_id: Any, scan_id: Optional[str] = None,
                   data: Optional[Dict[str, Any]] = None) -> None:
    change_feed.publish(build_event(table, change_type, entity_id, scan_id, data))
