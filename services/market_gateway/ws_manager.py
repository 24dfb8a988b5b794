"""
WebSocket Subscriber Registry

Tracks live push connections for the real-time channel
"""

import weakref
from enum import Enum
from typing import Any, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class PushConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class SubscriberState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class SubscriberRegistry:
    """
    Registry of connected subscribers

    Holds weak references only: the transport layer owns each connection, and
    a connection that is garbage collected simply drops out of the registry.
    A subscriber moves to CLOSED on disconnect or on a failed send and is
    removed at that point.
    """

    def __init__(self):
        self._subscribers: "weakref.WeakKeyDictionary[PushConnection, SubscriberState]" = (
            weakref.WeakKeyDictionary()
        )

    def add(self, connection: PushConnection) -> None:
        """Register a newly accepted connection"""
        self._subscribers[connection] = SubscriberState.OPEN
        logger.info("client_connected", active_connections=len(self._subscribers))

    def remove(self, connection: PushConnection) -> None:
        """Drop a connection; no-op if it is not registered"""
        if self._subscribers.pop(connection, None) is not None:
            logger.info("client_disconnected", active_connections=len(self._subscribers))

    def state(self, connection: PushConnection) -> Optional[SubscriberState]:
        return self._subscribers.get(connection)

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, connection: object) -> bool:
        return connection in self._subscribers

    async def broadcast(self, message: dict) -> int:
        """
        Send message to every OPEN subscriber, at most once each

        Iterates a snapshot so removals during the loop are safe. A send
        failure closes and removes that subscriber; delivery to the others
        continues. Returns the number of successful sends.
        """
        snapshot = list(self._subscribers.keys())
        sent_count = 0
        failed = []

        for connection in snapshot:
            # Skip anything closed or removed since the snapshot was taken
            if self._subscribers.get(connection) is not SubscriberState.OPEN:
                continue
            try:
                await connection.send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning("broadcast_send_failed", error=str(e), message_type=message.get("type"))
                if connection in self._subscribers:
                    self._subscribers[connection] = SubscriberState.CLOSED
                failed.append(connection)

        for connection in failed:
            self.remove(connection)

        logger.debug(
            "message_broadcast_to_all",
            message_type=message.get("type"),
            sent_to=sent_count,
            removed=len(failed)
        )
        return sent_count

    def get_stats(self) -> dict:
        return {"active_connections": len(self._subscribers)}
