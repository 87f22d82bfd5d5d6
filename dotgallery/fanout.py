"""Refresh-signal fanout to connected viewers."""

from __future__ import annotations

import asyncio
from typing import List, Protocol, Set

from .logging import get_logger


class ViewerConnection(Protocol):
    """An open channel to one browser."""

    async def send_refresh(self) -> None:
        ...


class NotificationFanout:
    """Signals every connected viewer to re-fetch the registry snapshot.

    Signals carry no payload. A viewer whose send fails or times out is
    dropped; it re-syncs by reconnecting.
    """

    def __init__(self, *, send_timeout: float | None = 5.0) -> None:
        self.send_timeout = send_timeout
        self.signals_sent = 0
        self._connections: Set[ViewerConnection] = set()
        self.logger = get_logger("fanout")

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscribe(self, connection: ViewerConnection) -> None:
        self._connections.add(connection)
        self.logger.info("Viewer connected (%d open)", len(self._connections))

    def unsubscribe(self, connection: ViewerConnection) -> None:
        if connection in self._connections:
            self._connections.discard(connection)
            self.logger.info("Viewer disconnected (%d open)", len(self._connections))

    async def broadcast(self) -> None:
        """Send one refresh signal to every open connection."""
        self.signals_sent += 1
        connections: List[ViewerConnection] = list(self._connections)
        if not connections:
            return
        self.logger.debug("Refreshing %d viewer(s)", len(connections))
        results = await asyncio.gather(
            *(self._send(connection) for connection in connections),
            return_exceptions=True,
        )
        for connection, result in zip(connections, results):
            if isinstance(result, Exception):
                self.logger.warning("Dropping viewer after failed refresh: %s", result)
                self.unsubscribe(connection)

    async def _send(self, connection: ViewerConnection) -> None:
        if self.send_timeout is None:
            await connection.send_refresh()
        else:
            await asyncio.wait_for(connection.send_refresh(), timeout=self.send_timeout)


__all__ = ["NotificationFanout", "ViewerConnection"]
