"""Change notification fan-out to connected WebSocket subscribers."""

import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)

DATA_UPDATE = {"type": "DATA_UPDATE"}


class Broadcaster:
    """Registry of open subscriber sockets.

    The signal is global: every subscriber hears about every change and is
    expected to re-fetch. Delivery is best-effort and nothing is replayed to
    late joiners.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._subscribers: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept the socket and start delivering notifications to it."""
        await websocket.accept()
        async with self._lock:
            self._subscribers.add(websocket)
        logger.info("Subscriber connected (%d total)", self.subscriber_count)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers.discard(websocket)
        logger.info("Subscriber disconnected (%d total)", self.subscriber_count)

    async def _send(self, websocket: WebSocket) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(DATA_UPDATE), self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("Dropping subscriber after send timed out (%.1fs)", self.send_timeout)
        except Exception as e:
            logger.debug("Dropping subscriber after failed send: %s", e)
        return False

    async def notify(self) -> int:
        """Send DATA_UPDATE to every subscriber. Returns how many sends succeeded.

        Sends run concurrently; a subscriber that does not accept the frame
        within ``send_timeout`` seconds is treated as failed and dropped.
        """
        async with self._lock:
            targets = list(self._subscribers)

        results = await asyncio.gather(*(self._send(ws) for ws in targets))
        failed = [ws for ws, ok in zip(targets, results) if not ok]

        if failed:
            async with self._lock:
                self._subscribers.difference_update(failed)

        delivered = len(targets) - len(failed)
        logger.debug("Broadcast DATA_UPDATE to %d/%d subscribers", delivered, len(targets))
        return delivered
