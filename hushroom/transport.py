# hushroom/transport.py
# Broadcast Transport: delivers outbound events to attached WebSocket connections.
#
# Each attached connection gets an outbox queue drained by its own writer task, so a connection
# observes events in the order they were submitted while a slow or dead connection never holds up
# delivery to the others. Submitting an event never awaits; only the writer tasks do I/O.

import asyncio
import logging

from websockets.exceptions import ConnectionClosed

from . import config
from .protocol import SCOPE_ALL, SCOPE_EXCEPT, SCOPE_ONLY, encode_frame

# Queued after the last event of a detached connection; tells its writer task to stop.
_CLOSE = object()


class Outbox:
    """Ordered send queue for a single connection, holding at most `limit` frames."""

    def __init__(self, connection_id, websocket, limit=0):
        self.connection_id = connection_id
        self.websocket = websocket
        self.queue = asyncio.Queue(maxsize=limit)
        self.closed = False
        self.task = asyncio.create_task(self._drain(), name=f"outbox-{connection_id}")

    def put(self, frame):
        """Queues a frame. Returns False if the queue is full."""
        if self.closed:
            return True
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        if not self.closed:
            self.closed = True
            try:
                self.queue.put_nowait(_CLOSE)
            except asyncio.QueueFull:
                # Full queue: the backlog is dropped and the writer stopped.
                self.task.cancel()

    async def _drain(self):
        while True:
            frame = await self.queue.get()
            if frame is _CLOSE:
                return
            try:
                if config.DEBUG:
                    logging.info(f"Sending to {self.connection_id}: {frame}")
                await self.websocket.send(frame)
            except ConnectionClosed:
                # Expected when the client vanished; whatever is still queued for it is dropped.
                logging.warning(f"Failed to send to {self.connection_id} because connection is closed.")
                self.closed = True
                return
            except Exception:
                logging.exception(f"Unexpected error sending to {self.connection_id}")


class Broadcaster:
    """
    Keeps the set of attached connections and fans events out to them.

    Args:
        outbox_limit (int | None): Per-connection queue size; overrides config.OUTBOX_LIMIT.
            A connection whose queue overflows is detached and closed with code 1008.
    """

    def __init__(self, outbox_limit=None):
        self.outbox_limit = config.OUTBOX_LIMIT if outbox_limit is None else outbox_limit
        self._outboxes = {}
        self._closing = set()

    def attach(self, connection_id, websocket):
        self._outboxes[connection_id] = Outbox(connection_id, websocket, self.outbox_limit)

    def detach(self, connection_id):
        """
        Stops delivering to a connection. Events already queued for it are still flushed by its
        writer if the socket allows. Safe to call more than once.
        """
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            outbox.close()
        return outbox

    def connection_ids(self):
        return list(self._outboxes)

    def __len__(self):
        return len(self._outboxes)

    def _put(self, connection_id, outbox, frame):
        if outbox.put(frame):
            return
        logging.warning(f"Outbox for {connection_id} is full ({self.outbox_limit} events). Disconnecting slow client.")
        self.detach(connection_id)
        task = asyncio.create_task(self._close_slow(outbox.websocket))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_slow(self, websocket):
        try:
            await websocket.close(1008, "Outbound queue overflow")
        except Exception:
            logging.exception("Unexpected error closing slow client")

    def send(self, connection_id, event, data):
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            if config.DEBUG:
                logging.info(f"Dropping '{event}' for detached connection {connection_id}")
            return
        self._put(connection_id, outbox, encode_frame(event, data))

    def broadcast_all(self, event, data):
        frame = encode_frame(event, data)
        for connection_id, outbox in list(self._outboxes.items()):
            self._put(connection_id, outbox, frame)

    def broadcast_except(self, sender_id, event, data):
        frame = encode_frame(event, data)
        for connection_id, outbox in list(self._outboxes.items()):
            if connection_id != sender_id:
                self._put(connection_id, outbox, frame)

    def deliver(self, outbounds):
        """Submits the router's Outbound events in order."""
        for outbound in outbounds:
            if outbound.scope == SCOPE_ALL:
                self.broadcast_all(outbound.event, outbound.payload)
            elif outbound.scope == SCOPE_EXCEPT:
                self.broadcast_except(outbound.connection_id, outbound.event, outbound.payload)
            elif outbound.scope == SCOPE_ONLY:
                self.send(outbound.connection_id, outbound.event, outbound.payload)
            else:
                logging.error(f"Unknown delivery scope '{outbound.scope}' for event '{outbound.event}'")

    async def close(self):
        """Detaches every connection and waits for the writer tasks to finish."""
        outboxes = [self.detach(connection_id) for connection_id in list(self._outboxes)]
        tasks = [outbox.task for outbox in outboxes if outbox is not None]
        tasks.extend(self._closing)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
