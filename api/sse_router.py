"""
Server-Sent Events (SSE) Router — live directory updates.

Streams the caller's change feed. Each event carries the FULL current state
of one collection, so a client that misses an event only needs the next one:
  - members:       list of members (alphabetical)
  - guests:        list of guests (most recent visit first)
  - last_scan:     the last scan snapshot, or null
  - system_status: heartbeat every 30 seconds

The first three events arrive immediately on connect (initial state).

EventSource cannot send headers; pass the token as ?api_token=...

Usage in server.py:
    from api.sse_router import sse_router
    app.include_router(sse_router, prefix="/api")
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from functools import partial
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.directory_router import get_directory
from roster.directory import Directory
from roster.events import COLLECTIONS, GUESTS, MEMBERS

logger = logging.getLogger(__name__)

sse_router = APIRouter(tags=["Events"])

HEARTBEAT_SECONDS = 30
IDLE_TIMEOUT_SECONDS = 60
HEARTBEAT = "system_status"


@dataclass
class Event:
    """Represents a single event on the stream."""

    id: str
    event_type: str
    data: Any
    timestamp: str

    def to_sse(self) -> str:
        """Format event as SSE message."""
        lines = [
            f"id: {self.id}",
            f"event: {self.event_type}",
            f"data: {json.dumps(self.data, ensure_ascii=False)}",
        ]
        return "\n".join(lines) + "\n\n"

    def to_dict(self) -> dict:
        return asdict(self)


def _create_event(event_type: str, data: Any) -> Event:
    return Event(
        id=str(uuid4()),
        event_type=event_type,
        data=data,
        timestamp=datetime.now().isoformat(),
    )


def serialize_collection(collection: str, payload: Any) -> Any:
    """Wire form of a change-feed payload."""
    if collection in (MEMBERS, GUESTS):
        return [item.to_dict() for item in payload]
    return payload.to_dict() if payload is not None else None


class FeedBridge:
    """
    Forwards one owner's change feed into an asyncio.Queue.

    Feed callbacks run on whatever thread did the write (usually a threadpool
    worker), so events are handed to the loop with call_soon_threadsafe.
    Every event is a full state, so pending events are coalesced per event
    type: the queue holds event types, and a newer event replaces the one
    still waiting under its type. The queue never holds more than one entry
    per type, and the last state of each collection is always delivered.
    """

    def __init__(self, directory: Directory, loop: asyncio.AbstractEventLoop | None = None):
        self.directory = directory
        self.queue: asyncio.Queue[str] = asyncio.Queue()
        self._pending: dict[str, Event] = {}
        self._loop = loop or asyncio.get_running_loop()
        self._unsubscribers: list[Callable[[], None]] = []

    def start(self) -> None:
        for collection in COLLECTIONS:
            self._unsubscribers.append(
                self.directory.subscribe(collection, partial(self._on_change, collection))
            )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _on_change(self, collection: str, payload: Any) -> None:
        event = _create_event(collection, serialize_collection(collection, payload))
        try:
            self._loop.call_soon_threadsafe(self.put, event)
        except RuntimeError:
            logger.debug("SSE loop closed; dropping event")

    def put(self, event: Event) -> None:
        if event.event_type in self._pending:
            if event.event_type != HEARTBEAT:
                self._pending[event.event_type] = event
            return
        self._pending[event.event_type] = event
        self.queue.put_nowait(event.event_type)

    async def get(self) -> Event:
        event_type = await self.queue.get()
        return self._pending.pop(event_type)

    def drain(self) -> list[Event]:
        """Take every pending event without waiting, in queue order."""
        events = []
        while not self.queue.empty():
            events.append(self._pending.pop(self.queue.get_nowait()))
        return events


async def _event_stream(bridge: FeedBridge) -> AsyncGenerator[str, None]:
    """
    Generate SSE stream with heartbeat.

    Emits events from the bridge and sends a heartbeat every 30 seconds to
    keep the connection alive.
    """
    heartbeat_task = None
    try:

        async def send_heartbeat():
            while True:
                await asyncio.sleep(HEARTBEAT_SECONDS)
                bridge.put(_create_event(HEARTBEAT, {"status": "connected"}))

        heartbeat_task = asyncio.create_task(send_heartbeat())

        while True:
            try:
                event = await asyncio.wait_for(bridge.get(), timeout=IDLE_TIMEOUT_SECONDS)
                yield event.to_sse()
            except TimeoutError:
                logger.debug("SSE stream idle timeout")
                break
    finally:
        if heartbeat_task:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
        bridge.close()


@sse_router.get("/events/stream")
async def stream_events(directory: Directory = Depends(get_directory)) -> StreamingResponse:
    """
    Server-Sent Events endpoint for live directory data.

    Returns SSE stream with members, guests, last_scan and system_status events.
    """
    bridge = FeedBridge(directory)
    try:
        bridge.start()
    except Exception:
        bridge.close()
        raise
    logger.info(f"SSE stream opened for owner {directory.owner_id}")
    return StreamingResponse(
        _event_stream(bridge),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
