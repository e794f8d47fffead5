"""
Realtime event transport for WireKVS SDK.

This module owns the persistent WebSocket connection for one database:
it performs the handshake, runs the receive loop, decodes frames and
hands each event to the database's EventHub.

It is internal to the SDK. Users should go through WireKVSDatabase.

Invariants:
    - Exactly one connection and one receive task per session
    - The receive task is the only publisher into its hub
    - Malformed frames are logged and dropped, never fatal
    - The connection is released on every exit path
    - Disconnection is terminal; there is no automatic reconnect
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Awaitable, Callable, Protocol, Union
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import Settings
from .errors import ConnectError, DecodeError, HubClosedError
from .hub import EventHub, JsonValue

if TYPE_CHECKING:
    from .client import DatabaseIdentity

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of an event socket."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class EventConnection(Protocol):
    """The subset of a websockets client connection the session uses."""

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[EventConnection]]


def build_events_url(base_url: str, database_id: str, access_key: str) -> str:
    """Build the event socket URL for a database.

    The access key is fully percent-encoded so it is safe inside the
    query component.

    Example:
        >>> build_events_url("wss://kvs.wireway.ch/events", "db1", "a/b+c")
        'wss://kvs.wireway.ch/events/db1?accessKey=a%2Fb%2Bc'
    """
    return (
        f"{base_url.rstrip('/')}/{quote(database_id, safe='')}"
        f"?accessKey={quote(access_key, safe='')}"
    )


def decode_event(frame: Union[str, bytes]) -> JsonValue:
    """Decode one text or binary frame into an event document.

    Raises:
        DecodeError: If the frame is not UTF-8 encoded JSON
    """
    if isinstance(frame, (bytes, bytearray, memoryview)):
        try:
            text = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Event frame is not valid UTF-8: {e.reason}", len(frame)) from e
    else:
        text = frame

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Event frame is not valid JSON: {e.msg}", len(text)) from e
    except RecursionError as e:
        raise DecodeError("Event frame is nested too deeply", len(text)) from e


async def _connect_websocket(url: str, *, settings: Settings) -> EventConnection:
    return await websockets.connect(
        url,
        open_timeout=settings.connect_timeout,
        close_timeout=settings.close_timeout,
        max_size=settings.max_frame_size,
    )


class TransportSession:
    """One persistent event socket feeding one EventHub.

    Example:
        >>> hub = EventHub()
        >>> session = await TransportSession.open(identity, hub)
        >>> ...
        >>> await session.close()
    """

    def __init__(
        self,
        identity: DatabaseIdentity,
        hub: EventHub,
        *,
        settings: Settings | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize an unopened session.

        Args:
            identity: Database id and access key
            hub: Hub that receives decoded events
            settings: SDK settings (endpoints, timeouts)
            connector: Optional coroutine factory ``url -> connection``;
                defaults to ``websockets.connect``
        """
        self._identity = identity
        self._hub = hub
        self._settings = settings or Settings()
        self._connector = connector or partial(_connect_websocket, settings=self._settings)
        self._connection: EventConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._state = ConnectionState.DISCONNECTED
        self._failure_reason: str | None = None
        self._started = False
        self.frames_received = 0
        self.decode_errors = 0

    @classmethod
    async def open(
        cls,
        identity: DatabaseIdentity,
        hub: EventHub,
        *,
        settings: Settings | None = None,
        connector: Connector | None = None,
    ) -> TransportSession:
        """Create a session and complete its handshake.

        Raises:
            ConnectError: If the handshake fails
        """
        session = cls(identity, hub, settings=settings, connector=connector)
        await session.start()
        return session

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def failure_reason(self) -> str | None:
        """Why the handshake or the stream failed, if it did."""
        return self._failure_reason

    @property
    def url(self) -> str:
        """Event socket URL with the access key redacted."""
        base = build_events_url(self._settings.events_url, self._identity.id, "")
        return f"{base}***"

    async def start(self) -> None:
        """Perform the handshake and start the receive task.

        Raises:
            ConnectError: If DNS, TLS, or the handshake fails
            RuntimeError: If the session was already started
        """
        if self._started:
            raise RuntimeError(f"Session already started (state {self._state.value})")
        self._started = True

        url = build_events_url(
            self._settings.events_url, self._identity.id, self._identity.access_key
        )
        self._state = ConnectionState.CONNECTING
        try:
            self._connection = await self._connector(url)
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            self._state = ConnectionState.FAILED
            self._failure_reason = str(e) or type(e).__name__
            logger.warning(
                f"Event socket handshake failed: {self._failure_reason}",
                extra={"database_id": self._identity.id},
            )
            raise ConnectError(self._failure_reason, database_id=self._identity.id) from e

        self._state = ConnectionState.CONNECTED
        self._task = asyncio.create_task(
            self._receive_loop(), name=f"wirekvs-events-{self._identity.id}"
        )
        logger.info(f"Connected event stream at {self.url}")

    async def _receive_loop(self) -> None:
        connection = self._connection
        assert connection is not None
        try:
            while True:
                frame = await connection.recv()
                self.frames_received += 1
                try:
                    event = decode_event(frame)
                except DecodeError as e:
                    self.decode_errors += 1
                    logger.warning(
                        f"Dropping malformed event frame: {e.message}",
                        extra={"database_id": self._identity.id, "frame_size": e.frame_size},
                    )
                    continue
                self._hub.publish(event)
        except ConnectionClosed as e:
            logger.info(
                f"Event stream closed by remote: {e}",
                extra={"database_id": self._identity.id},
            )
        except HubClosedError:
            logger.debug("Event hub closed, stopping receive loop")
        except (WebSocketException, OSError) as e:
            self._failure_reason = str(e) or type(e).__name__
            logger.error(
                f"Event stream failed: {self._failure_reason}",
                exc_info=True,
                extra={"database_id": self._identity.id},
            )
        except Exception as e:
            self._failure_reason = str(e) or type(e).__name__
            logger.error(
                f"Event receive loop crashed: {self._failure_reason}",
                exc_info=True,
                extra={"database_id": self._identity.id},
            )
        finally:
            self._state = ConnectionState.DISCONNECTED
            self._hub.close()
            await self._release_connection()

    async def _release_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error while closing event socket: {e}")

    async def wait_closed(self) -> None:
        """Wait until the receive loop has exited."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def close(self) -> None:
        """Stop the receive task and release the connection. Idempotent."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._release_connection()
        self._hub.close()
        if self._state is not ConnectionState.FAILED:
            self._state = ConnectionState.DISCONNECTED
        logger.debug("Event session closed", extra={"database_id": self._identity.id})

    def abort(self) -> None:
        """Cancel the receive task without waiting.

        Used when the owning handle is garbage collected without close();
        the task's cleanup still releases the connection.
        """
        task = self._task
        if task is not None and not task.done() and not task.get_loop().is_closed():
            task.cancel()
