"""
WireKVS Client for Python SDK.

This module provides the main client interface:
- WireKVS: Account-level client (list/create/delete databases)
- WireKVSDatabase: Handle for one database (CRUD + realtime events)
- DatabaseIdentity: Database id and access key
- DatabaseVisibility: Public access flags for new databases

Example:
    >>> async with WireKVS(token) as client:
    ...     created = await client.create_database("Demo")
    ...     async with await client.database(created["kvsId"], created["accessKey"]) as db:
    ...         sub = db.subscribe()
    ...         await db.set("greeting", "Hello, World!")
    ...         event = await sub.recv()

Invariants:
    - A WireKVSDatabase is only usable after its event socket handshake
    - Each database handle owns exactly one event socket and one hub
    - CRUD calls are independent of the event stream
    - Closing a database handle closes all of its subscriptions
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from ._rest_client import RestClient, path_segment
from ._transport import ConnectionState, Connector, TransportSession
from .config import Settings
from .errors import ConnectError
from .hub import EventHub, JsonValue, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseIdentity:
    """Identity of one database.

    Attributes:
        id: Database identifier (``kvsId``)
        access_key: Secret used for REST calls and the event socket
    """

    id: str
    access_key: str = field(repr=False)


@dataclass(frozen=True)
class DatabaseVisibility:
    """Public access flags for a new database. All default to False."""

    allow_public_writes: bool = False
    allow_public_reads: bool = False
    allow_public_modifications: bool = False
    allow_specific_public_reads: bool = False

    @classmethod
    def from_mapping(cls, config: Mapping[str, bool]) -> DatabaseVisibility:
        """Build from the API's camelCase flag names; unknown keys are ignored."""
        return cls(
            allow_public_writes=bool(config.get("allowPublicWrites", False)),
            allow_public_reads=bool(config.get("allowPublicReads", False)),
            allow_public_modifications=bool(config.get("allowPublicModifications", False)),
            allow_specific_public_reads=bool(config.get("allowSpecificPublicReads", False)),
        )

    def to_payload(self) -> dict[str, bool]:
        return {
            "allowPublicWrites": self.allow_public_writes,
            "allowPublicReads": self.allow_public_reads,
            "allowPublicModifications": self.allow_public_modifications,
            "allowSpecificPublicReads": self.allow_specific_public_reads,
        }


_closing: set[asyncio.Task[None]] = set()


def _teardown(session: TransportSession, hub: EventHub, rest: RestClient) -> None:
    hub.close()
    session.abort()
    if not rest.owns_client:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop; owned HTTP client left for interpreter shutdown")
        return
    # The loop only holds weak references to tasks
    task = loop.create_task(rest.close())
    _closing.add(task)
    task.add_done_callback(_closing.discard)


class WireKVSDatabase:
    """Handle for one WireKVS database.

    Combines the database identity, one realtime event socket and one
    event hub, and exposes CRUD calls over REST. Use ``open()`` (or
    ``WireKVS.database()``) to get a connected handle.

    Example:
        >>> async with await WireKVSDatabase.open("db-id", "access-key") as db:
        ...     sub = db.subscribe()
        ...     await db.set("number", "42")
        ...     print(await db.get("number"))
    """

    def __init__(
        self,
        database_id: str,
        access_key: str,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize an unconnected handle.

        Args:
            database_id: Database identifier
            access_key: Database access key
            settings: SDK settings (endpoints, buffer size, timeouts)
            http_client: Optional shared httpx client for REST calls
            connector: Optional event socket connector (for tests or proxies)
        """
        self._identity = DatabaseIdentity(database_id, access_key)
        self._settings = settings or Settings()
        self._rest = RestClient(
            self._settings.api_url,
            timeout=self._settings.request_timeout,
            http_client=http_client,
        )
        self._hub = EventHub(capacity=self._settings.event_buffer_size)
        self._session = TransportSession(
            self._identity, self._hub, settings=self._settings, connector=connector
        )
        self._connected = False
        self._finalizer = weakref.finalize(
            self, _teardown, self._session, self._hub, self._rest
        )

    @classmethod
    async def open(
        cls,
        database_id: str,
        access_key: str,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
    ) -> WireKVSDatabase:
        """Create a handle and complete the event socket handshake.

        Raises:
            ConnectError: If the handshake fails; nothing is left open
        """
        db = cls(
            database_id,
            access_key,
            settings=settings,
            http_client=http_client,
            connector=connector,
        )
        await db.connect()
        return db

    @property
    def id(self) -> str:
        return self._identity.id

    @property
    def identity(self) -> DatabaseIdentity:
        return self._identity

    @property
    def state(self) -> ConnectionState:
        """Current event socket state."""
        return self._session.state

    @property
    def is_connected(self) -> bool:
        return self._session.state is ConnectionState.CONNECTED

    async def connect(self) -> None:
        """Open the event socket.

        Raises:
            ConnectError: If the handshake fails
        """
        if self._connected:
            return

        try:
            await self._session.start()
        except ConnectError:
            await self.close()
            raise
        self._connected = True

    async def close(self) -> None:
        """Close the event socket, the hub and owned HTTP resources. Idempotent."""
        await self._session.close()
        self._hub.close()
        await self._rest.close()
        self._finalizer.detach()
        if self._connected:
            logger.info(f"Closed database handle {self._identity.id}")
        self._connected = False

    async def __aenter__(self) -> WireKVSDatabase:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("Not connected. Call connect() first.")

    def subscribe(self) -> Subscription:
        """Subscribe to realtime database events.

        Each subscription receives every event published after it was
        created, independently of other subscriptions.

        Raises:
            HubClosedError: If the event stream has already ended
        """
        self._ensure_connected()
        return self._hub.subscribe()

    def _path(self, key: str | None = None) -> str:
        path = f"/database/{path_segment(self._identity.id)}"
        if key is not None:
            path += f"/{path_segment(key)}"
        return path

    async def get_all_entries(self) -> JsonValue:
        """Get all entries in the database."""
        self._ensure_connected()
        return await self._rest.request(
            "GET", self._path(), credential=self._identity.access_key
        )

    async def get(self, key: str) -> JsonValue:
        """Get the value stored under a key.

        Raises:
            RequestError: If the request fails
        """
        self._ensure_connected()
        return await self._rest.request(
            "GET", self._path(key), credential=self._identity.access_key
        )

    async def set(self, key: str, value: JsonValue) -> None:
        """Store a JSON value under a key.

        Raises:
            RequestError: If the request fails
        """
        self._ensure_connected()
        await self._rest.request(
            "POST",
            self._path(key),
            credential=self._identity.access_key,
            body=value,
            expect_json=False,
        )

    async def delete(self, key: str) -> None:
        """Delete a key.

        Raises:
            RequestError: If the request fails
        """
        self._ensure_connected()
        await self._rest.request(
            "DELETE",
            self._path(key),
            credential=self._identity.access_key,
            expect_json=False,
        )


class WireKVS:
    """Account-level client for WireKVS.

    Manages databases with an account token and produces connected
    database handles.

    Example:
        >>> async with WireKVS("auth-token") as client:
        ...     databases = await client.list_databases()
    """

    def __init__(
        self,
        token: str,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize client.

        Args:
            token: Account auth token
            settings: SDK settings
            http_client: Optional shared httpx client; also handed to
                database handles created by this client
            connector: Optional event socket connector for database handles
        """
        self._token = token
        self._settings = settings or Settings()
        self._http_client = http_client
        self._connector = connector
        self._rest = RestClient(
            self._settings.api_url,
            timeout=self._settings.request_timeout,
            http_client=http_client,
        )

    async def close(self) -> None:
        """Close owned HTTP resources."""
        await self._rest.close()

    async def __aenter__(self) -> WireKVS:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def list_databases(self) -> JsonValue:
        """List all databases of the authenticated account."""
        return await self._rest.request("GET", "/databases", credential=self._token)

    async def create_database(
        self,
        name: str,
        visibility: DatabaseVisibility | Mapping[str, bool] | None = None,
    ) -> JsonValue:
        """Create a database.

        Args:
            name: Display name
            visibility: Public access flags, as DatabaseVisibility or a
                mapping of camelCase flag names; unset flags are False

        Returns:
            The created database document (includes ``kvsId`` and ``accessKey``)
        """
        if visibility is None:
            visibility = DatabaseVisibility()
        elif not isinstance(visibility, DatabaseVisibility):
            visibility = DatabaseVisibility.from_mapping(visibility)

        body = {"name": name, **visibility.to_payload()}
        created = await self._rest.request(
            "POST", "/database", credential=self._token, body=body
        )
        logger.info(f"Created database {name!r}")
        return created

    async def delete_database(self, database_id: str) -> None:
        """Delete a database by id."""
        await self._rest.request(
            "DELETE",
            f"/database/{path_segment(database_id)}",
            credential=self._token,
            expect_json=False,
        )
        logger.info(f"Deleted database {database_id}")

    async def database(self, database_id: str, access_key: str) -> WireKVSDatabase:
        """Get a connected handle for one database.

        Raises:
            ConnectError: If the event socket handshake fails
        """
        return await WireKVSDatabase.open(
            database_id,
            access_key,
            settings=self._settings,
            http_client=self._http_client,
            connector=self._connector,
        )
