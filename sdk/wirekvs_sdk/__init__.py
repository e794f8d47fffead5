"""
WireKVS Python SDK - Client library for the WireKVS key-value service.

This SDK provides an async interface to hosted WireKVS databases:
- WireKVS for account-level database management
- WireKVSDatabase for CRUD calls and realtime change events
- EventHub/Subscription for fanning events out to many consumers

Example:
    >>> from wirekvs_sdk import WireKVSDatabase
    >>>
    >>> async with await WireKVSDatabase.open("database-id", "access-key") as db:
    ...     sub = db.subscribe()
    ...     await db.set("greeting", "Hello!")
    ...     async for event in sub:
    ...         print(event)

Invariants:
    - Every subscriber sees events in the order the server sent them
    - Slow subscribers are told how many events they missed
    - Closing a database handle ends all of its subscriptions

Version: 1.0.0
"""

__version__ = "1.0.0"

from ._transport import ConnectionState, build_events_url, decode_event
from .client import DatabaseIdentity, DatabaseVisibility, WireKVS, WireKVSDatabase
from .config import Settings
from .errors import (
    ConnectError,
    DecodeError,
    HubClosedError,
    LaggedError,
    RequestError,
    WireKVSError,
)
from .hub import EventHub, JsonValue, Subscription

__all__ = [
    # Version
    "__version__",
    # Client
    "WireKVS",
    "WireKVSDatabase",
    "DatabaseIdentity",
    "DatabaseVisibility",
    "ConnectionState",
    # Events
    "EventHub",
    "Subscription",
    "JsonValue",
    "build_events_url",
    "decode_event",
    # Config
    "Settings",
    # Errors
    "WireKVSError",
    "ConnectError",
    "DecodeError",
    "RequestError",
    "HubClosedError",
    "LaggedError",
]
