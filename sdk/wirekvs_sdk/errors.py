"""
Error types for WireKVS SDK.

This module defines all exception types raised by the SDK:
- WireKVSError: Base exception
- ConnectError: Event socket handshake failures
- DecodeError: Malformed event frames
- RequestError: REST call failures
- HubClosedError: Receiving from a closed event hub
- LaggedError: Subscriber fell behind the hub buffer

Invariants:
    - All errors inherit from WireKVSError
    - Errors include context for debugging
    - Access keys and tokens never appear in messages or details
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class WireKVSError(Exception):
    """Base exception for all WireKVS SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "WIREKVS_ERROR"
        self.details = details or {}


class ConnectError(WireKVSError):
    """Failed to open the realtime event socket.

    Raised when:
    - DNS resolution or TCP connect fails
    - TLS negotiation fails
    - The server rejects the handshake (e.g. bad access key)

    Failure is terminal for that connection attempt.
    """

    def __init__(
        self,
        reason: str,
        database_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Failed to connect event stream: {reason}",
            code="CONNECT_ERROR",
            details={"database_id": database_id, "reason": reason},
        )
        self.reason = reason
        self.database_id = database_id


class DecodeError(WireKVSError):
    """An inbound event frame could not be decoded.

    Never fatal: the receive loop logs it and keeps going.
    """

    def __init__(
        self,
        message: str,
        frame_size: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"frame_size": frame_size},
        )
        self.frame_size = frame_size


class RequestError(WireKVSError):
    """A REST call failed.

    Raised when:
    - The request could not be sent (network, timeout)
    - The server answered with a non-2xx status
    - The response body is not valid JSON

    Attributes:
        method: HTTP method
        url: Request URL
        status_code: HTTP status if a response was received
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="REQUEST_ERROR",
            details={"method": method, "url": url, "status_code": status_code},
        )
        self.method = method
        self.url = url
        self.status_code = status_code


class HubClosedError(WireKVSError):
    """The event hub behind a subscription has been closed.

    Raised when:
    - The owning database handle was closed or garbage collected
    - The remote side closed the event socket
    """

    def __init__(self, message: str = "Event hub is closed") -> None:
        super().__init__(message, code="HUB_CLOSED")


class LaggedError(WireKVSError):
    """The subscriber was too slow and missed events.

    Informational: the subscription is still usable and resumes at the
    oldest event still buffered.

    Attributes:
        missed: Number of events that were dropped for this subscriber
    """

    def __init__(self, missed: int) -> None:
        super().__init__(
            f"Subscriber lagged behind and missed {missed} events",
            code="LAGGED",
            details={"missed": missed},
        )
        self.missed = missed
