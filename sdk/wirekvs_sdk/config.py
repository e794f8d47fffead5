"""
Configuration for WireKVS SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SDK configuration loaded from environment."""

    # Service endpoints
    api_url: str = Field(
        default="https://kvs.wireway.ch/v2", description="Base URL of the REST API"
    )
    events_url: str = Field(
        default="wss://kvs.wireway.ch/events", description="Base URL of the event socket"
    )

    # Event fan-out
    event_buffer_size: int = Field(
        default=100, ge=1, description="Events buffered per database handle"
    )

    # Timeouts (seconds)
    connect_timeout: float = Field(default=10.0, description="Event socket handshake timeout")
    request_timeout: float = Field(default=30.0, description="REST request timeout")
    close_timeout: float = Field(default=5.0, description="Event socket close timeout")

    # Socket limits
    max_frame_size: int = Field(
        default=1024 * 1024, description="Largest accepted event frame in bytes"
    )

    model_config = {"env_prefix": "WIREKVS_"}
