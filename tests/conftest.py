"""
Shared fixtures for WireKVS SDK tests.
"""

import httpx
import pytest
import pytest_asyncio

from wirekvs_sdk.config import Settings

from tests.fakes import API_URL, EVENTS_URL, FakeConnector, FakeEventConnection, FakeKVSServer


@pytest.fixture
def settings():
    """Settings pointing at the fake endpoints."""
    return Settings(api_url=API_URL, events_url=EVENTS_URL)


@pytest.fixture
def connection():
    """Fake event socket connection."""
    return FakeEventConnection()


@pytest.fixture
def connector(connection):
    """Connector returning the fake connection."""
    return FakeConnector(connection)


@pytest.fixture
def server():
    """Fake REST API with one database."""
    server = FakeKVSServer()
    server.add_database("db-1", "key-1")
    return server


@pytest_asyncio.fixture
async def http_client(server):
    """httpx client routed to the fake REST API."""
    async with httpx.AsyncClient(transport=server.transport()) as client:
        yield client
