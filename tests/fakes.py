"""
Fakes for the SDK's external collaborators.

- FakeEventConnection / FakeConnector: in-memory event socket
- FakeKVSServer: REST API served through httpx.MockTransport
"""

import asyncio
import itertools
import json
from urllib.parse import unquote

import httpx
from websockets.exceptions import ConnectionClosedOK

API_URL = "https://kvs.test/v2"
EVENTS_URL = "wss://kvs.test/events"

_REMOTE_CLOSE = object()


class FakeEventConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self._frames = asyncio.Queue()
        self.close_calls = 0

    def feed(self, frame):
        """Queue a raw text or binary frame."""
        self._frames.put_nowait(frame)

    def feed_event(self, event):
        """Queue a JSON-encoded event frame."""
        self.feed(json.dumps(event))

    def remote_close(self):
        """Make the next recv() report a normal close from the server."""
        self._frames.put_nowait(_REMOTE_CLOSE)

    async def recv(self):
        frame = await self._frames.get()
        if frame is _REMOTE_CLOSE:
            raise ConnectionClosedOK(None, None)
        return frame

    async def close(self):
        self.close_calls += 1


class FakeConnector:
    """Connector that records URLs and hands out a FakeEventConnection."""

    def __init__(self, connection=None, error=None):
        self.connection = connection or FakeEventConnection()
        self.error = error
        self.urls = []

    async def __call__(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.connection


class FakeKVSServer:
    """Minimal in-memory WireKVS REST API."""

    def __init__(self, token="account-token"):
        self.token = token
        self.databases = {}
        self.requests = []
        self._ids = itertools.count(1)

    def add_database(self, database_id, access_key, name="test"):
        self.databases[database_id] = {
            "name": name,
            "accessKey": access_key,
            "entries": {},
        }

    def _next_ids(self):
        # Skip ids already seeded with add_database()
        for n in self._ids:
            if f"db-{n}" not in self.databases:
                return f"db-{n}", f"key-{n}"

    def transport(self):
        return httpx.MockTransport(self.handler)

    def handler(self, request):
        self.requests.append(request)
        raw_path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        prefix = "/v2/"
        if not raw_path.startswith(prefix):
            return httpx.Response(404)
        parts = [unquote(p) for p in raw_path[len(prefix):].split("/")]
        auth = request.headers.get("Authorization")

        if parts == ["databases"] and request.method == "GET":
            if auth != self.token:
                return httpx.Response(401, json={"error": "unauthorized"})
            return httpx.Response(
                200,
                json=[{"kvsId": k, "name": v["name"]} for k, v in self.databases.items()],
            )

        if parts == ["database"] and request.method == "POST":
            if auth != self.token:
                return httpx.Response(401, json={"error": "unauthorized"})
            body = json.loads(request.content)
            database_id, access_key = self._next_ids()
            self.add_database(database_id, access_key, name=body["name"])
            return httpx.Response(200, json={"kvsId": database_id, "accessKey": access_key, **body})

        if len(parts) < 2 or parts[0] != "database":
            return httpx.Response(404)

        database = self.databases.get(parts[1])
        if database is None:
            return httpx.Response(404, json={"error": "no such database"})

        if len(parts) == 2:
            if request.method == "DELETE":
                if auth != self.token:
                    return httpx.Response(401)
                del self.databases[parts[1]]
                return httpx.Response(200)
            if auth != database["accessKey"]:
                return httpx.Response(401)
            return httpx.Response(200, json=database["entries"])

        if auth != database["accessKey"]:
            return httpx.Response(401)

        key = parts[2]
        entries = database["entries"]
        if request.method == "GET":
            if key not in entries:
                return httpx.Response(404, json={"error": "no such key"})
            return httpx.Response(200, json=entries[key])
        if request.method == "POST":
            entries[key] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})
        if request.method == "DELETE":
            entries.pop(key, None)
            return httpx.Response(200)
        return httpx.Response(405)
