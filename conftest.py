"""Shared pytest fixtures.

The SoftOne endpoint is replaced by ``FakeSoftOneServer`` behind a minimal
aiohttp-like session, so the real request dispatcher runs end to end
without network access.
"""

import json
from collections import defaultdict, deque
from typing import Any, Callable, Dict, List, Tuple, Union

import pytest

from connectors.softone.so_auth import SoftOneSessionManager
from connectors.softone.so_client import SoftOneApiClient
from connectors.softone.so_config import SoftOneConfig
from core.observability.metrics import SyncMetrics
from core.security.session_store import InMemorySessionMetaStore
from core.storage.kv_store import InMemoryKeyValueStore
from storefront.memory import InMemoryStorefront


Reply = Union[Tuple[int, Any], Exception]


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int, body: bytes, error: Exception = None):
        self.status = status
        self._body = body
        self._error = error

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSoftOneServer:
    """Scripted SoftOne endpoint.

    ``login`` and ``authenticate`` succeed by default and every authenticate
    issues a new ``session-N`` client ID. Other services answer
    ``{"success": true}`` unless a reply is queued or a handler is set.
    """

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.sessions_issued = 0
        self.login_objs: List[Dict[str, Any]] = [{"COMPANY": "1000", "BRANCH": "1000", "MODULE": "0", "REFID": "15"}]
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Reply]] = {}
        self._queued: Dict[str, deque] = defaultdict(deque)

    def queue(self, service: str, *replies: Reply) -> None:
        self._queued[service].extend(replies)

    def calls(self, service: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r.get("service") == service]

    def reply(self, body: Dict[str, Any]) -> Reply:
        service = body.get("service")
        if self._queued[service]:
            return self._queued[service].popleft()
        if service in self.handlers:
            return self.handlers[service](body)
        if service == "login":
            return 200, {"success": True, "clientID": "login-token", "objs": self.login_objs}
        if service == "authenticate":
            self.sessions_issued += 1
            return 200, {"success": True, "clientID": f"session-{self.sessions_issued}"}
        return 200, {"success": True}


class FakeHttpSession:
    """Just enough of aiohttp.ClientSession for the dispatcher."""

    def __init__(self, server: FakeSoftOneServer):
        self.server = server
        self.posts: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None) -> FakeResponse:
        body = json.loads(data)
        self.posts.append({"url": url, "body": body, "headers": headers, "timeout": timeout})
        self.server.requests.append(body)

        reply = self.server.reply(body)
        if isinstance(reply, Exception):
            return FakeResponse(0, b"", error=reply)
        status, payload = reply
        if isinstance(payload, bytes):
            raw = payload
        elif isinstance(payload, str):
            raw = payload.encode("utf-8")
        else:
            raw = json.dumps(payload).encode("utf-8")
        return FakeResponse(status, raw)

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return SoftOneConfig(
        endpoint="https://erp.example.test/s1services/",
        username="ws-user",
        password="ws-secret",
        app_id="1001",
        default_saldoc_series="7021",
        warehouse="1",
        areas="1",
        currency="100",
        trdcategory="3000",
        country_mappings={"GR": "1000", "CY": "1001"},
    )


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def meta_store():
    return InMemorySessionMetaStore()


@pytest.fixture
def metrics():
    return SyncMetrics()


@pytest.fixture
def server():
    return FakeSoftOneServer()


@pytest.fixture
def http_session(server):
    return FakeHttpSession(server)


@pytest.fixture
def sessions(config, kv, meta_store, clock):
    return SoftOneSessionManager(config, kv, meta_store, clock=clock)


@pytest.fixture
def client(config, sessions, http_session, metrics):
    return SoftOneApiClient(config, sessions, http_session=http_session, metrics=metrics)


@pytest.fixture
def storefront():
    return InMemoryStorefront()
