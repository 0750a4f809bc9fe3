"""Shared test fixtures for pim_agent tests."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from pim_agent.core.config import UnoPimSettings
from pim_agent.integrations.unopim.auth import Credentials, TokenManager
from pim_agent.integrations.unopim.client import UnoPimClient
from pim_agent.integrations.unopim.resolver import AttributeMetadata, FamilyAttributeInfo

BASE_URL = "https://pim.test"
TOKEN_PATH = "/oauth/token"
API = "/api/v1/rest"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def token_body(access: str = "tok-1", refresh: str = "ref-1", expires_in: int = 3600) -> Dict[str, Any]:
    return {
        "token_type": "Bearer",
        "access_token": access,
        "refresh_token": refresh,
        "expires_in": expires_in,
    }


class FakeUnoPim:
    """
    Scripted UnoPim backend for httpx.MockTransport.

    Each route holds a queue of replies; the last reply is repeated once the
    queue is down to one. A reply is a status code, a (status, body) tuple,
    an exception to raise, or a callable taking the request.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[Any]] = {}

    def add(self, method: str, path: str, *replies: Any) -> "FakeUnoPim":
        self.routes.setdefault((method.upper(), path), []).extend(replies)
        return self

    def issue_tokens(self, expires_in: int = 3600) -> "FakeUnoPim":
        """Answer every token request with a fresh numbered token."""
        counter = {"n": 0}

        def issue(request: httpx.Request) -> httpx.Response:
            counter["n"] += 1
            n = counter["n"]
            return httpx.Response(200, json=token_body(f"tok-{n}", f"ref-{n}", expires_in))

        return self.add("POST", TOKEN_PATH, issue)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def api_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(API)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers interleave as they would on a real socket
        await asyncio.sleep(0)
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return self._build(reply, request)

    @staticmethod
    def _build(reply: Any, request: httpx.Request) -> httpx.Response:
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        if isinstance(reply, int):
            return httpx.Response(reply)
        status, body = reply
        if isinstance(body, (str, bytes)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


def attribute(code: str, type: str = "text", required: bool = False,
              per_locale: bool = False, per_channel: bool = False,
              validation: str = None) -> AttributeMetadata:
    return AttributeMetadata(
        code=code,
        type=type,
        is_required=required,
        value_per_locale=per_locale,
        value_per_channel=per_channel,
        validation=validation,
    )


@pytest.fixture
def settings():
    return UnoPimSettings(
        base_url=BASE_URL,
        client_id="client-id-1234",
        client_secret="client-secret-5678",
        username="api@example.com",
        password="s3cret",
    )


@pytest.fixture
def credentials(settings):
    return Credentials.from_settings(settings)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def backend():
    return FakeUnoPim()


@pytest.fixture
def make_token_manager(backend, credentials, clock, sleep) -> Callable[[], TokenManager]:
    def make() -> TokenManager:
        return TokenManager(
            BASE_URL,
            credentials,
            http_client=backend.http_client(),
            clock=clock,
            sleep=sleep,
        )
    return make


@pytest.fixture
def make_client(backend, make_token_manager, sleep) -> Callable[[], UnoPimClient]:
    def make() -> UnoPimClient:
        return UnoPimClient(
            BASE_URL,
            make_token_manager(),
            http_client=backend.http_client(),
            sleep=sleep,
        )
    return make


@pytest.fixture
def shoe_family() -> FamilyAttributeInfo:
    """A family with one attribute or more in every scope."""
    return FamilyAttributeInfo(
        family_code="shoes",
        attributes=(
            attribute("sku", required=True),
            attribute("name", required=True, per_locale=True, per_channel=True),
            attribute("description", type="textarea", per_locale=True),
            attribute("price", type="price", required=True, per_channel=True),
            attribute("color", type="select"),
            attribute("weight", validation="decimal"),
            attribute("active", type="boolean"),
            attribute("sizes", type="multiselect"),
        ),
    )


def shoe_family_routes(backend: FakeUnoPim) -> FakeUnoPim:
    """Register the shoe family and its attributes on the fake backend."""
    backend.add("GET", f"{API}/families/shoes", (200, {
        "code": "shoes",
        "attribute_groups": [
            {"code": "general", "custom_attributes": [
                {"code": "sku"}, {"code": "name"}, {"code": "color"},
            ]},
            {"code": "commerce", "custom_attributes": [
                {"code": "price"}, {"code": "name"},
            ]},
        ],
    }))
    backend.add("GET", f"{API}/attributes/sku", (200, {
        "code": "sku", "type": "text", "is_required": 1, "value_per_locale": 0, "value_per_channel": 0,
    }))
    backend.add("GET", f"{API}/attributes/name", (200, {
        "code": "name", "type": "text", "is_required": "1", "value_per_locale": "1", "value_per_channel": "1",
    }))
    backend.add("GET", f"{API}/attributes/color", (200, {
        "data": {"code": "color", "type": "select", "is_required": 0, "value_per_locale": 0, "value_per_channel": 0},
    }))
    backend.add("GET", f"{API}/attributes/price", (200, {
        "code": "price", "type": "price", "is_required": True, "value_per_locale": False, "value_per_channel": True,
    }))
    return backend
