from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import shopper_auth` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shopper_auth.core.config import Settings  # noqa: E402
from shopper_auth.core.http import new_async_client  # noqa: E402
from shopper_auth.main import create_app  # noqa: E402
from shopper_auth.models.session import HostSession  # noqa: E402
from shopper_auth.services.basket_merge import BasketMergeClient  # noqa: E402
from shopper_auth.services.cookie_store import CookieState  # noqa: E402
from shopper_auth.services.login_service import LoginService, ShopperContext  # noqa: E402
from shopper_auth.services.session_bridge import SessionBridgeClient  # noqa: E402
from shopper_auth.services.session_store import InMemorySessionStore  # noqa: E402
from shopper_auth.services.slas_client import SLASClient  # noqa: E402
from tests.fakes import FakeCommerceCloud, make_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def provider(settings: Settings) -> FakeCommerceCloud:
    return FakeCommerceCloud(settings)


# ---------------------------------------------------------------------------
# Service-level wiring (no FastAPI app)
# ---------------------------------------------------------------------------


class Services:
    """Real services wired to the fake provider, as the app wires them."""

    def __init__(self, settings: Settings, provider: FakeCommerceCloud) -> None:
        http = new_async_client(settings, transport=provider.transport)
        self.settings = settings
        self.sessions = InMemorySessionStore(settings.host_session_timeout_sec)
        self.slas = SLASClient(settings, http)
        self.bridge = SessionBridgeClient(settings, http, http)
        self.baskets = BasketMergeClient(settings, http)
        self.login = LoginService(
            settings, self.slas, self.bridge, self.baskets, self.sessions
        )

    def context(self, cookies: dict[str, str] | None = None, **session_attrs) -> ShopperContext:
        session = HostSession.new()
        for key, value in session_attrs.items():
            setattr(session, key, value)
        asyncio.run(self.sessions.save(session))
        return ShopperContext(
            cookies=CookieState(cookies or {}),
            session=session,
            client_ip="203.0.113.7",
        )


@pytest.fixture
def services(settings: Settings, provider: FakeCommerceCloud) -> Services:
    return Services(settings, provider)


# ---------------------------------------------------------------------------
# App-level wiring
# ---------------------------------------------------------------------------


def build_app(settings: Settings, provider: FakeCommerceCloud) -> FastAPI:
    # The restore call is routed back into the app itself, like production
    # where INTERNAL_BASE_URL points at this service.
    return create_app(
        settings,
        provider_transport=provider.transport,
        internal_transport=lambda app: httpx.ASGITransport(app=app),
    )


@pytest.fixture
def app(settings: Settings, provider: FakeCommerceCloud) -> FastAPI:
    return build_app(settings, provider)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    # https: every storefront cookie is Secure, the cookie jar drops them on http.
    return TestClient(app, base_url="https://testserver")
