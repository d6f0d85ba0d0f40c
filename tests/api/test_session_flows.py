"""End-to-end shopper journeys through the app, against the fake provider.

Each test drives the app the way a browser would: the TestClient keeps
cookies between requests, and redirects are inspected rather than
followed.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shopper_auth.core.config import Settings
from tests.conftest import build_app
from tests.fakes import (
    SHOPPER_CUSTOMER_ID,
    SHOPPER_EMAIL,
    SHOPPER_PASSWORD,
    FakeCommerceCloud,
    is_cleared,
    make_settings,
    set_cookie_headers,
)


def _session(app: FastAPI, session_id: str):
    return asyncio.run(app.state.components.sessions.get(session_id))


def _update_session(app: FastAPI, session_id: str, **attrs) -> None:
    sessions = app.state.components.sessions
    session = asyncio.run(sessions.get(session_id))
    for key, value in attrs.items():
        getattr(session, key).update(value)
    asyncio.run(sessions.save(session))


def _guest_usid(provider: FakeCommerceCloud, client: TestClient) -> str:
    return provider.live_refresh[client.cookies.get("cc-nx-g")]["usid"]


# ---------------------------------------------------------------------------
# First visit
# ---------------------------------------------------------------------------


def test_first_visit_gets_guest_identity_and_same_page_redirect(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    resp = client.get("/c/shoes?size=9", follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == "/c/shoes?size=9"
    cookies = set_cookie_headers(resp)
    assert cookies["cc-sg"].startswith("cc-sg=1")
    assert "max-age=1740" in cookies["cc-sg"].lower()
    assert cookies["cc-nx-g"].startswith("cc-nx-g=refresh-")
    assert cookies["dwsid"].startswith("dwsid=sid-")
    # Bridge cookies are relayed verbatim, attributes included.
    assert cookies["dwsecuretoken_test"] == (
        "dwsecuretoken_test=tok%20en; Path=/; Max-Age=1800; Secure; Version=1"
    )
    assert "cc-nx" not in cookies


def test_redirected_page_is_served_without_another_login(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    client.get("/c/shoes", follow_redirects=False)
    resp = client.get("/c/shoes", follow_redirects=False)

    # Guard present and session known: the page passes through (404 here, no storefront).
    assert resp.status_code == 404
    assert len(provider.calls("/authorize")) == 1
    assert set_cookie_headers(resp) == {}


def test_encoded_bridge_session_id_is_recognised_on_return(
    client: TestClient, provider: FakeCommerceCloud, app: FastAPI
) -> None:
    provider.bridge_set_cookies = ["dwsid=abc%2Fdef%3D%3D; Path=/; Secure"]
    first = client.get("/c/shoes", follow_redirects=False)
    assert set_cookie_headers(first)["dwsid"] == "dwsid=abc%2Fdef%3D%3D; Path=/; Secure"

    resp = client.get("/c/shoes", follow_redirects=False)

    assert resp.status_code == 404
    assert set_cookie_headers(resp) == {}
    assert _session(app, "abc%2Fdef%3D%3D") is not None


def test_bridge_receives_visitor_ip(client: TestClient, provider: FakeCommerceCloud) -> None:
    client.get("/c/shoes", follow_redirects=False)
    bridge_call = provider.calls("/sessions")[-1]
    assert bridge_call.headers["x-client-ip"] == "testclient"


def test_provider_down_still_serves_page(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    provider.fail.add("authorize")
    resp = client.get("/c/shoes", follow_redirects=False)

    assert resp.status_code == 404
    cookies = set_cookie_headers(resp)
    assert "cc-nx-g" not in cookies
    assert "cc-sg" not in cookies


def test_returning_guest_refreshes_instead_of_logging_in(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    client.get("/c/shoes", follow_redirects=False)
    old_refresh = client.cookies.get("cc-nx-g")
    # Browser restarted: session cookies and the guard are gone.
    client.cookies.delete("dwsid")
    client.cookies.delete("cc-sg")

    resp = client.get("/c/shoes", follow_redirects=False)

    assert resp.status_code == 302
    assert len(provider.calls("/authorize")) == 1
    assert client.cookies.get("cc-nx-g") != old_refresh
    assert old_refresh not in provider.live_refresh


# ---------------------------------------------------------------------------
# Remembered shopper
# ---------------------------------------------------------------------------


def test_expired_registered_cookie_does_not_crash(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    client.cookies.set("cc-nx", "refresh-long-expired")
    resp = client.get("/account", follow_redirects=False)

    assert resp.status_code == 404
    cookies = set_cookie_headers(resp)
    assert "cc-nx" not in cookies
    assert provider.calls("/sessions") == []


def test_remembered_shopper_restored_on_new_browser_session(
    client: TestClient, app: FastAPI, provider: FakeCommerceCloud
) -> None:
    client.post(
        "/account/login",
        data={
            "loginEmail": SHOPPER_EMAIL,
            "loginPassword": SHOPPER_PASSWORD,
            "loginRememberMe": "true",
        },
    )
    assert client.cookies.get("cc-nx")
    client.cookies.delete("dwsid")
    client.cookies.delete("cc-sg")

    resp = client.get("/account?tab=orders", follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == "/account?tab=orders"
    session = _session(app, client.cookies.get("dwsid"))
    assert session.registered is True
    assert session.customer_id == SHOPPER_CUSTOMER_ID


# ---------------------------------------------------------------------------
# Login with a guest basket
# ---------------------------------------------------------------------------


def test_checkout_login_merges_guest_basket(
    client: TestClient, app: FastAPI, provider: FakeCommerceCloud
) -> None:
    client.get("/c/shoes", follow_redirects=False)
    guest_usid = _guest_usid(provider, client)
    provider.baskets[guest_usid] = [
        {"productId": "shoe-1", "quantity": 1},
        {"productId": "sock-2", "quantity": 1},
    ]
    _update_session(app, client.cookies.get("dwsid"), custom={"basketId": "bskt-1"})

    resp = client.post(
        "/checkout/login-customer",
        data={"email": SHOPPER_EMAIL, "password": SHOPPER_PASSWORD},
    )

    assert resp.json() == {"error": False, "redirectUrl": "/checkout?stage=shipping"}
    items = provider.baskets[SHOPPER_CUSTOMER_ID]
    assert sum(i["quantity"] for i in items) == 2
    # The guest usid was handed to /login so SLAS links the two identities.
    assert provider.calls("/login")[-1].url.params["usid"] == guest_usid


def test_login_without_basket_skips_merge(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    client.get("/c/shoes", follow_redirects=False)
    client.post(
        "/checkout/login-customer",
        data={"email": SHOPPER_EMAIL, "password": SHOPPER_PASSWORD},
    )
    assert provider.calls("/baskets/actions/merge") == []


# ---------------------------------------------------------------------------
# Session attribute restoration
# ---------------------------------------------------------------------------


@pytest.fixture
def restoring_settings() -> Settings:
    return make_settings(restore_session_attributes=True)


@pytest.fixture
def restoring_provider(restoring_settings: Settings) -> FakeCommerceCloud:
    return FakeCommerceCloud(restoring_settings)


@pytest.fixture
def restoring_app(
    restoring_settings: Settings, restoring_provider: FakeCommerceCloud
) -> FastAPI:
    return build_app(restoring_settings, restoring_provider)


def test_attributes_follow_shopper_into_registered_session_until_logout(
    restoring_app: FastAPI,
) -> None:
    client = TestClient(restoring_app, base_url="https://testserver")

    client.get("/c/shoes", follow_redirects=False)
    guest_sid = client.cookies.get("dwsid")
    _update_session(
        restoring_app,
        guest_sid,
        custom={"abTestBucket": "B", "locale": "en_GB"},
        privacy={"consent": True},
    )

    resp = client.post(
        "/account/login",
        data={
            "loginEmail": SHOPPER_EMAIL,
            "loginPassword": SHOPPER_PASSWORD,
            "loginRememberMe": "on",
        },
    )
    assert resp.json()["success"] is True

    registered_sid = client.cookies.get("dwsid")
    assert registered_sid != guest_sid
    session = _session(restoring_app, registered_sid)
    assert session.registered is True
    assert session.custom == {"abTestBucket": "B", "locale": "en_GB"}
    assert session.privacy == {"consent": True}

    logout = client.get("/login/logout", follow_redirects=False)
    assert logout.status_code == 302
    assert _session(restoring_app, registered_sid) is None
    assert client.cookies.get("dwsid") is None

    client.get("/c/shoes", follow_redirects=False)
    fresh = _session(restoring_app, client.cookies.get("dwsid"))
    assert fresh.custom == {}
    assert fresh.registered is False


def test_logout_clears_identity_cookies(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    client.post(
        "/account/login",
        data={
            "loginEmail": SHOPPER_EMAIL,
            "loginPassword": SHOPPER_PASSWORD,
            "loginRememberMe": "on",
        },
    )
    resp = client.get("/login/logout", follow_redirects=False)

    cookies = set_cookie_headers(resp)
    assert resp.headers["location"] == "/"
    assert is_cleared(cookies["cc-nx"])
    assert is_cleared(cookies["cc-sg"])
    assert is_cleared(cookies["dwsid"])
    assert len(provider.calls("/logout")) == 1
