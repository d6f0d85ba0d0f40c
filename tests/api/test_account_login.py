"""POST /account/login: the storefront login form's AJAX endpoint."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from shopper_auth.api.account import LOGIN_ERROR_MESSAGE, login_redirect_url
from tests.fakes import (
    SHOPPER_EMAIL,
    SHOPPER_PASSWORD,
    FakeCommerceCloud,
    is_cleared,
    set_cookie_headers,
)


def _login(client: TestClient, password: str = SHOPPER_PASSWORD, **extra: str):
    return client.post(
        "/account/login",
        data={"loginEmail": SHOPPER_EMAIL, "loginPassword": password, **extra},
    )


@pytest.mark.parametrize(
    ("rurl", "expected"),
    [("1", "/account"), ("2", "/checkout"), (None, "/account"), ("99", "/account")],
)
def test_login_redirect_url(rurl: str | None, expected: str) -> None:
    assert login_redirect_url(rurl) == expected


def test_successful_login(client: TestClient) -> None:
    resp = client.post(
        "/account/login?rurl=2",
        data={"loginEmail": SHOPPER_EMAIL, "loginPassword": SHOPPER_PASSWORD},
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "redirectUrl": "/checkout"}


def test_wrong_password_returns_generic_error(client: TestClient) -> None:
    resp = _login(client, password="not-it")
    assert resp.status_code == 200
    assert resp.json() == {"error": [LOGIN_ERROR_MESSAGE]}
    assert "cc-nx" not in set_cookie_headers(resp)


def test_provider_outage_looks_like_wrong_password(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    provider.fail.add("token")
    assert _login(client).json() == {"error": [LOGIN_ERROR_MESSAGE]}


def test_missing_fields_make_no_provider_calls(
    client: TestClient, provider: FakeCommerceCloud
) -> None:
    resp = client.post("/account/login", data={"loginEmail": " ", "loginPassword": ""})
    assert resp.json() == {"error": [LOGIN_ERROR_MESSAGE]}
    assert provider.calls("/login") == []


def test_without_remember_me_registered_cookie_not_kept(client: TestClient) -> None:
    cookies = set_cookie_headers(_login(client))
    assert "cc-nx" not in cookies
    assert cookies["cc-sg"].startswith("cc-sg=1")


@pytest.mark.parametrize("checkbox", ["true", "on", "1"])
def test_remember_me_keeps_registered_cookie(client: TestClient, checkbox: str) -> None:
    cookies = set_cookie_headers(_login(client, loginRememberMe=checkbox))
    assert cookies["cc-nx"].startswith("cc-nx=refresh-")
    assert "max-age=7776000" in cookies["cc-nx"].lower()


def test_remember_me_replaces_guest_cookie(client: TestClient) -> None:
    client.get("/c/shoes", follow_redirects=False)
    assert client.cookies.get("cc-nx-g")

    cookies = set_cookie_headers(_login(client, loginRememberMe="true"))

    assert is_cleared(cookies["cc-nx-g"])
    assert not is_cleared(cookies["cc-nx"])
