from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

# Cookie names are part of the storefront contract (hybrid PWA pages read them).
REFRESH_TOKEN_COOKIE_REGISTERED = "cc-nx"
REFRESH_TOKEN_COOKIE_GUEST = "cc-nx-g"
SESSION_GUARD_COOKIE = "cc-sg"

# SLAS wire constants
GUEST_LOGIN_HINT = "guest"
GUEST_LOGIN_RESPONSE_TYPE = "code"
BASKET_MERGE_ENDPOINT = "/baskets/actions/merge"
SESSION_RESTORE_PATH = "/internal/session/restore"
SESSION_RESTORE_AUTH_HEADER = "x-sf-custom-auth"
DEFAULT_CLIENT_IP_HEADER = "x-client-ip"

# The guard must expire before the host session does, otherwise an expired
# session would never be re-bridged while the guard is still present.
MAX_SESSION_GUARD_AGE_SEC = 30 * 60

_DEFAULT_EXCLUDED_PATHS = (
    "/health",
    "/ready",
    "/metrics",
    "/consent-tracking",
    "/geolocation",
    "/internal/session/restore",
)


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getlist(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None

    # SLAS (identity provider)
    slas_base_url: str
    slas_client_id: str
    slas_client_secret: str
    channel_id: str
    redirect_uri: str
    save_refresh_token_always: bool

    # Session bridge + attribute restoration
    session_bridge_url: str
    client_ip_header_name: str | None
    restore_session_attributes: bool
    internal_base_url: str
    internal_service_user: str
    internal_service_password: str

    basket_api_base_url: str

    # Host session + cookies
    host_session_cookie: str
    host_session_timeout_sec: int
    session_guard_age_sec: int
    refresh_cookie_age_sec: int
    excluded_paths: tuple[str, ...]
    admin_path_prefixes: tuple[str, ...]

    http_timeout_sec: float

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", 8000)
    host_timeout = _getint("HOST_SESSION_TIMEOUT_SEC", 30 * 60)
    guard_age = _getint("SESSION_GUARD_AGE_SEC", 29 * 60)

    if guard_age <= 0 or guard_age > MAX_SESSION_GUARD_AGE_SEC:
        raise ValueError(
            f"SESSION_GUARD_AGE_SEC must be between 1 and {MAX_SESSION_GUARD_AGE_SEC}"
            f" (got {guard_age})"
        )
    if guard_age >= host_timeout:
        raise ValueError(
            "SESSION_GUARD_AGE_SEC must be shorter than HOST_SESSION_TIMEOUT_SEC "
            f"(got {guard_age} >= {host_timeout})"
        )

    timeout_raw = _getenv("HTTP_TIMEOUT_SEC", "10")
    try:
        http_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"HTTP_TIMEOUT_SEC must be a number (got {timeout_raw!r})"
        ) from None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        redis_url=_getenv("REDIS_URL", "") or None,
        slas_base_url=_getenv(
            "SLAS_BASE_URL",
            "https://localhost/shopper/auth/v1/organizations/dev",
        ).rstrip("/"),
        slas_client_id=_getenv("SLAS_CLIENT_ID", ""),
        slas_client_secret=_getenv("SLAS_CLIENT_SECRET", ""),
        channel_id=_getenv("SLAS_CHANNEL_ID", "RefArch"),
        redirect_uri=_getenv("SLAS_REDIRECT_URI", "https://localhost/callback"),
        save_refresh_token_always=_getbool("SLAS_SAVE_REFRESH_TOKEN_ALWAYS", False),
        session_bridge_url=_getenv(
            "SESSION_BRIDGE_URL",
            "https://localhost/s/RefArch/dw/shop/v22_8/sessions",
        ),
        client_ip_header_name=_getenv("CLIENT_IP_HEADER_NAME", "") or None,
        restore_session_attributes=_getbool("RESTORE_SESSION_ATTRIBUTES", False),
        internal_base_url=_getenv(
            "INTERNAL_BASE_URL", "http://localhost:8000"
        ).rstrip("/"),
        internal_service_user=_getenv("INTERNAL_SERVICE_USER", ""),
        internal_service_password=_getenv("INTERNAL_SERVICE_PASSWORD", ""),
        basket_api_base_url=_getenv(
            "BASKET_API_BASE_URL",
            "https://localhost/checkout/shopper-baskets/v1/organizations/dev",
        ).rstrip("/"),
        host_session_cookie=_getenv("HOST_SESSION_COOKIE", "dwsid"),
        host_session_timeout_sec=host_timeout,
        session_guard_age_sec=guard_age,
        refresh_cookie_age_sec=_getint("REFRESH_COOKIE_AGE_SEC", 90 * 24 * 60 * 60),
        excluded_paths=_getlist("SESSION_EXCLUDED_PATHS", _DEFAULT_EXCLUDED_PATHS),
        admin_path_prefixes=_getlist("ADMIN_PATH_PREFIXES", ("/admin",)),
        http_timeout_sec=http_timeout,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
