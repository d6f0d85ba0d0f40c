from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any

# Click history is only used to find "the page before this one"; keep it short.
CLICK_STREAM_LIMIT = 10


@dataclass(frozen=True, slots=True)
class SessionVariables:
    """Snapshot of a host session's custom and privacy attributes.

    Captured right before a bridge and replayed into the new session by the
    internal restore endpoint.  Never written to cookies.
    """

    custom: dict[str, Any] = field(default_factory=dict)
    privacy: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {"custom": dict(self.custom), "privacy": dict(self.privacy)}

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> SessionVariables:
        data = data or {}
        custom = data.get("custom") or {}
        privacy = data.get("privacy") or {}
        if not isinstance(custom, dict) or not isinstance(privacy, dict):
            raise ValueError("custom and privacy must be objects")
        return SessionVariables(custom=dict(custom), privacy=dict(privacy))


@dataclass(slots=True)
class HostSession:
    """Server-side session identified by the host session cookie."""

    id: str
    created_at: float
    last_accessed: float
    custom: dict[str, Any] = field(default_factory=dict)
    privacy: dict[str, Any] = field(default_factory=dict)
    customer_id: str | None = None
    usid: str | None = None
    registered: bool = False
    click_stream: list[str] = field(default_factory=list)

    @staticmethod
    def new(session_id: str | None = None) -> HostSession:
        now = time.time()
        return HostSession(
            id=session_id or secrets.token_urlsafe(24),
            created_at=now,
            last_accessed=now,
        )

    def snapshot(self) -> SessionVariables:
        return SessionVariables(custom=dict(self.custom), privacy=dict(self.privacy))

    def record_click(self, url: str) -> None:
        self.click_stream.append(url)
        del self.click_stream[:-CLICK_STREAM_LIMIT]

    def last_click(self) -> str | None:
        return self.click_stream[-1] if self.click_stream else None

    def is_expired(self, timeout_sec: int, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_accessed > timeout_sec

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
            "custom": self.custom,
            "privacy": self.privacy,
            "customer_id": self.customer_id,
            "usid": self.usid,
            "registered": self.registered,
            "click_stream": self.click_stream,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> HostSession:
        return HostSession(
            id=data["id"],
            created_at=float(data["created_at"]),
            last_accessed=float(data["last_accessed"]),
            custom=dict(data.get("custom") or {}),
            privacy=dict(data.get("privacy") or {}),
            customer_id=data.get("customer_id"),
            usid=data.get("usid"),
            registered=bool(data.get("registered", False)),
            click_stream=list(data.get("click_stream") or []),
        )
