"""Host session store.

The host session is the server-side session the storefront renders pages
against; its id travels in the host session cookie (dwsid).  Two things
create one:

  1. HostSessionMiddleware, when a visitor arrives without a live session
     (the id is minted here, never taken from the visitor's cookie).
  2. A successful session bridge, which hands back a new id in its
     Set-Cookie headers.  bind_shopper() adopts that id and records who
     the session belongs to; restore_vars() replays the attributes the
     previous session held.

Both adoption calls are create-or-update, so it does not matter whether
the restore call or the orchestrator touches the new id first.  The
pre-bridge session is left to expire through the idle timeout.

Expiry is idle-based: every save() pushes it out by the configured
timeout (Redis SETEX / in-memory check on read).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Protocol, runtime_checkable

from shopper_auth.models.session import HostSession, SessionVariables

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    async def get(self, session_id: str) -> HostSession | None:
        """Fetch a live session.  Returns None when unknown or expired."""
        ...

    async def create(self) -> HostSession:
        """Mint and persist a brand-new session."""
        ...

    async def save(self, session: HostSession) -> None:
        """Persist a session and reset its idle timeout."""
        ...

    async def delete(self, session_id: str) -> None: ...

    async def bind_shopper(
        self,
        session_id: str,
        *,
        customer_id: str | None,
        usid: str | None,
        registered: bool,
    ) -> HostSession:
        """Record the shopper behind a (possibly brand-new) session id."""
        ...

    async def restore_vars(
        self, session_id: str, variables: SessionVariables
    ) -> HostSession:
        """Merge carried-forward attributes into a (possibly brand-new) session."""
        ...


class _AdoptionMixin:
    """bind_shopper/restore_vars on top of get/save, shared by both stores."""

    async def _get_or_new(self, session_id: str) -> HostSession:
        session = await self.get(session_id)  # type: ignore[attr-defined]
        return session if session is not None else HostSession.new(session_id)

    async def bind_shopper(
        self,
        session_id: str,
        *,
        customer_id: str | None,
        usid: str | None,
        registered: bool,
    ) -> HostSession:
        session = await self._get_or_new(session_id)
        session.customer_id = customer_id
        session.usid = usid
        session.registered = registered
        await self.save(session)  # type: ignore[attr-defined]
        return session

    async def restore_vars(
        self, session_id: str, variables: SessionVariables
    ) -> HostSession:
        session = await self._get_or_new(session_id)
        session.custom.update(variables.custom)
        session.privacy.update(variables.privacy)
        await self.save(session)  # type: ignore[attr-defined]
        return session


class InMemorySessionStore(_AdoptionMixin):
    """Process-local store for dev and tests.

    Sessions are stored as serialized dicts so callers never share a
    mutable HostSession with the store.  The autouse fixture in
    tests/conftest.py clears it between tests.
    """

    def __init__(self, timeout_sec: int) -> None:
        self._timeout = timeout_sec
        self._store: dict[str, dict] = {}

    async def get(self, session_id: str) -> HostSession | None:
        data = self._store.get(session_id)
        if data is None:
            return None
        session = HostSession.from_dict(data)
        if session.is_expired(self._timeout):
            del self._store[session_id]
            return None
        return session

    async def create(self) -> HostSession:
        session = HostSession.new()
        await self.save(session)
        return session

    async def save(self, session: HostSession) -> None:
        session.last_accessed = time.time()
        self._store[session.id] = session.to_dict()

    async def delete(self, session_id: str) -> None:
        self._store.pop(session_id, None)

    def clear(self) -> None:
        self._store.clear()


class RedisSessionStore(_AdoptionMixin):
    """Redis-backed store, shared by every API instance."""

    # Key prefix keeps sessions apart from anything else in the database.
    _PREFIX = "host-session:"

    def __init__(self, redis_client, timeout_sec: int) -> None:
        self._redis = redis_client
        self._timeout = timeout_sec

    async def get(self, session_id: str) -> HostSession | None:
        raw = await self._redis.get(f"{self._PREFIX}{session_id}")
        if raw is None:
            return None
        try:
            return HostSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable host session  id=%s", session_id)
            await self.delete(session_id)
            return None

    async def create(self) -> HostSession:
        session = HostSession.new()
        await self.save(session)
        return session

    async def save(self, session: HostSession) -> None:
        session.last_accessed = time.time()
        await self._redis.setex(
            f"{self._PREFIX}{session.id}",
            self._timeout,
            json.dumps(session.to_dict()),
        )

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{session_id}")


def build_session_store(redis_client, timeout_sec: int) -> SessionStore:
    if redis_client is not None:
        return RedisSessionStore(redis_client, timeout_sec)
    return InMemorySessionStore(timeout_sec)
