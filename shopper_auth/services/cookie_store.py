"""Cookie state for one request/response pair.

Cookies are the visitor's durable identity state (refresh tokens, login
guard), so nothing reads or writes them through ambient globals.  A
CookieState is built from the request, handed explicitly to every login
step, and applied to whichever response is finally sent:

    cookies = CookieState.from_request(request)     # read at request start
    await login_service.handle_guest(ctx)            # steps mutate cookies
    cookies.apply(response)                          # written at response end

Reads see pending mutations, so a step that rotates a refresh token and a
later step that reads it agree on the value.  Only the last mutation per
cookie name is emitted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import quote

from starlette.requests import Request
from starlette.responses import Response

# RFC 6265 cookie-octets minus '%'; used only for cookies built without a wire value.
_COOKIE_SAFE = "!#$&'()*+/:<=>?@[]^`{|}"


@dataclass(frozen=True, slots=True)
class BridgedCookie:
    """A Set-Cookie directive returned by the session bridge, parsed."""

    name: str
    value: str
    path: str | None = None
    max_age: int | None = None
    secure: bool = False
    httponly: bool = False
    version: str | None = None
    # Value exactly as received (quotes and percent-escapes intact).
    wire_value: str | None = None

    @property
    def browser_value(self) -> str:
        """The value a browser will send back in its Cookie header."""
        if self.wire_value is None:
            return self.value
        wire = self.wire_value
        if len(wire) >= 2 and wire[0] == wire[-1] == '"':
            return wire[1:-1]
        return wire

    def render(self) -> str:
        value = self.wire_value
        if value is None:
            value = quote(self.value, safe=_COOKIE_SAFE)
        parts = [f"{self.name}={value}"]
        if self.path is not None:
            parts.append(f"Path={self.path}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.version is not None:
            parts.append(f"Version={self.version}")
        return "; ".join(parts)

    def __repr__(self) -> str:
        return f"BridgedCookie(name={self.name!r}, path={self.path!r})"


@dataclass(frozen=True, slots=True)
class _Mutation:
    value: str
    max_age: int | None


class CookieState:
    def __init__(self, incoming: Mapping[str, str]) -> None:
        self._view = dict(incoming)
        self._mutations: dict[str, _Mutation] = {}
        self._bridged: dict[str, BridgedCookie] = {}

    @classmethod
    def from_request(cls, request: Request) -> CookieState:
        return cls(request.cookies)

    # ---------------------------------------------------------------- reads

    def get(self, name: str) -> str | None:
        """Current value, or None when absent (an empty value counts as absent)."""
        return self._view.get(name) or None

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    # --------------------------------------------------------------- writes

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        self._mutations[name] = _Mutation(value=value, max_age=max_age)
        self._view[name] = value

    def clear(self, name: str) -> None:
        """Expire a cookie in the browser: empty value, max-age 0."""
        self._view.pop(name, None)
        self._bridged.pop(name, None)
        self._mutations[name] = _Mutation(value="", max_age=0)

    def add_bridged(self, cookie: BridgedCookie) -> None:
        self._bridged[cookie.name] = cookie
        self._view[cookie.name] = cookie.browser_value
        # The bridge is authoritative for its own cookies.
        self._mutations.pop(cookie.name, None)

    # ------------------------------------------------------------ inspection

    def bridged(self, name: str) -> BridgedCookie | None:
        return self._bridged.get(name)

    @property
    def pending(self) -> dict[str, tuple[str, int | None]]:
        """name -> (value, max_age) for every cookie this response will set."""
        pending = {name: (m.value, m.max_age) for name, m in self._mutations.items()}
        for name, cookie in self._bridged.items():
            pending[name] = (cookie.value, cookie.max_age)
        return pending

    def has_changes(self) -> bool:
        return bool(self._mutations or self._bridged)

    # ---------------------------------------------------------------- apply

    def apply(self, response: Response) -> Response:
        for name, mutation in self._mutations.items():
            # HttpOnly stays off: hybrid PWA pages read these cookies client-side.
            response.set_cookie(
                key=name,
                value=mutation.value,
                max_age=mutation.max_age,
                path="/",
                secure=True,
                httponly=False,
            )
        for cookie in self._bridged.values():
            response.headers.append("set-cookie", cookie.render())
        return response
