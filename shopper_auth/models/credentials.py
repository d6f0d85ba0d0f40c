from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ShopperCredentials:
    """Registered shopper's login plus the guest usid to link, if any."""

    user: str
    password: str
    usid: str | None = None

    def __repr__(self) -> str:
        return f"ShopperCredentials(user={self.user!r}, usid={self.usid!r})"


@dataclass(frozen=True, slots=True)
class LoginInput:
    """Validated login form: what the account/checkout controllers hand over."""

    user: str
    password: str
    remember_me: bool = False

    def __repr__(self) -> str:
        return f"LoginInput(user={self.user!r}, remember_me={self.remember_me!r})"
