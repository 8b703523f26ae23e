"""
Bearer authentication.

Token verification belongs to the identity service; the API only needs
something that maps a token to an ``Actor``.
"""

from __future__ import annotations

from typing import Protocol

from storefront.orders import Actor


class Authenticator(Protocol):
    async def authenticate(self, token: str) -> Actor | None: ...


class StaticTokenAuthenticator:
    """Fixed token table, for tests and local runs."""

    def __init__(self, tokens: dict[str, Actor] | None = None) -> None:
        self._tokens = dict(tokens or {})

    def issue(self, token: str, actor: Actor) -> None:
        self._tokens[token] = actor

    async def authenticate(self, token: str) -> Actor | None:
        return self._tokens.get(token)


__all__ = ("Authenticator", "StaticTokenAuthenticator")
