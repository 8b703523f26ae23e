"""
HTTP surface.

    app = create_app(storefront, StaticTokenAuthenticator({"t0k3n": Actor("u1")}))
"""

from storefront.api._auth import Authenticator, StaticTokenAuthenticator
from storefront.api._app import ApiError, unwrap, create_app

__all__ = (
    "Authenticator",
    "StaticTokenAuthenticator",
    "ApiError",
    "unwrap",
    "create_app",
)
