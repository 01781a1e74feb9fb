"""CORS middleware whose allow-list is the live origin cache"""

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from app.services.origin_cache import OriginCache


class DynamicCORSMiddleware(CORSMiddleware):
    """Starlette CORS handling with the origin check delegated to an OriginCache.

    Admin changes to allowed origins take effect on the next request,
    without rebuilding the middleware stack.
    """

    def __init__(self, app: ASGIApp, origin_cache: OriginCache, **kwargs) -> None:
        super().__init__(app, **kwargs)
        self.origin_cache = origin_cache

    def is_allowed_origin(self, origin: str) -> bool:
        return self.origin_cache.is_allowed(origin)
