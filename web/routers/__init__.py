"""Router modules for FastAPI web API."""

from web.routers import health, install, ota, sign

__all__ = ["health", "install", "ota", "sign"]
