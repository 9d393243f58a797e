from __future__ import annotations

from sliding_limiter.api.routes.health import router as health_router
from sliding_limiter.api.routes.ping import router as ping_router

__all__ = ["health_router", "ping_router"]
