from app.api.http.health import router as health_router
from app.api.http.canvas import router as canvas_router

__all__ = [
    "health_router",
    "canvas_router",
]
