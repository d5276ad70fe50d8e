from app.db.models.canvas import CanvasStateModel

__all__ = [
    "CanvasStateModel",
]
