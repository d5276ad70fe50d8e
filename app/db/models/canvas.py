from sqlalchemy import JSON, Column, String

from app.db.base import BaseModel


class CanvasStateModel(BaseModel):
    __tablename__ = "canvas_states"

    # одна строка на владельца
    owner_id = Column(String(255), unique=True, index=True, nullable=False)
    data = Column(JSON, nullable=False)
