from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.db import init_db
from app.core.logging_config import setup_logging
from app.api.http.health import router as health_router
from app.api.http.canvas import router as canvas_router
from app.api.ws.sync import router as websocket_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="Canvas Sync",
    description="Сохранение холста пользователя и обогащение ссылок метаданными",
    version="1.0.0",
    lifespan=lifespan
)

# Настройка CORS для работы с frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # В продакшене указать конкретные домены
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Подключаем роутеры
app.include_router(health_router)
app.include_router(canvas_router)
app.include_router(websocket_router)


@app.get("/")
async def root():
    """Корневой эндпоинт"""
    return {
        "message": "Canvas Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }
