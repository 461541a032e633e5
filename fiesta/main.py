from fastapi import FastAPI
from contextlib import asynccontextmanager
from fiesta.core.config import get_settings
from fiesta.core.db import init_db, close_db
from fiesta.core.logging_config import setup_logging
from fiesta.routers import chat, history


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(get_settings().log_level)
    await init_db()
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title="FiestaAI API",
    description="Диалоговый ассистент Foodtruck Fiesta: сессии, история и потоковые ответы",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(history.router, prefix="/history", tags=["history"])

__all__ = ["app", "run"]


def run() -> None:
    """Запуск API через uvicorn (команда fiesta-api)"""
    import uvicorn

    uvicorn.run("fiesta.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
