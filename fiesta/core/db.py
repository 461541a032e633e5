from tortoise import Tortoise
from fiesta.core.config import get_settings

# Получаем настройки
settings = get_settings()

MODEL_MODULES = [
    "fiesta.models.chat_message",
    "fiesta.models.session_summary",
    "fiesta.models.task",
    "fiesta.models.calendar_integration",
]

TORTOISE_ORM = {
    "connections": {"default": settings.postgres_dsn},
    "apps": {
        "models": {
            "models": [*MODEL_MODULES, "aerich.models"],
            "default_connection": "default",
        }
    },
    "use_tz": True,
    "timezone": "UTC",
}

async def init_db() -> None:
    await Tortoise.init(config=TORTOISE_ORM)
    # Схемы создаются миграциями aerich


async def close_db() -> None:
    await Tortoise.close_connections()
