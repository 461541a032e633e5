import pytest
from unittest.mock import AsyncMock, MagicMock
import pytest_asyncio
import os
import sys
from tortoise import Tortoise

# Добавляем корневую директорию проекта в путь Python
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from fiesta.core.config import Settings
from fiesta.core.db import MODEL_MODULES
from fiesta.core.logging_config import setup_test_logging
from fiesta.repositories.message_repository import MessageRepository
from fiesta.services.chat_service import ChatService
from fiesta.services.context_builder import ContextBuilder


setup_test_logging()


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite вместо PostgreSQL для каждого теста"""
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODEL_MODULES},
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest.fixture
def settings():
    """Настройки без .env и переменных окружения"""
    return Settings(
        _env_file=None,
        openai_api_key=None,
        timezone="Europe/Copenhagen",
        history_grouping="date",
    )


class FakeTextGeneration:
    """Подмена OpenAIService: отдает заданные фрагменты или падает с ошибкой"""

    def __init__(self, chunks=None, text="Kort sammenfatning af samtalen", error=None, stream_error=None):
        self.chunks = chunks if chunks is not None else ["Hej ", "Jonas", "!"]
        self.text = text
        self.error = error
        self.stream_error = stream_error
        self.stream_calls = []
        self.prompts = []

    async def generate(self, prompt, model=None, max_tokens=500, temperature=0.3):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.text

    async def stream_chat(self, messages, options):
        self.stream_calls.append((messages, options))
        for chunk in self.chunks:
            yield chunk
        if self.stream_error:
            raise self.stream_error


@pytest.fixture
def make_chat_service():
    """Фабрика ChatService поверх in-memory БД, без сети"""
    def factory(settings: Settings, ai) -> ChatService:
        repo = MessageRepository()
        calendar = MagicMock()
        calendar.list_upcoming_events = AsyncMock(return_value=[])
        builder = ContextBuilder(repo, calendar, settings=settings)
        return ChatService(message_repo=repo, context_builder=builder, openai_service=ai, settings=settings)
    return factory


@pytest.fixture
def fake_ai():
    return FakeTextGeneration()


def pytest_configure(config):
    """Регистрируем кастомные маркеры"""
    config.addinivalue_line("markers", "database: marks tests that use database")
