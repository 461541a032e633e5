from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Параметры базы данных
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="fiesta")
    db_user: str = Field(default="user")
    db_password: str = Field(default="password")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    gpt_model_full: str = Field(default="gpt-4.1")
    gpt_model_fast: str = Field(default="gpt-4.1-mini")
    gpt_model_search: Optional[str] = Field(default="gpt-4o-search-preview")

    # Google Calendar
    google_calendar_base_url: str = Field(default="https://www.googleapis.com/calendar/v3")
    calendar_horizon_days: int = 30
    calendar_trigger_words: List[str] = Field(default=[
        "event", "kalender", "booking", "kommende", "denne måned", "i dag", "i morgen",
        "calendar", "upcoming", "this month", "today", "tomorrow",
    ])

    # Группировка сессий для истории
    timezone: str = "Europe/Copenhagen"
    history_grouping: Literal["date", "explicit"] = "date"
    history_fetch_limit: int = 1000
    session_message_limit: int = 100

    # Сборка контекста
    recency_window: int = 10
    recall_days: int = 7
    recall_fetch_limit: int = 20
    recall_use: int = 10
    recall_truncate: int = 100

    # Саммари сессий
    summary_message_limit: int = 10
    summary_truncate: int = 200

    log_level: str = "INFO"

    @property
    def postgres_dsn(self) -> str:
        """Конструирует DSN для PostgreSQL из отдельных параметров"""
        return f"postgres://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"


settings = None

def get_settings() -> Settings:
    """Получить настройки приложения с ленивой инициализацией"""
    global settings
    if settings is None:
        settings = Settings()
    return settings

def reset_settings():
    """Сбросить кэшированные настройки (для тестирования)"""
    global settings
    settings = None
