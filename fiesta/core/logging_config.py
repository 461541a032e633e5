"""
Конфигурация логирования для FiestaAI.
Настройка разделения INFO логов (stdout) и ERROR логов (stderr).
"""

import logging
import sys


LOG_FORMAT = '[%(asctime)s] [PID %(process)d] [%(name)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class InfoFilter(logging.Filter):
    """Фильтр для пропуска только INFO и DEBUG сообщений."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= logging.INFO


class ErrorFilter(logging.Filter):
    """Фильтр для пропуска только WARNING, ERROR и CRITICAL сообщений."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.WARNING


def _quiet_libraries() -> None:
    logging.getLogger("httpx").setLevel(logging.WARNING)  # Меньше шума от HTTP запросов
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("tortoise").setLevel(logging.WARNING)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Настройка логирования с разделением потоков только для модулей fiesta.
    Root logger не трогаем, uvicorn настраивает его сам.

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Handler для INFO и DEBUG (stdout)
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(InfoFilter())
    stdout_handler.setFormatter(formatter)

    # Handler для WARNING, ERROR, CRITICAL (stderr)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.addFilter(ErrorFilter())
    stderr_handler.setFormatter(formatter)

    app_logger = logging.getLogger("fiesta")
    app_logger.handlers.clear()
    app_logger.addHandler(stdout_handler)
    app_logger.addHandler(stderr_handler)
    app_logger.setLevel(getattr(logging, log_level.upper()))
    app_logger.propagate = False  # Не передавать в root logger

    _quiet_libraries()

    app_logger.info("Логирование настроено успешно для модулей fiesta")


def setup_test_logging(log_level: str = "INFO") -> None:
    """
    Настройка логирования для тестов.
    В тестах используем propagate=True чтобы caplog мог ловить сообщения.
    """
    app_logger = logging.getLogger("fiesta")
    app_logger.setLevel(getattr(logging, log_level.upper()))
    app_logger.propagate = True  # Важно для caplog в тестах

    _quiet_libraries()
