import json
import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from fiesta.core.config import get_settings
from fiesta.models.chat_message import MessageRole
from fiesta.schemas.chat import ReasoningStep, SessionStats
from fiesta.services.text_generation import OpenAIService
from fiesta.utils.prompt_manager import prompt_manager


logger = logging.getLogger(__name__)


def role_name(value) -> str:
    return value.value if isinstance(value, MessageRole) else str(value)


def format_conversation(messages: Iterable, limit: Optional[int] = None, truncate_to: Optional[int] = None,
                        separator: str = "\n") -> str:
    """Сообщения в формате "role: content" в исходном порядке"""
    selected = list(messages)
    if limit is not None:
        selected = selected[:limit]
    lines = []
    for msg in selected:
        content = msg.content if truncate_to is None else msg.content[:truncate_to]
        lines.append(f"{role_name(msg.role)}: {content}")
    return separator.join(lines)


async def summarize_session(messages: List, openai_service: Optional[OpenAIService] = None) -> str:
    """
    Генерирует короткое датское саммари сессии (до 100 слов).

    Args:
        messages: Сообщения сессии по возрастанию времени
        openai_service: Сервис генерации (по умолчанию быстрая модель)

    Returns:
        Саммари или пустая строка, если генерация не удалась
    """
    if not messages:
        return ""

    settings = get_settings()
    conversation = format_conversation(
        messages, limit=settings.summary_message_limit, truncate_to=settings.summary_truncate
    )

    try:
        service = openai_service or OpenAIService(gpt_model=settings.gpt_model_fast)
        prompt = prompt_manager.render("session_summary", conversation=conversation)
        summary = await service.generate(prompt)
        return summary.strip().strip('"')
    except Exception as e:
        # Пустое саммари = "еще не посчитано", повторим позже
        logger.warning(f"Не удалось сгенерировать саммари сессии: {e}")
        return ""


async def analyze_reasoning(messages: List, openai_service: Optional[OpenAIService] = None) -> List[ReasoningStep]:
    """Шаги рассуждения ассистента по диалогу. Невалидный JSON дает пустой список."""
    if not messages:
        return []

    settings = get_settings()
    conversation = format_conversation(messages, separator="\n\n")

    try:
        service = openai_service or OpenAIService(gpt_model=settings.gpt_model_fast)
        prompt = prompt_manager.render("conversation_reasoning", conversation=conversation)
        raw = await service.generate(prompt, max_tokens=800)
    except Exception as e:
        logger.warning(f"Не удалось проанализировать диалог: {e}")
        return []

    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            return []
        return [ReasoningStep(**item) for item in data]
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.warning(f"Ответ анализа не является валидным JSON массивом: {e}")
        return []


def session_stats(messages: List) -> SessionStats:
    """Счетчики типов задач и режимов плюс длительность сессии в минутах"""
    stats = SessionStats()
    for msg in messages:
        if msg.task_type:
            key = msg.task_type.value if hasattr(msg.task_type, "value") else str(msg.task_type)
            stats.task_types[key] = stats.task_types.get(key, 0) + 1
        if role_name(msg.role) == MessageRole.ASSISTANT.value:
            mode = msg.mode.value if hasattr(msg.mode, "value") else str(msg.mode)
            stats.modes[mode] = stats.modes.get(mode, 0) + 1

    if messages:
        delta = messages[-1].created_at - messages[0].created_at
        stats.duration_minutes = round(delta.total_seconds() / 60)
    return stats
