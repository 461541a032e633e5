"""
Эвристики по ключевым словам: тип задачи и теги сессии.
Чистые функции без внешних вызовов.
"""
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from fiesta.models.chat_message import TaskType


class HasContent(Protocol):
    content: str
    task_type: Optional[TaskType]


# Порядок важен: побеждает первое совпадение
TASK_TYPE_RULES: Sequence[Tuple[Tuple[str, ...], TaskType]] = (
    (("mail", "kunde", "forespørgsel", "svar", "customer"), TaskType.CUSTOMER_SERVICE),
    (("social", "facebook", "instagram", "marketing"), TaskType.MARKETING),
    (("event", "booking", "kalender", "planlæg", "calendar"), TaskType.PLANNING),
    (("penge", "faktura", "regnskab", "økonomi", "invoice", "money"), TaskType.FINANCE),
    (("menu", "mad", "drift", "vogn", "food"), TaskType.OPERATIONS),
    (("seo", "website", "google"), TaskType.SEO),
)

TOPIC_TAG_RULES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("event", "booking"), "events"),
    (("menu", "food", "mad"), "menu"),
    (("social", "facebook"), "social-media"),
    (("invoice", "money", "faktura", "penge"), "finance"),
    (("customer", "mail", "kunde"), "customer-service"),
)


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify(content: str) -> Optional[TaskType]:
    """
    Определяет тип задачи по первому совпавшему набору ключевых слов.

    Args:
        content: Текст сообщения пользователя

    Returns:
        TaskType или None если ничего не совпало
    """
    lower = content.lower()
    for keywords, task_type in TASK_TYPE_RULES:
        if contains_any(lower, keywords):
            return task_type
    return None


def extract_tags(messages: Iterable[HasContent]) -> List[str]:
    """
    Теги сессии: типы задач сообщений плюс тематические теги по ключевым словам.
    Без дубликатов, в порядке первого появления.
    """
    tags: List[str] = []

    def add(tag: str) -> None:
        if tag not in tags:
            tags.append(tag)

    for msg in messages:
        if msg.task_type:
            add(TaskType(msg.task_type).value)

        content = msg.content.lower()
        for keywords, tag in TOPIC_TAG_RULES:
            if contains_any(content, keywords):
                add(tag)

    return tags


def matches_trigger(content: str, trigger_words: Iterable[str]) -> bool:
    """Проверяет, содержит ли сообщение одно из слов-триггеров"""
    return contains_any(content.lower(), [word.lower() for word in trigger_words])


def truncate(text: str, limit: int, suffix: str = "") -> str:
    return text[:limit] + suffix
