"""
Группировка плоского лога сообщений в сессии.

Две стратегии за одним интерфейсом:
- explicit: по session_id, который клиент задает при создании сообщения;
- date: по календарной дате created_at (legacy). Позволяет сгруппировать
  старые сообщения, созданные до появления session_id, и дает понятную
  единицу "разговор за день" для истории и саммари.
"""
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from fiesta.models.chat_message import MessageRole
from fiesta.repositories.message_repository import MessageRepository
from fiesta.schemas.chat import ChatSessionOut
from fiesta.utils.text_analysis import extract_tags


TITLE_LIMIT = 50
DAY_KEY_PREFIX = "day_"


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Дата в локальной зоне. Наивное время считается уже локальным."""
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(tz).date()


def derive_title(messages: Sequence, fallback_date: Optional[date] = None) -> str:
    """Первое сообщение пользователя, обрезанное до 50 символов, иначе "Chat D.M.YYYY" """
    ordered = sorted(messages, key=lambda m: m.created_at)
    first_user = next((m for m in ordered if m.role == MessageRole.USER), None)
    if first_user:
        content = first_user.content
        return content if len(content) <= TITLE_LIMIT else content[:TITLE_LIMIT - 3] + "..."
    day = fallback_date or (ordered[0].created_at.date() if ordered else date.today())
    return f"Chat {day.day}.{day.month}.{day.year}"


class SessionGrouping:
    """Стратегия группировки сообщений"""

    name: str = ""

    def __init__(self, tz: ZoneInfo):
        self.tz = tz

    def key_for(self, message) -> str:
        raise NotImplementedError

    def fallback_date(self, key: str, messages: Sequence) -> Optional[date]:
        return None

    async def load(self, repo: MessageRepository, user_id: str, key: str, limit: Optional[int] = None) -> List:
        raise NotImplementedError

    def group(self, messages: Sequence) -> "OrderedDict[str, List]":
        """Разбивает сообщения на группы, сохраняя порядок первого появления ключа"""
        groups: "OrderedDict[str, List]" = OrderedDict()
        for msg in messages:
            groups.setdefault(self.key_for(msg), []).append(msg)
        return groups

    def build_session(self, key: str, user_id: str, messages: Sequence, summary: str = "") -> ChatSessionOut:
        ordered = sorted(messages, key=lambda m: m.created_at)
        return ChatSessionOut(
            id=key,
            user_id=user_id,
            title=derive_title(ordered, self.fallback_date(key, ordered)),
            summary=summary,
            tags=extract_tags(ordered),
            message_count=len(ordered),
            created_at=ordered[0].created_at,
            last_message_at=ordered[-1].created_at,
        )

    def build_sessions(self, user_id: str, messages: Sequence,
                       summaries: Optional[Dict[str, str]] = None) -> List[ChatSessionOut]:
        """Сессии по убыванию last_message_at"""
        summaries = summaries or {}
        sessions = [
            self.build_session(key, user_id, msgs, summaries.get(key, ""))
            for key, msgs in self.group(messages).items()
        ]
        return sorted(sessions, key=lambda s: s.last_message_at, reverse=True)


class ExplicitSessionGrouping(SessionGrouping):
    name = "explicit"

    def key_for(self, message) -> str:
        return message.session_id

    async def load(self, repo: MessageRepository, user_id: str, key: str, limit: Optional[int] = None) -> List:
        return await repo.list_for_session(user_id, key, limit=limit)


class DateSessionGrouping(SessionGrouping):
    name = "date"

    def key_for_date(self, day: date) -> str:
        return f"{DAY_KEY_PREFIX}{day.isoformat()}"

    def key_for(self, message) -> str:
        return self.key_for_date(local_date(message.created_at, self.tz))

    def parse_key(self, key: str) -> Optional[date]:
        if not key.startswith(DAY_KEY_PREFIX):
            return None
        try:
            return date.fromisoformat(key[len(DAY_KEY_PREFIX):])
        except ValueError:
            return None

    def day_range(self, day: date) -> Tuple[datetime, datetime]:
        """[начало дня, начало следующего дня) в UTC"""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def fallback_date(self, key: str, messages: Sequence) -> Optional[date]:
        return self.parse_key(key)

    async def load(self, repo: MessageRepository, user_id: str, key: str, limit: Optional[int] = None) -> List:
        day = self.parse_key(key)
        if day is None:
            # Явный session_id (например, при возврате к сессии из чата)
            return await repo.list_for_session(user_id, key, limit=limit)
        start, end = self.day_range(day)
        return await repo.list_between(user_id, start, end)


GROUPINGS = {
    ExplicitSessionGrouping.name: ExplicitSessionGrouping,
    DateSessionGrouping.name: DateSessionGrouping,
}


def get_grouping(name: str, tz: ZoneInfo) -> SessionGrouping:
    try:
        return GROUPINGS[name](tz)
    except KeyError:
        raise ValueError(f"Unknown session grouping '{name}'")


def filter_sessions(sessions: List[ChatSessionOut], query: str = "", tags: Optional[List[str]] = None,
                    sort_by: str = "recent") -> List[ChatSessionOut]:
    """Поиск по заголовку/саммари, фильтр по любому из тегов и сортировка"""
    result = sessions
    if query:
        needle = query.lower()
        result = [s for s in result if needle in s.title.lower() or needle in s.summary.lower()]
    if tags:
        result = [s for s in result if any(tag in s.tags for tag in tags)]

    if sort_by == "oldest":
        return sorted(result, key=lambda s: s.created_at)
    if sort_by == "title":
        return sorted(result, key=lambda s: s.title.lower())
    return sorted(result, key=lambda s: s.last_message_at, reverse=True)
