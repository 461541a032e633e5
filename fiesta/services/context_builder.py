"""
Сборка контекста для одного ответа ассистента:
окно последних сообщений, память из прошлых сессий, данные календаря и инструкции режима.
Каждый блок собирается независимо: ошибка в одном не отменяет остальные.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from fiesta.core.config import Settings, get_settings
from fiesta.models.chat_message import AIMode, MessageStatus, TaskType
from fiesta.repositories.message_repository import MessageRepository
from fiesta.schemas.chat import ContextBundle, ConversationContext, GenerationOptions
from fiesta.services.calendar_service import GoogleCalendarService
from fiesta.utils.prompt_manager import PromptManager, prompt_manager as default_prompt_manager
from fiesta.utils.summarizer import role_name
from fiesta.utils.text_analysis import matches_trigger, truncate


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeProfile:
    template: str
    full_model: bool
    search: bool
    max_steps: int
    creates_followups: bool = False


MODE_PROFILES: Dict[AIMode, ModeProfile] = {
    AIMode.AUTO: ModeProfile(template="mode_auto", full_model=False, search=False, max_steps=5),
    AIMode.COMPUTE: ModeProfile(template="mode_compute", full_model=True, search=True, max_steps=10),
    AIMode.AGENT: ModeProfile(template="mode_agent", full_model=True, search=False, max_steps=15,
                              creates_followups=True),
}


class ContextBuilder:
    def __init__(
        self,
        message_repo: Optional[MessageRepository] = None,
        calendar_service: Optional[GoogleCalendarService] = None,
        prompts: Optional[PromptManager] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.message_repo = message_repo or MessageRepository()
        self.calendar_service = calendar_service or GoogleCalendarService()
        self.prompts = prompts or default_prompt_manager

    def recency_window(self, recent_messages: Sequence) -> List[Dict[str, str]]:
        """Последние N сообщений активной сессии: только роль и текст"""
        window = list(recent_messages)[-self.settings.recency_window:] if self.settings.recency_window else []
        return [{"role": role_name(msg.role), "content": msg.content} for msg in window]

    async def recall_block(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Контекст из разговоров за последние дни. Пустая строка, если нечего добавить.
        Сообщения начиная с now и незавершенные ответы в блок не попадают.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.settings.recall_days)
        try:
            history = await self.message_repo.list_recent(
                user_id, limit=self.settings.recall_fetch_limit, since=since, until=now,
                exclude_status=MessageStatus.PENDING,
            )
        except Exception as e:
            logger.warning(f"Не удалось загрузить прошлые разговоры пользователя {user_id}: {e}")
            return ""

        if not history:
            return ""

        lines = [
            f"{role_name(msg.role)}: {truncate(msg.content, self.settings.recall_truncate, '...')}"
            for msg in history[:self.settings.recall_use]
        ]
        return self.prompts.render("recall_block", days=self.settings.recall_days, history="\n".join(lines))

    def needs_calendar(self, content: str) -> bool:
        return matches_trigger(content, self.settings.calendar_trigger_words)

    async def calendar_block(self, user_id: str, content: str) -> str:
        """Блок календаря только для сообщений с триггерами. Ошибка видна ассистенту явно."""
        if not self.needs_calendar(content):
            return ""

        horizon = self.settings.calendar_horizon_days
        try:
            events = await self.calendar_service.list_upcoming_events(user_id, horizon)
        except Exception as e:
            logger.warning(f"Календарь недоступен для пользователя {user_id}: {e}")
            return self.prompts.render("calendar_error", error=str(e) or e.__class__.__name__)

        if not events:
            return self.prompts.render("calendar_empty", days=horizon)
        return self.prompts.render("calendar_events", events=self.calendar_service.format_events_for_ai(events))

    def options_for(self, mode: AIMode, advanced: bool) -> GenerationOptions:
        profile = MODE_PROFILES[mode]
        return GenerationOptions(
            model=self.settings.gpt_model_full if profile.full_model else self.settings.gpt_model_fast,
            search=advanced or profile.search,
            max_steps=profile.max_steps,
        )

    def system_prompt(self, context: ConversationContext, options: GenerationOptions,
                      task_type: Optional[TaskType], recall: str, calendar: str) -> str:
        profile = MODE_PROFILES[context.mode]
        return self.prompts.render(
            "system_prompt",
            task_type=task_type.value if task_type else "generel",
            mode_name=context.mode.value.upper(),
            mode_instructions=self.prompts.render(profile.template, max_steps=options.max_steps),
            advanced="AKTIVERET - Brug web search til aktuelle data" if context.advanced else "DEAKTIVERET",
            recall_block=recall,
            calendar_block=calendar,
        )

    async def build(
        self,
        context: ConversationContext,
        new_user_message: str,
        recent_messages: Sequence,
        task_type: Optional[TaskType] = None,
        now: Optional[datetime] = None,
    ) -> ContextBundle:
        """
        Собирает ContextBundle для сервиса генерации.

        Args:
            context: Пользователь, сессия, режим, флаг расширенного поиска
            new_user_message: Новое сообщение пользователя
            recent_messages: Уже загруженные сообщения активной сессии по возрастанию времени
            task_type: Тип задачи, определенный по новому сообщению
            now: Начало текущего хода: память берется строго до этого момента

        Returns:
            ContextBundle
        """
        history = self.recency_window(recent_messages)
        recall = await self.recall_block(context.user_id, now=now)
        calendar = await self.calendar_block(context.user_id, new_user_message)
        options = self.options_for(context.mode, context.advanced)

        return ContextBundle(
            system_prompt=self.system_prompt(context, options, task_type, recall, calendar),
            history=history,
            user_message=new_user_message,
            options=options,
            recall_block=recall,
            calendar_block=calendar,
        )
