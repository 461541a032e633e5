"""
Менеджер диалоговых сессий FiestaAI.
Создание сессий, история, саммари и потоковые ответы ассистента.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import AsyncIterator, List, Optional, Set
from uuid import UUID
from zoneinfo import ZoneInfo

from fiesta.core.config import Settings, get_settings
from fiesta.models.chat_message import AIMode, ChatMessage, MessageRole, MessageStatus, TaskType
from fiesta.models.task import Task
from fiesta.repositories.message_repository import MessageRepository
from fiesta.repositories.summary_repository import SummaryRepository
from fiesta.repositories.task_repository import TaskRepository
from fiesta.schemas.chat import (
    ChatMessageOut,
    ChatSessionOut,
    ConversationContext,
    ReasoningStep,
    SessionDetailOut,
)
from fiesta.services.context_builder import MODE_PROFILES, ContextBuilder
from fiesta.services.session_grouping import DateSessionGrouping, get_grouping
from fiesta.services.text_generation import OpenAIService
from fiesta.utils.prompt_manager import prompt_manager
from fiesta.utils.summarizer import analyze_reasoning, session_stats, summarize_session
from fiesta.utils.text_analysis import classify


logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "Beklager, der opstod en fejl. Prøv venligst igen."


class AssistantTurn:
    """
    Один ответ ассистента в процессе генерации.

    Итерация дает фрагменты текста в порядке получения (один раз, без перезапуска).
    Генерация не отменяется, если потребитель перестал читать: ответ все равно сохранится.
    """

    _DONE = object()

    def __init__(self, user_message: ChatMessage, message: ChatMessage):
        self.user_message = user_message
        self.message = message
        self.followup_task: Optional[Task] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._consumed = False

    def push(self, chunk: str) -> None:
        self._queue.put_nowait(chunk)

    def finish(self) -> None:
        self._queue.put_nowait(self._DONE)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        if self._consumed:
            return
        self._consumed = True
        while True:
            item = await self._queue.get()
            if item is self._DONE:
                return
            yield item

    async def result(self) -> ChatMessage:
        """Дожидается завершения и возвращает финальное сообщение ассистента"""
        return await self._task


class ChatService:
    def __init__(
        self,
        message_repo: Optional[MessageRepository] = None,
        summary_repo: Optional[SummaryRepository] = None,
        task_repo: Optional[TaskRepository] = None,
        context_builder: Optional[ContextBuilder] = None,
        openai_service: Optional[OpenAIService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.timezone)
        self.message_repo = message_repo or MessageRepository()
        self.summary_repo = summary_repo or SummaryRepository()
        self.task_repo = task_repo or TaskRepository()
        self.context_builder = context_builder or ContextBuilder(self.message_repo, settings=self.settings)
        self._openai_service = openai_service
        self.grouping = get_grouping(self.settings.history_grouping, self.tz)
        self.legacy = DateSessionGrouping(self.tz)
        self._running: Set[asyncio.Task] = set()

    @property
    def openai_service(self) -> OpenAIService:
        if self._openai_service is None:
            self._openai_service = OpenAIService()
        return self._openai_service

    # --- Сессии ---

    def new_session_id(self) -> str:
        # Время в мс: коллизия при одновременном создании в двух вкладках допустима
        return f"session_{int(time.time() * 1000)}"

    async def _write_welcome(self, user_id: str, session_id: str, template: str) -> ChatMessage:
        return await self.message_repo.create(
            user_id=user_id,
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            content=prompt_manager.render(template),
            mode=AIMode.AUTO,
            status=MessageStatus.COMPLETED,
        )

    async def start_session(self, user_id: str, explicit: bool = True) -> str:
        """
        Начинает сессию и сохраняет приветствие.

        Args:
            user_id: Пользователь
            explicit: True - новая сессия с новым ID; False - legacy сессия текущего дня

        Returns:
            ID сессии
        """
        if explicit:
            session_id = self.new_session_id()
            await self._write_welcome(user_id, session_id, "welcome_new_session")
            logger.info(f"Новая сессия {session_id} для пользователя {user_id}")
            return session_id

        session_id = self.legacy.key_for_date(datetime.now(self.tz).date())
        existing = await self.message_repo.list(user_id, session_id=session_id, limit=1)
        if not existing:
            await self._write_welcome(user_id, session_id, "welcome")
            logger.info(f"Legacy сессия {session_id} создана для пользователя {user_id}")
        return session_id

    async def resume_session(self, context: ConversationContext) -> List[ChatMessage]:
        """Возврат к существующей сессии: только чтение"""
        return await self.load_session(context.user_id, context.session_id)

    async def load_session(self, user_id: str, session_id: str) -> List[ChatMessage]:
        """Сообщения сессии по возрастанию времени. Пустой список, если ничего не найдено."""
        try:
            messages = await self.grouping.load(
                self.message_repo, user_id, session_id, limit=self.settings.session_message_limit
            )
        except Exception as e:
            logger.error(f"Ошибка загрузки сессии {session_id} пользователя {user_id}: {e}")
            return []

        if not messages:
            logger.info(f"Сессия {session_id} пользователя {user_id} пуста")
        return sorted(messages, key=lambda m: m.created_at)

    async def list_sessions(self, user_id: str, with_summaries: bool = True) -> List[ChatSessionOut]:
        """Сессии пользователя, последние по активности первыми"""
        try:
            messages = await self.message_repo.list_recent(user_id, limit=self.settings.history_fetch_limit)
        except Exception as e:
            logger.error(f"Ошибка загрузки истории пользователя {user_id}: {e}")
            return []

        summaries = {}
        if with_summaries:
            for key, group in self.grouping.group(messages).items():
                ordered = sorted(group, key=lambda m: m.created_at)
                summaries[key] = await self.get_session_summary(user_id, key, ordered)

        return self.grouping.build_sessions(user_id, messages, summaries)

    async def get_session_summary(self, user_id: str, session_key: str, messages: List) -> str:
        """
        Саммари из кэша, если первые сообщения сессии не изменились, иначе новое.
        Пустое саммари не кэшируется.
        """
        source_count = min(len(messages), self.settings.summary_message_limit)
        if source_count == 0:
            return ""

        try:
            cached = await self.summary_repo.get(user_id, session_key)
            if cached and cached.source_count == source_count:
                return cached.summary
        except Exception as e:
            logger.warning(f"Кэш саммари недоступен для {session_key}: {e}")

        summary = await summarize_session(messages, self._openai_service)
        if summary:
            try:
                await self.summary_repo.save(user_id, session_key, summary, source_count)
            except Exception as e:
                logger.warning(f"Не удалось сохранить саммари {session_key}: {e}")
        return summary

    async def get_session_detail(self, user_id: str, session_key: str) -> Optional[SessionDetailOut]:
        messages = await self.load_session(user_id, session_key)
        if not messages:
            return None
        summary = await self.get_session_summary(user_id, session_key, messages)
        return SessionDetailOut(
            session=self.grouping.build_session(session_key, user_id, messages, summary),
            messages=[ChatMessageOut.model_validate(m) for m in messages],
            stats=session_stats(messages),
        )

    async def analyze_session(self, user_id: str, session_key: str) -> List[ReasoningStep]:
        messages = await self.load_session(user_id, session_key)
        return await analyze_reasoning(messages, self._openai_service)

    # --- Сообщения ---

    async def _recent_window(self, context: ConversationContext) -> List[ChatMessage]:
        try:
            latest = await self.message_repo.list(
                context.user_id,
                session_id=context.session_id,
                newest_first=True,
                limit=self.settings.recency_window,
            )
        except Exception as e:
            logger.warning(f"Не удалось загрузить последние сообщения сессии {context.session_id}: {e}")
            return []
        return list(reversed(latest))

    async def send_message(self, context: ConversationContext, content: str) -> AssistantTurn:
        """
        Сохраняет сообщение пользователя и запускает потоковый ответ ассистента.

        Args:
            context: Пользователь, сессия, режим
            content: Текст сообщения

        Returns:
            AssistantTurn: поток фрагментов и финальное сообщение

        Raises:
            ValueError: пустое сообщение
        """
        content = content.strip()
        if not content:
            raise ValueError("Message content is empty")
        task_type = classify(content)
        recent = await self._recent_window(context)

        user_message = await self.message_repo.create(
            user_id=context.user_id,
            session_id=context.session_id,
            role=MessageRole.USER,
            content=content,
            mode=context.mode,
            status=MessageStatus.COMPLETED,
            task_type=task_type,
        )
        assistant_message = await self.message_repo.create(
            user_id=context.user_id,
            session_id=context.session_id,
            role=MessageRole.ASSISTANT,
            content="",
            mode=context.mode,
            status=MessageStatus.PENDING,
        )

        turn = AssistantTurn(user_message, assistant_message)
        task = asyncio.create_task(self._run_turn(turn, context, content, recent, task_type))
        turn._task = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return turn

    async def _run_turn(
        self,
        turn: AssistantTurn,
        context: ConversationContext,
        content: str,
        recent: List[ChatMessage],
        task_type: Optional[TaskType],
    ) -> ChatMessage:
        message = turn.message
        buffer: List[str] = []
        # finish() вызывается всегда, в том числе при отмене задачи
        try:
            try:
                bundle = await self.context_builder.build(
                    context, content, recent, task_type, now=turn.user_message.created_at
                )
                async for chunk in self.openai_service.stream_chat(bundle.to_messages(), bundle.options):
                    buffer.append(chunk)
                    turn.push(chunk)
                message.content = "".join(buffer)
                message.status = MessageStatus.COMPLETED
                message.task_type = task_type
            except Exception:
                logger.exception(f"Ошибка генерации ответа в сессии {context.session_id}")
                message.content = APOLOGY_MESSAGE
                message.status = MessageStatus.ERROR
                turn.push(("\n\n" if buffer else "") + APOLOGY_MESSAGE)

            try:
                await self.message_repo.update(
                    message.id, content=message.content, status=message.status, task_type=message.task_type
                )
            except Exception:
                logger.exception(f"Не удалось сохранить ответ ассистента {message.id}")
        finally:
            turn.finish()

        if message.status == MessageStatus.COMPLETED:
            turn.followup_task = await self._create_followup(context, task_type, content, message.content)
        return message

    async def _create_followup(self, context: ConversationContext, task_type: Optional[TaskType],
                               user_input: str, ai_response: str) -> Optional[Task]:
        if not task_type:
            return None
        if not (MODE_PROFILES[context.mode].creates_followups or "opgave" in ai_response.lower()):
            return None
        try:
            task = await self.task_repo.create_from_chat(context.user_id, task_type, user_input, ai_response)
            logger.info(f"Создана follow-up задача {task.id} ({task_type.value})")
            return task
        except Exception as e:
            logger.warning(f"Не удалось создать задачу из чата: {e}")
            return None

    async def delete_message(self, user_id: str, message_id: UUID) -> bool:
        deleted = await self.message_repo.delete(user_id, message_id)
        return deleted > 0
