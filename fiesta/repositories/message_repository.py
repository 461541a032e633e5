"""
Репозиторий сообщений чата (Message Store)
"""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fiesta.models.chat_message import ChatMessage, MessageRole, MessageStatus, AIMode, TaskType


class MessageRepository:
    """Append-mostly хранилище сообщений. Все запросы ограничены одним пользователем."""

    async def create(
        self,
        user_id: str,
        session_id: str,
        role: MessageRole,
        content: str,
        mode: AIMode = AIMode.AUTO,
        status: MessageStatus = MessageStatus.COMPLETED,
        task_type: Optional[TaskType] = None,
        created_at: Optional[datetime] = None,
    ) -> ChatMessage:
        """
        Создать сообщение

        Args:
            user_id: Владелец
            session_id: ID сессии
            role: user или assistant
            content: Текст
            mode: Режим ассистента
            status: Статус (для пользователя всегда completed)
            task_type: Тип задачи
            created_at: Время создания (по умолчанию текущее)

        Returns:
            ChatMessage: Созданное сообщение
        """
        kwargs = {}
        if created_at is not None:
            kwargs["created_at"] = created_at
        return await ChatMessage.create(
            user_id=user_id,
            session_id=session_id,
            role=role,
            content=content,
            mode=mode,
            status=status,
            task_type=task_type,
            **kwargs,
        )

    async def get(self, message_id: UUID) -> Optional[ChatMessage]:
        return await ChatMessage.filter(id=message_id).first()

    async def update(self, message_id: UUID, **fields) -> int:
        """Финализирует статус/контент сообщения. Возвращает число обновленных строк."""
        return await ChatMessage.filter(id=message_id).update(**fields)

    async def delete(self, user_id: str, message_id: UUID) -> int:
        """Удаляет сообщение только если оно принадлежит пользователю"""
        return await ChatMessage.filter(id=message_id, user_id=user_id).delete()

    async def list(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
        exclude_status: Optional[MessageStatus] = None,
    ) -> List[ChatMessage]:
        """
        Универсальная выборка сообщений пользователя

        Args:
            user_id: Владелец
            session_id: Точное совпадение ID сессии
            created_from: Нижняя граница created_at (включительно)
            created_before: Верхняя граница created_at (не включительно)
            newest_first: Порядок по убыванию created_at
            limit: Ограничение количества
            exclude_status: Пропустить сообщения с этим статусом

        Returns:
            List[ChatMessage]: Сообщения
        """
        query = ChatMessage.filter(user_id=user_id)

        if session_id is not None:
            query = query.filter(session_id=session_id)
        if created_from is not None:
            query = query.filter(created_at__gte=created_from)
        if created_before is not None:
            query = query.filter(created_at__lt=created_before)
        if exclude_status is not None:
            query = query.exclude(status=exclude_status)

        query = query.order_by("-created_at" if newest_first else "created_at")

        if limit:
            query = query.limit(limit)

        return await query.all()

    async def list_for_session(self, user_id: str, session_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        return await self.list(user_id, session_id=session_id, limit=limit)

    async def list_between(self, user_id: str, start: datetime, end: datetime) -> List[ChatMessage]:
        return await self.list(user_id, created_from=start, created_before=end)

    async def list_recent(self, user_id: str, limit: int, since: Optional[datetime] = None,
                          until: Optional[datetime] = None,
                          exclude_status: Optional[MessageStatus] = None) -> List[ChatMessage]:
        """Последние сообщения пользователя, новые первыми"""
        return await self.list(
            user_id, created_from=since, created_before=until, newest_first=True, limit=limit,
            exclude_status=exclude_status,
        )
