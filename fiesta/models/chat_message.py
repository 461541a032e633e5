from tortoise import fields, models
from enum import Enum
import uuid


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class AIMode(str, Enum):
    """Режимы ассистента"""
    AUTO = "auto"          # Быстрые ответы и маршрутизация задач
    COMPUTE = "compute"    # Анализ, расчёты, веб-поиск
    AGENT = "agent"        # Многошаговое планирование


class MessageStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class TaskType(str, Enum):
    """Типы задач, определяемые по ключевым словам"""
    CUSTOMER_SERVICE = "kundeservice"
    MARKETING = "marketing"
    PLANNING = "planlægning"
    SEO = "SEO"
    OPERATIONS = "drift"
    FINANCE = "økonomi"


class ChatMessage(models.Model):
    """Одна реплика диалога с ассистентом"""
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user_id = fields.CharField(max_length=128, description="Владелец сообщения")
    session_id = fields.CharField(max_length=128, description="ID сессии, задается клиентом")
    role = fields.CharEnumField(MessageRole, description="Автор реплики")
    content = fields.TextField(description="Текст сообщения")
    mode = fields.CharEnumField(AIMode, default=AIMode.AUTO, description="Режим ассистента")
    task_type = fields.CharEnumField(TaskType, null=True, description="Тип задачи по ключевым словам")
    status = fields.CharEnumField(MessageStatus, default=MessageStatus.COMPLETED)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "chat_messages"
        indexes = [
            models.Index(fields=["user_id", "created_at"], name="idx_chat_message_user_created"),
            models.Index(fields=["user_id", "session_id"], name="idx_chat_message_session"),
        ]

    def __str__(self):
        return f"ChatMessage(id={self.id}, role={self.role}, text='{self.content[:50]}...')"
