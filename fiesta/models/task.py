from tortoise import fields, models
from enum import Enum
import uuid

from fiesta.models.chat_message import TaskType


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user_id = fields.CharField(max_length=128)
    type = fields.CharEnumField(TaskType)
    title = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    status = fields.CharEnumField(TaskStatus, default=TaskStatus.PENDING)
    priority = fields.CharEnumField(TaskPriority, default=TaskPriority.MEDIUM)

    # Временные метки
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "tasks"
        indexes = [
            models.Index(fields=["user_id"], name="idx_task_user"),
            models.Index(fields=["status"], name="idx_task_status"),
        ]
