from typing import List

from fiesta.models.chat_message import TaskType
from fiesta.models.task import Task, TaskPriority


def _shorten(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."


class TaskRepository:
    async def create(self, user_id: str, *, task_type: TaskType, title: str,
                     description: str | None, priority: TaskPriority = TaskPriority.MEDIUM) -> Task:
        return await Task.create(
            user_id=user_id, type=task_type, title=title, description=description, priority=priority
        )

    async def create_from_chat(self, user_id: str, task_type: TaskType, user_input: str, ai_response: str) -> Task:
        """Создает follow-up задачу по реплике пользователя и ответу ассистента"""
        description = ai_response[:200] + ("..." if len(ai_response) > 200 else "")
        return await self.create(
            user_id,
            task_type=task_type,
            title=f"AI: {_shorten(user_input, 50)}",
            description=description,
        )

    async def list_for_user(self, user_id: str) -> List[Task]:
        return await Task.filter(user_id=user_id).order_by("-created_at").all()
