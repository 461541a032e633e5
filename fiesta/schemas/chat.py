from pydantic import BaseModel, ConfigDict, StringConstraints
from typing import Annotated, Dict, List, Optional
from datetime import datetime
import uuid

from fiesta.models.chat_message import AIMode, MessageRole, MessageStatus, TaskType


class ConversationContext(BaseModel):
    """Контекст одного диалога: передается в каждую операцию вместо глобального состояния"""
    user_id: str
    session_id: str
    mode: AIMode = AIMode.AUTO
    advanced: bool = False


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    session_id: str
    role: MessageRole
    content: str
    mode: AIMode = AIMode.AUTO
    task_type: Optional[TaskType] = None
    status: MessageStatus = MessageStatus.COMPLETED
    created_at: datetime


class ChatSessionOut(BaseModel):
    """Сессия, вычисленная из набора сообщений"""
    id: str
    user_id: str
    title: str
    summary: str = ""
    tags: List[str] = []
    message_count: int
    created_at: datetime
    last_message_at: datetime


class SessionStats(BaseModel):
    task_types: Dict[str, int] = {}
    modes: Dict[str, int] = {}
    duration_minutes: int = 0


class SessionDetailOut(BaseModel):
    session: ChatSessionOut
    messages: List[ChatMessageOut]
    stats: SessionStats


class ReasoningStep(BaseModel):
    step: int
    title: str
    description: str
    outcome: str


class CalendarEvent(BaseModel):
    title: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None
    attendees: int = 0


class GenerationOptions(BaseModel):
    model: Optional[str] = None
    search: bool = False
    max_steps: int = 5
    temperature: float = 0.7


class ContextBundle(BaseModel):
    """Все, что уходит в модель для одного ответа ассистента"""
    system_prompt: str
    history: List[Dict[str, str]] = []
    user_message: str
    options: GenerationOptions
    recall_block: str = ""
    calendar_block: str = ""

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            *self.history,
            {"role": "user", "content": self.user_message},
        ]


class StartSessionRequest(BaseModel):
    explicit: bool = True


class StartSessionResponse(BaseModel):
    session_id: str


class SendMessageRequest(BaseModel):
    session_id: str
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
    mode: AIMode = AIMode.AUTO
    advanced: bool = False
