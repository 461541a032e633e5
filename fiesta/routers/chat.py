import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from fastapi.responses import StreamingResponse

from fiesta.schemas.chat import (
    ChatMessageOut,
    ConversationContext,
    SendMessageRequest,
    StartSessionRequest,
    StartSessionResponse,
)
from fiesta.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()

_chat_service: Optional[ChatService] = None


async def get_chat_service() -> ChatService:
    # Один экземпляр держит ссылки на незавершенные ответы ассистента
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service


async def get_user_id(x_user_id: str = Header(...)) -> str:
    """Пользователь приходит от внешней платформы аутентификации"""
    return x_user_id


@router.post("/sessions", response_model=StartSessionResponse)
async def start_session(payload: StartSessionRequest, user_id: str = Depends(get_user_id),
                        svc: ChatService = Depends(get_chat_service)):
    try:
        session_id = await svc.start_session(user_id, explicit=payload.explicit)
    except Exception:
        logger.exception(f"Не удалось создать сессию для пользователя {user_id}")
        raise HTTPException(status_code=503, detail="Message store unavailable")
    return StartSessionResponse(session_id=session_id)


@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessageOut])
async def session_messages(session_id: str, user_id: str = Depends(get_user_id),
                           svc: ChatService = Depends(get_chat_service)):
    messages = await svc.load_session(user_id, session_id)
    return [ChatMessageOut.model_validate(m) for m in messages]


@router.post("/messages")
async def send_message(payload: SendMessageRequest, user_id: str = Depends(get_user_id),
                       svc: ChatService = Depends(get_chat_service)):
    context = ConversationContext(
        user_id=user_id, session_id=payload.session_id, mode=payload.mode, advanced=payload.advanced
    )
    try:
        turn = await svc.send_message(context, payload.content)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception:
        logger.exception(f"Не удалось сохранить сообщение в сессии {payload.session_id}")
        raise HTTPException(status_code=503, detail="Message store unavailable")

    return StreamingResponse(
        turn,
        media_type="text/plain; charset=utf-8",
        headers={"X-Message-Id": str(turn.message.id), "X-User-Message-Id": str(turn.user_message.id)},
    )


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(message_id: uuid.UUID, user_id: str = Depends(get_user_id),
                         svc: ChatService = Depends(get_chat_service)):
    if not await svc.delete_message(user_id, message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return Response(status_code=204)
