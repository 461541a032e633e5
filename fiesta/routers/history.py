from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from fiesta.routers.chat import get_chat_service, get_user_id
from fiesta.schemas.chat import ChatSessionOut, ReasoningStep, SessionDetailOut
from fiesta.services.chat_service import ChatService
from fiesta.services.session_grouping import filter_sessions

router = APIRouter()


@router.get("/sessions", response_model=List[ChatSessionOut])
async def list_sessions(
    query: str = "",
    tags: Optional[List[str]] = Query(default=None),
    sort_by: Literal["recent", "oldest", "title"] = "recent",
    user_id: str = Depends(get_user_id),
    svc: ChatService = Depends(get_chat_service),
):
    sessions = await svc.list_sessions(user_id)
    return filter_sessions(sessions, query=query, tags=tags, sort_by=sort_by)


@router.get("/sessions/{session_key}", response_model=SessionDetailOut)
async def session_detail(session_key: str, user_id: str = Depends(get_user_id),
                         svc: ChatService = Depends(get_chat_service)):
    detail = await svc.get_session_detail(user_id, session_key)
    if detail is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return detail


@router.post("/sessions/{session_key}/analysis", response_model=List[ReasoningStep])
async def analyze_session(session_key: str, user_id: str = Depends(get_user_id),
                          svc: ChatService = Depends(get_chat_service)):
    return await svc.analyze_session(user_id, session_key)
