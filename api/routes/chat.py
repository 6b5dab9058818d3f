"""
Chat API endpoint.

POST /api/chat takes a message, learns what it can about the user and
returns the persona's reply. Remote-LLM failures are absorbed by the
pipeline, so any reply (fallbacks included) is a 200.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api.services.chat_pipeline import get_chat_pipeline
from config.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

MESSAGE_REQUIRED = "Message is required"

# Session cookies live for a year
SESSION_MAX_AGE = 60 * 60 * 24 * 365


class ChatRequest(BaseModel):
    """Request for the chat endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatResponse(BaseModel):
    """Reply from the persona."""
    reply: str


def resolve_user_id(body: ChatRequest, request: Request, response: Response) -> str:
    """
    Pick the user identity for a chat turn.

    Order: explicit userId, then the session cookie, then a new session id
    which is set as the cookie.
    """
    if body.user_id and body.user_id.strip():
        return body.user_id.strip()

    session_id = request.cookies.get(settings.session_cookie)
    if session_id:
        return session_id

    session_id = str(uuid.uuid4())
    response.set_cookie(
        settings.session_cookie,
        session_id,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    logger.info(f"Assigned new session {session_id}")
    return session_id


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request, response: Response):
    """
    **Chat with the persona.**

    Facts stated in the message (name, favorite color, location, pet,
    hobby, ...) are remembered per user and used in later replies.
    """
    if not body.message or not body.message.strip():
        return JSONResponse(status_code=400, content={"error": MESSAGE_REQUIRED})

    try:
        user_id = resolve_user_id(body, request, response)
        result = await get_chat_pipeline().handle(body.message, user_id)
    except Exception as e:
        logger.exception(f"Chat request failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return ChatResponse(reply=result.reply)
