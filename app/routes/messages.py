"""
Message endpoints: send a turn to a chat and read its transcript.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from core.context import RequestContext
from core.errors import ChatForbidden
from core.services import conversation_store
from core.services.reply_orchestrator import ReplyOrchestrator
from app.deps import get_db_session, get_orchestrator, get_request_context
from app.schemas import MessageOut, SendMessageIn, TurnOut, message_out


router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/{chat_id}", status_code=201, response_model=TurnOut)
async def send_message(
    chat_id: str,
    payload: SendMessageIn,
    ctx: RequestContext = Depends(get_request_context),
    orchestrator: ReplyOrchestrator = Depends(get_orchestrator),
):
    """
    Store the user's message and the model's reply.

    The turn runs on a worker thread; a client disconnect does not stop it.
    """
    result = await asyncio.to_thread(orchestrator.send_message, ctx.user_id, chat_id, payload.content)
    return TurnOut(
        user_message=message_out(result.user_message),
        ai_message=message_out(result.ai_message),
    )


@router.get("/{chat_id}", response_model=list[MessageOut])
def list_messages(
    chat_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    if not conversation_store.chat_exists_for_user(db, ctx.user_id, chat_id):
        raise ChatForbidden("Unauthorized to view this chat")
    return [message_out(record) for record in conversation_store.list_messages(db, chat_id)]
