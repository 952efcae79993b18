"""
Chat endpoints: create, list, fetch and delete the caller's chats.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from core.context import RequestContext
from core.services import conversation_store
from app.deps import get_db_session, get_request_context
from app.schemas import (
    ChatDetailOut,
    ChatOut,
    ChatSummaryOut,
    DeletedOut,
    chat_detail_out,
    chat_out,
    chat_summary_out,
)


router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("", status_code=201, response_model=ChatOut)
def create_chat(
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    return chat_out(conversation_store.create_chat(db, ctx.user_id))


@router.get("", response_model=list[ChatSummaryOut], response_model_exclude_none=True)
def list_chats(
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    """The caller's chats, most recently active first, each with its latest message."""
    return [chat_summary_out(record) for record in conversation_store.list_chats(db, ctx.user_id)]


@router.get("/{chat_id}", response_model=ChatDetailOut)
def get_chat(
    chat_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    return chat_detail_out(conversation_store.get_chat(db, ctx.user_id, chat_id))


@router.delete("/{chat_id}", response_model=DeletedOut)
def delete_chat(
    chat_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    conversation_store.delete_chat(db, ctx.user_id, chat_id)
    return DeletedOut(id=chat_id)
