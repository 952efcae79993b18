"""
Request and response bodies for the HTTP API (camelCase on the wire).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from core.models import Sender
from core.services.accounts import UserRecord
from core.services.conversation_store import ChatRecord, MessageRecord


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageOut(APIModel):
    id: str
    chat_id: str
    sender: Sender
    content: str
    created_at: datetime


class ChatOut(APIModel):
    id: str
    created_at: datetime
    updated_at: datetime


class ChatSummaryOut(ChatOut):
    preview_message: Optional[MessageOut] = None


class ChatDetailOut(ChatOut):
    messages: list[MessageOut]


class DeletedOut(APIModel):
    status: str = "deleted"
    id: str


class SendMessageIn(APIModel):
    content: str


class TurnOut(APIModel):
    user_message: MessageOut
    ai_message: MessageOut


class RegisterIn(APIModel):
    name: str
    email: str
    password: str


class VerifyCodeIn(APIModel):
    email: str
    code: str


class EmailIn(APIModel):
    email: str


class LoginIn(APIModel):
    email: str
    password: str


class ResetPasswordIn(APIModel):
    email: str
    code: str
    new_password: str


class UserOut(APIModel):
    id: str
    name: str
    email: str
    is_verified: bool


class RegisterOut(UserOut):
    needs_verification: bool
    email_sent: bool


class VerifiedOut(APIModel):
    message: str
    user: UserOut


class LoginOut(APIModel):
    user: UserOut
    token: str


class StatusOut(APIModel):
    message: str
    email_sent: Optional[bool] = None


def message_out(record: MessageRecord) -> MessageOut:
    return MessageOut(
        id=record.id,
        chat_id=record.chat_id,
        sender=record.sender,
        content=record.content,
        created_at=record.created_at,
    )


def chat_out(record: ChatRecord) -> ChatOut:
    return ChatOut(id=record.id, created_at=record.created_at, updated_at=record.updated_at)


def chat_summary_out(record: ChatRecord) -> ChatSummaryOut:
    return ChatSummaryOut(
        id=record.id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        preview_message=message_out(record.preview) if record.preview else None,
    )


def chat_detail_out(record: ChatRecord) -> ChatDetailOut:
    return ChatDetailOut(
        id=record.id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        messages=[message_out(message) for message in record.messages],
    )


def user_out(record: UserRecord) -> UserOut:
    return UserOut(id=record.id, name=record.name, email=record.email, is_verified=record.is_verified)
