"""
Conversation storage services.

Chats and their append-only message transcripts:
- Create / list / fetch / delete chats scoped to their owner
- Append messages with strictly increasing per-chat timestamps
- List a chat's messages in creation order

Every function returns immutable snapshot records, never live ORM rows, so
callers can hold them after the session is closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from typing import Callable, Optional

from sqlalchemy import and_, update
from sqlalchemy.exc import SQLAlchemyError

import core.config as config
from core.errors import ChatNotFound, StorageError, ValidationIssue
from core.models import Chat, Message, Sender, utcnow

logger = config.logger

TIMESTAMP_STEP = timedelta(microseconds=1)


@dataclass(frozen=True)
class MessageRecord:
    id: str
    chat_id: str
    sender: Sender
    content: str
    created_at: datetime


@dataclass(frozen=True)
class ChatRecord:
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    messages: tuple[MessageRecord, ...] = ()
    preview: Optional[MessageRecord] = None


def _message_record(message: Message) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        chat_id=message.chat_id,
        sender=Sender(message.sender),
        content=message.content,
        created_at=message.created_at,
    )


def _chat_record(
    chat: Chat,
    messages: tuple[MessageRecord, ...] = (),
    preview: Optional[MessageRecord] = None,
) -> ChatRecord:
    return ChatRecord(
        id=chat.id,
        user_id=chat.user_id,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
        messages=messages,
        preview=preview,
    )


def _storage_guard(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(db, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "storage_error",
                extra={"operation": fn.__name__, "error_type": type(exc).__name__, "error": str(exc)},
            )
            raise StorageError(f"{fn.__name__} failed") from exc
    return wrapper


def _next_timestamp(floor: Optional[datetime]) -> datetime:
    now = utcnow()
    if floor is not None and now <= floor:
        return floor + TIMESTAMP_STEP
    return now


def _lock_chat_row(db, chat_id: str) -> bool:
    """
    Take the chat row's write lock inside the current transaction.

    A no-op UPDATE locks the row on postgres and takes the database write lock
    on sqlite, where SELECT ... FOR UPDATE is ignored.
    """
    chats = Chat.__table__
    result = db.execute(
        update(chats).where(chats.c.id == chat_id).values(updated_at=chats.c.updated_at)
    )
    return result.rowcount > 0


def _owned_chat_query(db, user_id: str, chat_id: str):
    # Other sessions may have advanced updated_at since this session cached the row
    return db.query(Chat).filter(Chat.id == chat_id, Chat.user_id == user_id).populate_existing()


def _ordered_messages(db, chat_id: str) -> tuple[MessageRecord, ...]:
    rows = (
        db.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return tuple(_message_record(row) for row in rows)


@_storage_guard
def create_chat(db, user_id: str) -> ChatRecord:
    """Create an empty chat owned by user_id."""
    now = utcnow()
    chat = Chat(user_id=user_id, created_at=now, updated_at=now)
    db.add(chat)
    db.flush()
    record = _chat_record(chat)
    db.commit()
    logger.info("chat_created", extra={"chat_id": record.id, "user_id": user_id})
    return record


@_storage_guard
def list_chats(db, user_id: str) -> list[ChatRecord]:
    """
    List a user's chats, most recently updated first.

    Each chat carries only its latest message as a preview. The latest message
    is the one stamped with the chat's updated_at, since appends set both to
    the same value.
    """
    rows = (
        db.query(Chat, Message)
        .outerjoin(
            Message,
            and_(
                Message.chat_id == Chat.id,
                Message.created_at == Chat.updated_at,
            ),
        )
        .filter(Chat.user_id == user_id)
        .order_by(Chat.updated_at.desc(), Chat.id.asc())
        .populate_existing()
        .all()
    )
    records: list[ChatRecord] = []
    seen: set[str] = set()
    for chat, message in rows:
        if chat.id in seen:
            continue
        seen.add(chat.id)
        preview = _message_record(message) if message is not None else None
        records.append(_chat_record(chat, preview=preview))
    return records


@_storage_guard
def get_chat(db, user_id: str, chat_id: str) -> ChatRecord:
    """Fetch a chat with its full transcript; ChatNotFound if missing or not owned."""
    chat = _owned_chat_query(db, user_id, chat_id).first()
    if chat is None:
        raise ChatNotFound("Chat not found")
    return _chat_record(chat, messages=_ordered_messages(db, chat.id))


@_storage_guard
def chat_exists_for_user(db, user_id: str, chat_id: str) -> bool:
    return db.query(Chat.id).filter(Chat.id == chat_id, Chat.user_id == user_id).first() is not None


@_storage_guard
def delete_chat(db, user_id: str, chat_id: str) -> None:
    """Delete a chat and every message in it, in one transaction."""
    chat = _owned_chat_query(db, user_id, chat_id).first()
    if chat is None:
        raise ChatNotFound("Chat not found")
    removed = (
        db.query(Message)
        .filter(Message.chat_id == chat.id)
        .delete(synchronize_session=False)
    )
    db.query(Chat).filter(Chat.id == chat.id).delete(synchronize_session=False)
    db.commit()
    logger.info("chat_deleted", extra={"chat_id": chat_id, "user_id": user_id, "messages_removed": removed})


@_storage_guard
def append_message(db, chat_id: str, sender, content: str) -> MessageRecord:
    """
    Append a message to a chat and advance the chat's updated_at.

    Ownership is not checked here; callers verify it before appending. The
    parent row is write-locked before its updated_at is read, so concurrent
    appends to one chat (from any thread or process) are stamped in commit
    order with distinct, increasing timestamps.
    """
    try:
        sender = Sender(sender)
    except ValueError as exc:
        raise ValidationIssue(
            "sender must be 'user' or 'ai'",
            field="sender",
            error_type="invalid_choice",
        ) from exc
    if not isinstance(content, str) or not content.strip():
        raise ValidationIssue("content must be a non-empty string", field="content", error_type="required")

    if not _lock_chat_row(db, chat_id):
        db.rollback()
        raise ChatNotFound("Chat not found")
    chat = db.query(Chat).filter(Chat.id == chat_id).populate_existing().one()

    stamp = _next_timestamp(chat.updated_at)
    message = Message(chat_id=chat.id, sender=sender, content=content, created_at=stamp)
    db.add(message)
    chat.updated_at = stamp
    db.flush()
    record = _message_record(message)
    db.commit()
    return record


@_storage_guard
def list_messages(db, chat_id: str) -> list[MessageRecord]:
    """List a chat's messages, oldest first."""
    return list(_ordered_messages(db, chat_id))
