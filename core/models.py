"""
Chatline Database Models
Users, chats and their append-only message transcripts
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
import uuid

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Enum
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid_default() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Enums
# =============================================================================

class Sender(str, PyEnum):
    user = "user"
    ai = "ai"


# =============================================================================
# Users (credential store)
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_code = Column(String(6))
    verification_code_expires_at = Column(DateTime)
    reset_code = Column(String(6))
    reset_code_expires_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    chats = relationship("Chat", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# Chats (conversation threads)
# =============================================================================

class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    # Advanced by every appended message; also the floor for the next message timestamp
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="chats")
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    __table_args__ = (
        Index("ix_chats_user_updated", "user_id", "updated_at"),
    )


# =============================================================================
# Messages
# =============================================================================

class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    sender = Column(
        Enum(Sender, name="message_sender", native_enum=False, length=10),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        CheckConstraint("sender IN ('user', 'ai')", name="ck_messages_sender"),
        CheckConstraint("length(trim(content)) > 0", name="ck_messages_content_not_blank"),
        Index("ix_messages_chat_created", "chat_id", "created_at"),
    )
