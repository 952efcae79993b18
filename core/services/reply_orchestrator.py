"""
Reply orchestration: one user turn in, one user/ai message pair out.

A turn walks these states, each of which may fail:

    validating -> authorizing -> persisting_user_message -> building_context
    -> calling_model -> persisting_ai_message -> completed

Storage steps each run in their own short session and transaction. The model
call sits between them and never inside one. When the model call fails the
user message stays stored and ProviderError propagates; nothing is retried or
rolled back.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Callable, Iterator, Optional, Sequence

import core.config as config
from core.errors import ChatForbidden, ChatNotFound, ProviderError
from core.models import Sender
from core.services import conversation_store
from core.services.context_assembler import PromptTurn, assemble
from core.services.conversation_store import ChatRecord, MessageRecord
from core.services.model_client import ModelClient
from core.validators import validate_message_content

logger = config.logger

FORBIDDEN_MESSAGE = "Unauthorized to send message in this chat"


class TurnState(str, PyEnum):
    validating = "validating"
    authorizing = "authorizing"
    persisting_user_message = "persisting_user_message"
    building_context = "building_context"
    calling_model = "calling_model"
    persisting_ai_message = "persisting_ai_message"
    completed = "completed"


@dataclass(frozen=True)
class TurnResult:
    user_message: MessageRecord
    ai_message: MessageRecord


class ChatTurnLocks:
    """
    Process-local mutual exclusion per chat id.

    Entries are reference counted and dropped once no turn holds or waits on
    them, so the registry only grows with the number of chats in flight.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, chat_id: str) -> Iterator[None]:
        with self._lock:
            entry = self._entries.get(chat_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[chat_id] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[chat_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ReplyOrchestrator:
    def __init__(
        self,
        session_factory: Callable,
        model_client: ModelClient,
        *,
        system_instruction: Optional[str] = None,
        max_message_length: Optional[int] = None,
        fallback_reply: Optional[str] = None,
        serialize_turns: Optional[bool] = None,
        turn_locks: Optional[ChatTurnLocks] = None,
    ):
        self.session_factory = session_factory
        self.model_client = model_client
        self.system_instruction = (
            config.SYSTEM_INSTRUCTION if system_instruction is None else system_instruction
        )
        self.max_message_length = max_message_length or config.MAX_MESSAGE_LENGTH
        self.fallback_reply = fallback_reply or config.FALLBACK_REPLY
        self.serialize_turns = config.SERIALIZE_TURNS if serialize_turns is None else serialize_turns
        self.turn_locks = turn_locks or ChatTurnLocks()

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _enter(self, state: TurnState, chat_id: str) -> None:
        logger.debug("turn_state", extra={"state": state.value, "chat_id": chat_id})

    def send_message(self, user_id: str, chat_id: str, content: str) -> TurnResult:
        """Store the user's message, get the model's reply, store it, return both."""
        self._enter(TurnState.validating, chat_id)
        text = validate_message_content(content, self.max_message_length)

        if self.serialize_turns:
            with self.turn_locks.hold(chat_id):
                return self._run_turn(user_id, chat_id, text)
        return self._run_turn(user_id, chat_id, text)

    def _run_turn(self, user_id: str, chat_id: str, text: str) -> TurnResult:
        self._enter(TurnState.authorizing, chat_id)
        snapshot = self._authorize(user_id, chat_id)

        self._enter(TurnState.persisting_user_message, chat_id)
        user_message = self._append(chat_id, Sender.user, text)

        # History comes from the authorization read; the new message is added in memory
        self._enter(TurnState.building_context, chat_id)
        turns = assemble(snapshot.messages + (user_message,), self.system_instruction)

        self._enter(TurnState.calling_model, chat_id)
        reply = self._call_model(chat_id, turns)

        self._enter(TurnState.persisting_ai_message, chat_id)
        ai_message = self._append(chat_id, Sender.ai, reply)

        self._enter(TurnState.completed, chat_id)
        logger.info(
            "turn_completed",
            extra={
                "chat_id": chat_id,
                "user_id": user_id,
                "user_message_id": user_message.id,
                "ai_message_id": ai_message.id,
                "context_turns": len(turns),
            },
        )
        return TurnResult(user_message=user_message, ai_message=ai_message)

    def _authorize(self, user_id: str, chat_id: str) -> ChatRecord:
        with self._session() as db:
            try:
                return conversation_store.get_chat(db, user_id, chat_id)
            except ChatNotFound as exc:
                logger.info("turn_forbidden", extra={"chat_id": chat_id, "user_id": user_id})
                raise ChatForbidden(FORBIDDEN_MESSAGE) from exc

    def _append(self, chat_id: str, sender: Sender, content: str) -> MessageRecord:
        with self._session() as db:
            try:
                return conversation_store.append_message(db, chat_id, sender, content)
            except ChatNotFound as exc:
                # Chat deleted mid-turn
                logger.warning("turn_chat_vanished", extra={"chat_id": chat_id, "sender": sender.value})
                raise ChatForbidden(FORBIDDEN_MESSAGE) from exc

    def _call_model(self, chat_id: str, turns: Sequence[PromptTurn]) -> str:
        try:
            reply = self.model_client.generate_reply(turns)
        except ProviderError as exc:
            logger.error(
                "model_call_failed",
                extra={"chat_id": chat_id, "provider": self.model_client.provider, "error": str(exc)},
            )
            raise
        except Exception as exc:
            logger.exception(
                "model_call_crashed",
                extra={"chat_id": chat_id, "provider": self.model_client.provider},
            )
            raise ProviderError("model call failed") from exc

        if not isinstance(reply, str) or not reply.strip():
            logger.warning("model_reply_empty", extra={"chat_id": chat_id})
            return self.fallback_reply
        return reply
