from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import ChatNotFound, StorageError, ValidationIssue
from core.models import Chat, Message, Sender
from core.services import conversation_store


def test_create_chat_starts_empty(db_session, make_user):
    user = make_user()

    chat = conversation_store.create_chat(db_session, user.id)

    assert chat.user_id == user.id
    assert chat.created_at == chat.updated_at
    assert chat.messages == ()
    assert conversation_store.get_chat(db_session, user.id, chat.id).messages == ()


def test_append_message_advances_updated_at(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)

    first = conversation_store.append_message(db_session, chat.id, Sender.user, "Hello")
    second = conversation_store.append_message(db_session, chat.id, "ai", "Hi!")

    stored = conversation_store.get_chat(db_session, user.id, chat.id)
    assert second.created_at > first.created_at
    assert stored.updated_at == second.created_at
    assert [m.sender for m in stored.messages] == [Sender.user, Sender.ai]


def test_timestamps_strictly_increase_even_when_clock_lags(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)
    future = chat.updated_at + timedelta(hours=1)
    db_session.query(Chat).filter(Chat.id == chat.id).update({"updated_at": future})
    db_session.commit()

    message = conversation_store.append_message(db_session, chat.id, Sender.user, "late clock")

    assert message.created_at == future + conversation_store.TIMESTAMP_STEP


def test_list_messages_in_creation_order(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)
    for index in range(6):
        sender = Sender.user if index % 2 == 0 else Sender.ai
        conversation_store.append_message(db_session, chat.id, sender, f"message {index}")

    messages = conversation_store.list_messages(db_session, chat.id)

    assert [m.content for m in messages] == [f"message {i}" for i in range(6)]
    stamps = [m.created_at for m in messages]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_get_chat_is_repeatable(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)
    conversation_store.append_message(db_session, chat.id, Sender.user, "Hello")
    conversation_store.append_message(db_session, chat.id, Sender.ai, "Hi!")

    first = conversation_store.get_chat(db_session, user.id, chat.id)
    second = conversation_store.get_chat(db_session, user.id, chat.id)

    assert first == second


def test_list_chats_orders_by_activity_with_single_preview(db_session, make_user):
    user = make_user()
    older = conversation_store.create_chat(db_session, user.id)
    newer = conversation_store.create_chat(db_session, user.id)
    conversation_store.append_message(db_session, newer.id, Sender.user, "first")
    conversation_store.append_message(db_session, older.id, Sender.user, "question")
    conversation_store.append_message(db_session, older.id, Sender.ai, "answer")

    chats = conversation_store.list_chats(db_session, user.id)

    assert [c.id for c in chats] == [older.id, newer.id]
    assert chats[0].preview.content == "answer"
    assert chats[1].preview.content == "first"
    assert all(c.messages == () for c in chats)


def test_list_chats_without_messages_has_no_preview(db_session, make_user):
    user = make_user()
    conversation_store.create_chat(db_session, user.id)

    chats = conversation_store.list_chats(db_session, user.id)

    assert len(chats) == 1
    assert chats[0].preview is None


def test_chats_are_scoped_to_owner(db_session, make_user):
    owner = make_user()
    other = make_user()
    chat = conversation_store.create_chat(db_session, owner.id)

    assert conversation_store.list_chats(db_session, other.id) == []
    assert conversation_store.chat_exists_for_user(db_session, owner.id, chat.id)
    assert not conversation_store.chat_exists_for_user(db_session, other.id, chat.id)
    with pytest.raises(ChatNotFound):
        conversation_store.get_chat(db_session, other.id, chat.id)
    with pytest.raises(ChatNotFound):
        conversation_store.delete_chat(db_session, other.id, chat.id)
    assert conversation_store.get_chat(db_session, owner.id, chat.id).id == chat.id


def test_delete_chat_removes_all_messages(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)
    for index in range(5):
        conversation_store.append_message(db_session, chat.id, Sender.user, f"m{index}")

    conversation_store.delete_chat(db_session, user.id, chat.id)

    with pytest.raises(ChatNotFound):
        conversation_store.get_chat(db_session, user.id, chat.id)
    assert db_session.query(Message).filter(Message.chat_id == chat.id).count() == 0


def test_append_message_to_missing_chat(db_session):
    with pytest.raises(ChatNotFound):
        conversation_store.append_message(db_session, "missing", Sender.user, "Hello")


def test_append_message_rejects_unknown_sender_and_blank_content(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)

    with pytest.raises(ValidationIssue) as sender_exc:
        conversation_store.append_message(db_session, chat.id, "system", "Hello")
    with pytest.raises(ValidationIssue) as content_exc:
        conversation_store.append_message(db_session, chat.id, Sender.user, "   ")

    assert sender_exc.value.field == "sender"
    assert content_exc.value.field == "content"
    assert conversation_store.list_messages(db_session, chat.id) == []


def test_storage_failure_is_reported_as_storage_error(db_session, monkeypatch):
    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    monkeypatch.setattr(db_session, "query", broken_query)

    with pytest.raises(StorageError):
        conversation_store.list_chats(db_session, "someone")
