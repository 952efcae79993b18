import pytest

from core.errors import ChatForbidden, ProviderError, ValidationIssue
from core.models import Sender
from core.services import conversation_store
from core.services.context_assembler import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_USER
from core.services.reply_orchestrator import ChatTurnLocks, ReplyOrchestrator


@pytest.fixture
def chat_owner(db_session, make_user):
    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)
    return user, chat


def test_send_message_persists_pair(db_session, orchestrator, chat_owner):
    user, chat = chat_owner

    result = orchestrator.send_message(user.id, chat.id, "Hello")

    stored = conversation_store.get_chat(db_session, user.id, chat.id)
    assert [(m.sender, m.content) for m in stored.messages] == [
        (Sender.user, "Hello"),
        (Sender.ai, "Hi there!"),
    ]
    assert result.user_message.id == stored.messages[0].id
    assert result.ai_message.id == stored.messages[1].id
    assert stored.updated_at > chat.updated_at
    assert stored.updated_at == result.ai_message.created_at


def test_context_includes_history_and_new_message(db_session, orchestrator, model_client, chat_owner):
    user, chat = chat_owner
    orchestrator.send_message(user.id, chat.id, "First question")

    orchestrator.send_message(user.id, chat.id, "  Second question  ")

    turns = model_client.calls[-1]
    assert [(t.role, t.content) for t in turns] == [
        (ROLE_SYSTEM, "You are a test assistant."),
        (ROLE_USER, "First question"),
        (ROLE_ASSISTANT, "Hi there!"),
        (ROLE_USER, "Second question"),
    ]


def test_message_length_boundaries(db_session, orchestrator, model_client, chat_owner):
    user, chat = chat_owner

    orchestrator.send_message(user.id, chat.id, "x" * 2000)
    with pytest.raises(ValidationIssue) as too_long:
        orchestrator.send_message(user.id, chat.id, "x" * 2001)
    with pytest.raises(ValidationIssue) as blank:
        orchestrator.send_message(user.id, chat.id, " \n\t ")

    assert too_long.value.field == "content"
    assert str(too_long.value) == "Message too long (max 2000 characters)"
    assert str(blank.value) == "Message cannot be empty"
    assert len(conversation_store.list_messages(db_session, chat.id)) == 2
    assert len(model_client.calls) == 1


def test_validation_runs_before_storage(model_client):
    def exploding_factory():
        raise AssertionError("storage touched")

    orchestrator = ReplyOrchestrator(exploding_factory, model_client)

    with pytest.raises(ValidationIssue):
        orchestrator.send_message("user", "chat", "")


def test_provider_failure_keeps_user_message(db_session, orchestrator, model_client, chat_owner):
    user, chat = chat_owner
    model_client.error = ProviderError("upstream timeout")

    with pytest.raises(ProviderError):
        orchestrator.send_message(user.id, chat.id, "Hello")

    stored = conversation_store.get_chat(db_session, user.id, chat.id)
    assert [(m.sender, m.content) for m in stored.messages] == [(Sender.user, "Hello")]
    assert len(model_client.calls) == 1


def test_unexpected_client_crash_becomes_provider_error(db_session, orchestrator, model_client, chat_owner):
    user, chat = chat_owner
    model_client.error = KeyError("choices")

    with pytest.raises(ProviderError):
        orchestrator.send_message(user.id, chat.id, "Hello")

    assert len(conversation_store.list_messages(db_session, chat.id)) == 1


def test_resend_after_failure_appends_new_user_message(db_session, orchestrator, model_client, chat_owner):
    user, chat = chat_owner
    model_client.error = ProviderError("down")
    with pytest.raises(ProviderError):
        orchestrator.send_message(user.id, chat.id, "Hello")
    model_client.error = None

    orchestrator.send_message(user.id, chat.id, "Hello")

    senders = [m.sender for m in conversation_store.list_messages(db_session, chat.id)]
    assert senders == [Sender.user, Sender.user, Sender.ai]


@pytest.mark.parametrize("reply", ["", "   \n", None])
def test_empty_reply_uses_fallback(db_session, orchestrator, model_client, chat_owner, reply):
    user, chat = chat_owner
    model_client.reply = lambda turns: reply

    result = orchestrator.send_message(user.id, chat.id, "Hello")

    assert result.ai_message.content == "Sorry, I could not generate a response."


def test_foreign_or_missing_chat_is_forbidden(db_session, orchestrator, model_client, make_user, chat_owner):
    _, chat = chat_owner
    intruder = make_user()

    with pytest.raises(ChatForbidden):
        orchestrator.send_message(intruder.id, chat.id, "Hello")
    with pytest.raises(ChatForbidden):
        orchestrator.send_message(intruder.id, "no-such-chat", "Hello")

    assert conversation_store.list_messages(db_session, chat.id) == []
    assert model_client.calls == []


def test_chat_deleted_during_model_call(db_session, session_factory, model_client, chat_owner):
    user, chat = chat_owner

    def delete_then_reply(turns):
        db = session_factory()
        try:
            conversation_store.delete_chat(db, user.id, chat.id)
        finally:
            db.close()
        return "too late"

    model_client.reply = delete_then_reply
    orchestrator = ReplyOrchestrator(session_factory, model_client)

    with pytest.raises(ChatForbidden):
        orchestrator.send_message(user.id, chat.id, "Hello")


def test_turn_locks_release_entries():
    locks = ChatTurnLocks()

    with locks.hold("chat-1"):
        with locks.hold("chat-2"):
            assert len(locks) == 2

    assert len(locks) == 0
