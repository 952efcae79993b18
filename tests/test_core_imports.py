def test_core_imports():
    import core.context  # noqa: F401
    import core.models  # noqa: F401
    import core.services.conversation_store  # noqa: F401
    import core.services.reply_orchestrator  # noqa: F401
    import app.main  # noqa: F401


def test_core_smoke_lifecycle(db_session, orchestrator, make_user):
    from core.services import conversation_store

    user = make_user()
    chat = conversation_store.create_chat(db_session, user.id)

    result = orchestrator.send_message(user.id, chat.id, "Core import smoke message")
    assert result.user_message.content == "Core import smoke message"
    assert result.ai_message.content == "Hi there!"

    chats = conversation_store.list_chats(db_session, user.id)
    assert [c.id for c in chats] == [chat.id]
    assert chats[0].preview.id == result.ai_message.id

    conversation_store.delete_chat(db_session, user.id, chat.id)
    assert conversation_store.list_chats(db_session, user.id) == []
