import asyncio

import pytest

from common.events import EditingChanged
from colloquy.errors import InvalidInput, NotFound, ServiceError
from colloquy.models import PersistedId


class TestEditPersisted:
    @pytest.mark.asyncio
    async def test_edit_replaces_pair_through_placeholder(self, chat, service):
        chat_id = service.add_chat("A", pairs=1)
        await chat.select_chat(chat_id)
        original, reply = chat.messages

        chat.begin_edit(original.id)
        assert chat.editing_id == original.id

        service.hold()
        editing = asyncio.create_task(chat.submit_edit(original.id, "new"))
        await service.entered.wait()

        [placeholder] = chat.messages
        assert placeholder.is_temporary
        assert placeholder.content == "new"

        service.release()
        assert await editing is True

        assert [m.content for m in chat.messages] == ["new", "answer to new"]
        assert all(isinstance(m.id, PersistedId) for m in chat.messages)
        assert original.id not in [m.id for m in chat.messages]
        assert chat.editing_id is None
        assert service.called("edit_message")[0][2] == original.id

    @pytest.mark.asyncio
    async def test_edit_earlier_message_moves_pair_to_tail(self, chat, service):
        await chat.select_chat(service.add_chat("A", pairs=2))
        first = chat.messages[0]

        chat.begin_edit(first.id)
        assert await chat.submit_edit(first.id, "rewritten")

        assert [m.content for m in chat.messages] == [
            "question 2",
            "answer to question 2",
            "rewritten",
            "answer to rewritten",
        ]

    @pytest.mark.asyncio
    async def test_failed_edit_leaves_edit_mode(self, chat, service, event_log):
        await chat.select_chat(service.add_chat("A", pairs=1))
        target = chat.messages[0]
        service.failures["edit_message"] = ServiceError("teapot")

        chat.begin_edit(target.id)
        assert await chat.submit_edit(target.id, "new") is False

        assert chat.editing_id is None
        [placeholder] = chat.messages
        assert placeholder.is_temporary and not placeholder.pending
        assert [n.message for n in event_log.notifications] == ["Неуспешна редакция"]


class TestEditTemporary:
    @pytest.mark.asyncio
    async def test_unconfirmed_message_is_resent(self, chat, service):
        await chat.select_chat(service.add_chat())
        service.hold()
        sending = asyncio.create_task(chat.send("typo"))
        await service.entered.wait()
        [placeholder] = chat.messages

        chat.begin_edit(placeholder.id)
        assert await sending is False
        assert not chat.is_loading

        service.release()
        assert await chat.submit_edit(placeholder.id, "fixed")

        assert [m.content for m in chat.messages] == ["fixed", "answer to fixed"]
        assert service.called("edit_message") == []
        assert len(service.called("send_message")) == 2


class TestEditState:
    @pytest.mark.asyncio
    async def test_only_user_messages_can_be_edited(self, chat, service):
        await chat.select_chat(service.add_chat("A", pairs=1))
        with pytest.raises(InvalidInput):
            chat.begin_edit(chat.messages[1].id)
        assert chat.editing_id is None

    def test_unknown_message_cannot_be_edited(self, chat):
        with pytest.raises(NotFound):
            chat.begin_edit(PersistedId(key="missing"))

    @pytest.mark.asyncio
    async def test_cancel_edit_announces_viewing(self, chat, service, event_log):
        await chat.select_chat(service.add_chat("A", pairs=1))
        target = chat.messages[0].id
        chat.begin_edit(target)
        chat.cancel_edit()

        states = [e.message_id for e in event_log.events if isinstance(e, EditingChanged)]
        assert states == [target, None]
        assert len(chat.messages) == 2

    @pytest.mark.asyncio
    async def test_empty_edit_is_rejected_and_keeps_edit_mode(self, chat, service):
        await chat.select_chat(service.add_chat("A", pairs=1))
        target = chat.messages[0].id
        chat.begin_edit(target)
        with pytest.raises(InvalidInput):
            await chat.submit_edit(target, "  ")
        assert chat.editing_id == target
        assert len(chat.messages) == 2
