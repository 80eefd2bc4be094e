"""
Tests for MessageSynchronizer against an in-memory message store
"""
import pytest

from adpilot.application.services.message_synchronizer import MessageNotFoundError, MessageSynchronizer
from adpilot.domain.entities.chat_message import CONFIRMED, OPTIMISTIC
from adpilot.domain.repositories.chat_message_repository import ChatPersistenceError
from tests.conftest import InMemoryChatMessageRepository, make_row


@pytest.fixture
def seeded_repo():
    return InMemoryChatMessageRepository([make_row(i) for i in range(5)])


@pytest.fixture
def sync(seeded_repo):
    return MessageSynchronizer("user-1", seeded_repo, page_size=2)


class TestPaging:

    @pytest.mark.asyncio
    async def test_load_initial_returns_newest_page_in_order(self, sync):
        messages = await sync.load_initial()

        assert [m.id for m in messages] == ["row-3", "row-4"]
        assert sync.has_more is True

    @pytest.mark.asyncio
    async def test_load_more_returns_only_added_messages(self, sync):
        await sync.load_initial()

        first = await sync.load_more()
        second = await sync.load_more()
        third = await sync.load_more()

        assert [m.id for m in first] == ["row-1", "row-2"]
        assert [m.id for m in second] == ["row-0"]
        assert third == []
        assert sync.has_more is False
        assert [m.id for m in sync.messages] == [f"row-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_other_users_rows_are_not_loaded(self, seeded_repo):
        seeded_repo.rows.append(make_row(9, user_id="user-2"))
        sync = MessageSynchronizer("user-1", seeded_repo, page_size=10)

        messages = await sync.load_initial()

        assert "row-9" not in [m.id for m in messages]

    @pytest.mark.asyncio
    async def test_refresh_keeps_unconfirmed_optimistic(self, sync):
        await sync.load_initial()
        optimistic = sync.add_optimistic("still sending")

        await sync.refresh()

        assert sync.find(optimistic.client_id).sync_state == OPTIMISTIC
        assert len(sync.messages) == 3

    @pytest.mark.asyncio
    async def test_clear_drops_local_state_only(self, sync, seeded_repo):
        await sync.load_initial()

        sync.clear()

        assert sync.messages == []
        assert len(seeded_repo.rows) == 5


class TestSend:

    @pytest.mark.asyncio
    async def test_persist_binds_durable_id(self, sync, seeded_repo):
        await sync.load_initial()
        optimistic = sync.add_optimistic("hello")

        confirmed = await sync.persist_user_message(optimistic)

        assert confirmed.id == "row-1000"
        assert confirmed.sync_state == CONFIRMED
        assert confirmed.client_id == optimistic.client_id
        assert seeded_repo.rows[-1]["metadata"]["original_client_id"] == optimistic.client_id
        assert sync.messages[-1].id == "row-1000"

    @pytest.mark.asyncio
    async def test_realtime_echo_after_persist_is_deduplicated(self, sync, seeded_repo):
        await sync.load_initial()
        optimistic = sync.add_optimistic("hello")
        await sync.persist_user_message(optimistic)

        sync.on_realtime_row(seeded_repo.rows[-1])

        assert [m.id for m in sync.messages].count("row-1000") == 1

    @pytest.mark.asyncio
    async def test_realtime_echo_before_persist_confirms_optimistic(self, sync, seeded_repo):
        optimistic = sync.add_optimistic("hello")
        row = seeded_repo.insert_message("user-1", "user", "hello", dict(optimistic.metadata))

        sync.on_realtime_row(row)
        confirmed = sync.find(optimistic.client_id)

        assert confirmed.id == row["id"]
        assert len(sync.messages) == 1

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_optimistic_entry(self, sync, seeded_repo):
        seeded_repo.fail_inserts = True
        optimistic = sync.add_optimistic("hello")

        with pytest.raises(ChatPersistenceError):
            await sync.persist_user_message(optimistic)

        assert sync.find(optimistic.client_id).is_optimistic

    @pytest.mark.asyncio
    async def test_assistant_message_is_stored_with_ai_role(self, sync, seeded_repo):
        message = sync.append_assistant("Pause it", "action", [{"method": "POST", "endpoint": "/1"}])

        persisted = await sync.persist_assistant_message(message)

        stored = seeded_repo.rows[-1]
        assert stored["role"] == "ai"
        assert stored["metadata"]["has_executable_operations"] is True
        assert stored["metadata"]["type"] == "action"
        assert persisted.role == "assistant"
        assert persisted.sync_state == CONFIRMED
        assert message.client_id.startswith("ai_")

    @pytest.mark.asyncio
    async def test_assistant_persist_failure_is_not_raised(self, sync, seeded_repo):
        seeded_repo.fail_inserts = True
        message = sync.append_assistant("Hi")

        assert await sync.persist_assistant_message(message) is None
        assert sync.find(message.client_id) is not None


class TestFeedback:

    @pytest.mark.asyncio
    async def test_toggle_on_then_off(self, sync, seeded_repo):
        await sync.load_initial()

        first = await sync.update_feedback("row-4", "positive")
        second = await sync.update_feedback("row-4", "positive")

        assert first == "positive"
        assert second is None
        assert seeded_repo.get_by_id("user-1", "row-4")["feedback"] is None
        assert sync.find("row-4").feedback is None

    @pytest.mark.asyncio
    async def test_feedback_on_message_outside_loaded_page(self, sync, seeded_repo):
        await sync.load_initial()

        value = await sync.update_feedback("row-0", "negative")

        assert value == "negative"
        assert seeded_repo.get_by_id("user-1", "row-0")["feedback"] == "negative"

    @pytest.mark.asyncio
    async def test_optimistic_message_cannot_be_rated(self, sync):
        optimistic = sync.add_optimistic("hello")

        with pytest.raises(MessageNotFoundError):
            await sync.update_feedback(optimistic.client_id, "positive")

    @pytest.mark.asyncio
    async def test_unknown_message(self, sync):
        with pytest.raises(MessageNotFoundError):
            await sync.update_feedback("missing", "positive")

    @pytest.mark.asyncio
    async def test_invalid_value(self, sync):
        with pytest.raises(ValueError):
            await sync.update_feedback("row-4", "meh")

    @pytest.mark.asyncio
    async def test_store_failure_leaves_local_copy_untouched(self, sync, seeded_repo):
        await sync.load_initial()
        seeded_repo.fail_updates = True

        with pytest.raises(ChatPersistenceError):
            await sync.update_feedback("row-4", "positive")

        assert sync.find("row-4").feedback is None


@pytest.mark.asyncio
async def test_mirror_implemented(sync):
    await sync.load_initial()

    sync.mirror_implemented("row-3")

    assert sync.find("row-3").implemented is True
    assert sync.find("row-4").implemented is False
