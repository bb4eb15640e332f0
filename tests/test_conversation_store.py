"""Conversation store tests (in-memory + Supabase with a mocked client)."""

import asyncio
import datetime

import pytest
from unittest.mock import AsyncMock, MagicMock

from red_ai.config import Settings
from red_ai.errors import StoreError
from red_ai.stores.conversation import (
    InMemoryConversationStore,
    SupabaseConversationStore,
    build_conversation_store,
    new_timestamp,
)
from red_ai.types import ConversationStoreKind, ConversationTurn


def _turn(ts: str, prompt: str = "hello", user_id: str = "u1") -> ConversationTurn:
    return ConversationTurn(user_id=user_id, timestamp=ts, prompt=prompt)


class TestNewTimestamp:
    def test_sortable_by_time(self):
        t0 = datetime.datetime(2026, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
        t1 = t0 + datetime.timedelta(microseconds=1)
        assert new_timestamp("ffffffff", t0) < new_timestamp("00000000", t1)

    def test_unique_for_same_instant(self):
        """같은 순간의 두 run도 서로 다른 sort key를 갖는다."""
        now = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)
        assert new_timestamp("aaaaaaaa11", now) != new_timestamp("bbbbbbbb22", now)

    def test_format(self):
        now = datetime.datetime(2026, 1, 1, 9, 30, tzinfo=datetime.timezone.utc)
        assert new_timestamp("0123456789abcdef", now) == "2026-01-01T09:30:00.000000+00:00#01234567"


@pytest.mark.asyncio
class TestInMemoryConversationStore:
    async def test_put_and_get(self):
        store = InMemoryConversationStore()
        await store.put_turn(_turn("t1"))
        turn = await store.get_turn("u1", "t1")
        assert turn is not None
        assert turn.prompt == "hello"

    async def test_get_missing(self):
        store = InMemoryConversationStore()
        assert await store.get_turn("u1", "nope") is None

    async def test_conflict_without_overwrite(self):
        store = InMemoryConversationStore()
        await store.put_turn(_turn("t1"))
        with pytest.raises(StoreError):
            await store.put_turn(_turn("t1", prompt="other"))

    async def test_overwrite_enriches(self):
        store = InMemoryConversationStore()
        await store.put_turn(_turn("t1"))
        enriched = ConversationTurn(user_id="u1", timestamp="t1", prompt="hello", completion="hi", audio_ref="u1/r")
        await store.put_turn(enriched, overwrite=True)
        turn = await store.get_turn("u1", "t1")
        assert turn.completion == "hi"
        assert turn.audio_ref == "u1/r"

    async def test_list_turns_recent_oldest_first(self):
        store = InMemoryConversationStore()
        for ts in ("t3", "t1", "t2", "t4"):
            await store.put_turn(_turn(ts, prompt=ts))
        await store.put_turn(_turn("t0", user_id="u2"))

        turns = await store.list_turns("u1", limit=3)
        assert [t.timestamp for t in turns] == ["t2", "t3", "t4"]

    async def test_concurrent_writes_distinct_keys(self):
        store = InMemoryConversationStore()
        await asyncio.gather(*(store.put_turn(_turn(f"t{i}")) for i in range(10)))
        assert len(store) == 10


def _supabase_client(execute_result=None, execute_error=None) -> MagicMock:
    """client.table(...).<chain>.execute() 을 흉내내는 mock."""
    client = MagicMock()
    query = MagicMock()
    for method in ("insert", "upsert", "select", "eq", "order", "limit"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=execute_result, side_effect=execute_error)
    client.table.return_value = query
    return client


@pytest.fixture
def supabase_settings() -> Settings:
    return Settings(_env_file=None, supabase_url="https://x.supabase.co", supabase_service_key="key")


@pytest.mark.asyncio
class TestSupabaseConversationStore:
    async def test_put_turn_inserts(self, supabase_settings):
        client = _supabase_client()
        store = SupabaseConversationStore(supabase_settings, client=client)

        await store.put_turn(_turn("t1"))

        client.table.assert_called_with("chat_turns")
        query = client.table.return_value
        query.insert.assert_called_once()
        assert query.insert.call_args[0][0]["prompt"] == "hello"
        query.upsert.assert_not_called()

    async def test_put_turn_overwrite_upserts(self, supabase_settings):
        client = _supabase_client()
        store = SupabaseConversationStore(supabase_settings, client=client)

        await store.put_turn(_turn("t1"), overwrite=True)

        query = client.table.return_value
        query.upsert.assert_called_once()
        assert query.upsert.call_args.kwargs["on_conflict"] == "user_id,timestamp"

    async def test_put_turn_error_is_store_error(self, supabase_settings):
        client = _supabase_client(execute_error=RuntimeError("duplicate key"))
        store = SupabaseConversationStore(supabase_settings, client=client)

        with pytest.raises(StoreError, match="duplicate key"):
            await store.put_turn(_turn("t1"))

    async def test_get_turn(self, supabase_settings):
        row = {"user_id": "u1", "timestamp": "t1", "prompt": "hello", "completion": "", "audio_ref": ""}
        client = _supabase_client(execute_result=MagicMock(data=[row]))
        store = SupabaseConversationStore(supabase_settings, client=client)

        turn = await store.get_turn("u1", "t1")
        assert turn == ConversationTurn(**row)

    async def test_get_turn_not_found(self, supabase_settings):
        client = _supabase_client(execute_result=MagicMock(data=[]))
        store = SupabaseConversationStore(supabase_settings, client=client)
        assert await store.get_turn("u1", "t1") is None

    async def test_list_turns_reverses_desc_query(self, supabase_settings):
        rows = [
            {"user_id": "u1", "timestamp": "t2", "prompt": "b"},
            {"user_id": "u1", "timestamp": "t1", "prompt": "a"},
        ]
        client = _supabase_client(execute_result=MagicMock(data=rows))
        store = SupabaseConversationStore(supabase_settings, client=client)

        turns = await store.list_turns("u1", limit=5)

        assert [t.prompt for t in turns] == ["a", "b"]
        query = client.table.return_value
        query.order.assert_called_once_with("timestamp", desc=True)
        query.limit.assert_called_once_with(5)


class TestBuildConversationStore:
    def test_memory(self):
        s = Settings(_env_file=None, conversation_store=ConversationStoreKind.MEMORY)
        assert isinstance(build_conversation_store(s), InMemoryConversationStore)

    def test_supabase(self, supabase_settings):
        assert isinstance(build_conversation_store(supabase_settings), SupabaseConversationStore)

    def test_supabase_requires_credentials(self):
        s = Settings(_env_file=None, conversation_store=ConversationStoreKind.SUPABASE, supabase_url="")
        with pytest.raises(ValueError):
            build_conversation_store(s)
