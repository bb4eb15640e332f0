"""Conversation store — 대화 턴 영속화 (partition: user_id, sort: timestamp).

TranscriptStage가 새 턴을 만들고, CompletionStage는 히스토리를 읽기만 한다.
턴 보강(completion, audio_ref)은 오케스트레이터가 run 종료 시 수행한다.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Protocol

from supabase import AsyncClient, acreate_client

from red_ai.config import Settings
from red_ai.errors import StoreError
from red_ai.types import ConversationStoreKind, ConversationTurn

logger = logging.getLogger(__name__)


def new_timestamp(run_id: str, now: datetime.datetime | None = None) -> str:
    """Sortable, per-user unique sort key: UTC ISO-8601 + ``#`` + run prefix.

    Concurrent runs for the same user within one microsecond still get
    distinct keys through the run suffix.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return f"{now.astimezone(datetime.timezone.utc).isoformat(timespec='microseconds')}#{run_id[:8]}"


class ConversationStore(Protocol):
    async def put_turn(self, turn: ConversationTurn, *, overwrite: bool = False) -> None:
        """Write a turn. Without ``overwrite`` an existing key is a conflict."""

    async def get_turn(self, user_id: str, timestamp: str) -> ConversationTurn | None:
        ...

    async def list_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """Most recent ``limit`` turns for a user, oldest first."""


class InMemoryConversationStore:
    """Process-local store for tests and local runs."""

    def __init__(self) -> None:
        self._turns: dict[tuple[str, str], ConversationTurn] = {}
        self._lock = asyncio.Lock()

    async def put_turn(self, turn: ConversationTurn, *, overwrite: bool = False) -> None:
        key = (turn.user_id, turn.timestamp)
        async with self._lock:
            if not overwrite and key in self._turns:
                raise StoreError(f"Turn already exists: user_id={turn.user_id} timestamp={turn.timestamp}")
            self._turns[key] = turn.model_copy()

    async def get_turn(self, user_id: str, timestamp: str) -> ConversationTurn | None:
        turn = self._turns.get((user_id, timestamp))
        return turn.model_copy() if turn else None

    async def list_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        turns = sorted(
            (t for (uid, _), t in self._turns.items() if uid == user_id),
            key=lambda t: t.timestamp,
        )
        return [t.model_copy() for t in turns[-limit:]]

    def __len__(self) -> int:
        return len(self._turns)


class SupabaseConversationStore:
    """Supabase(PostgREST) 테이블 기반 conversation store.

    테이블 스키마: (user_id text, timestamp text, prompt text, completion text,
    audio_ref text), primary key (user_id, timestamp).
    """

    def __init__(self, settings: Settings, client: AsyncClient | None = None):
        self._settings = settings
        self._table = settings.chat_table
        self._client = client
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await acreate_client(
                        self._settings.supabase_url,
                        self._settings.supabase_service_key,
                    )
        return self._client

    async def put_turn(self, turn: ConversationTurn, *, overwrite: bool = False) -> None:
        data: dict[str, Any] = turn.model_dump()
        logger.debug(
            "Saving turn user_id=%s timestamp=%s overwrite=%s",
            turn.user_id,
            turn.timestamp,
            overwrite,
        )
        try:
            client = await self._get_client()
            query = client.table(self._table)
            if overwrite:
                await query.upsert(data, on_conflict="user_id,timestamp").execute()
            else:
                await query.insert(data).execute()
        except Exception as e:
            raise StoreError(f"Failed to save turn for {turn.user_id}: {e}") from e

    async def get_turn(self, user_id: str, timestamp: str) -> ConversationTurn | None:
        try:
            client = await self._get_client()
            result = (
                await client.table(self._table)
                .select("*")
                .eq("user_id", user_id)
                .eq("timestamp", timestamp)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to read turn for {user_id}: {e}") from e
        if not result.data:
            return None
        return ConversationTurn.model_validate(result.data[0])

    async def list_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        try:
            client = await self._get_client()
            result = (
                await client.table(self._table)
                .select("*")
                .eq("user_id", user_id)
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to query history for {user_id}: {e}") from e
        rows = result.data or []
        return [ConversationTurn.model_validate(row) for row in reversed(rows)]


def build_conversation_store(settings: Settings) -> ConversationStore:
    if settings.conversation_store == ConversationStoreKind.MEMORY:
        return InMemoryConversationStore()
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set for the supabase store")
    return SupabaseConversationStore(settings)
