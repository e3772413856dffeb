"""Tests for translation history stores."""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from manager.history import InMemoryHistoryStore, RedisHistoryStore
from manager.schemas import TranslationHistoryItem


def make_record(index: int) -> TranslationHistoryItem:
    return TranslationHistoryItem(
        filename=f"movie{index}.srt", source_language="English", target_language="Uzbek"
    )


class TestInMemoryHistoryStore:
    @pytest.mark.asyncio
    async def test_newest_first(self, memory_history):
        await memory_history.add(make_record(1))
        await memory_history.add(make_record(2))

        records = await memory_history.list()

        assert [record.filename for record in records] == ["movie2.srt", "movie1.srt"]

    @pytest.mark.asyncio
    async def test_bounded_to_max_records(self, memory_history):
        for index in range(25):
            await memory_history.add(make_record(index))

        records = await memory_history.list()

        assert len(records) == 20
        assert records[0].filename == "movie24.srt"
        assert records[-1].filename == "movie5.srt"

    @pytest.mark.asyncio
    async def test_clear(self):
        store = InMemoryHistoryStore(max_records=5)
        await store.add(make_record(1))

        await store.clear()

        assert await store.list() == []


class TestRedisHistoryStore:
    """Test history persistence with fakeredis."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, redis_history):
        record = make_record(1)

        await redis_history.add(record)
        records = await redis_history.list()

        assert records == [record]

    @pytest.mark.asyncio
    async def test_bounded_to_max_records(self, redis_history, fake_redis_client):
        for index in range(25):
            await redis_history.add(make_record(index))

        records = await redis_history.list()

        assert len(records) == 20
        assert records[0].filename == "movie24.srt"
        assert await fake_redis_client.llen("test:translation:history") == 20

    @pytest.mark.asyncio
    async def test_skips_unreadable_records(self, redis_history, fake_redis_client):
        await redis_history.add(make_record(1))
        await fake_redis_client.lpush("test:translation:history", "not json")

        records = await redis_history.list()

        assert [record.filename for record in records] == ["movie1.srt"]

    @pytest.mark.asyncio
    async def test_clear(self, redis_history, fake_redis_client):
        await redis_history.add(make_record(1))

        await redis_history.clear()

        assert await fake_redis_client.exists("test:translation:history") == 0

    @pytest.mark.asyncio
    async def test_disconnected_store_drops_writes(self):
        store = RedisHistoryStore()

        await store.add(make_record(1))

        assert await store.list() == []
        assert (await store.health_check())["connected"] is False

    @pytest.mark.asyncio
    async def test_connect_failure_leaves_store_disconnected(self):
        mock_client = AsyncMock()
        mock_client.ping.side_effect = RedisConnectionError("refused")

        with patch("manager.history.redis.from_url", return_value=mock_client):
            store = RedisHistoryStore()
            await store.connect()

        assert not store.connected

    @pytest.mark.asyncio
    async def test_health_check(self, redis_history):
        health = await redis_history.health_check()

        assert health == {"connected": True, "status": "healthy"}
