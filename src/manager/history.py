"""Translation history: the most recent successfully translated files."""

import json
import logging
from collections import deque
from typing import Deque, List, Optional, Protocol

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from common.config import settings
from manager.schemas import TranslationHistoryItem

logger = logging.getLogger(__name__)


class HistorySink(Protocol):
    """Append-only store of history records, newest first."""

    async def add(self, item: TranslationHistoryItem) -> None: ...

    async def list(self) -> List[TranslationHistoryItem]: ...

    async def clear(self) -> None: ...


class InMemoryHistoryStore:
    """History kept in process memory, bounded to ``max_records``."""

    def __init__(self, max_records: Optional[int] = None):
        self.max_records = max_records or settings.history_max_records
        self._items: Deque[TranslationHistoryItem] = deque(maxlen=self.max_records)

    async def add(self, item: TranslationHistoryItem) -> None:
        self._items.appendleft(item)

    async def list(self) -> List[TranslationHistoryItem]:
        return list(self._items)

    async def clear(self) -> None:
        self._items.clear()


class RedisHistoryStore:
    """
    History kept in a Redis list.

    New records are pushed to the head and the list is trimmed to
    ``max_records`` in the same transaction.
    """

    def __init__(
        self,
        client: Optional[Redis] = None,
        key: Optional[str] = None,
        max_records: Optional[int] = None,
    ):
        self.client = client
        self.connected = client is not None
        self.key = key or settings.history_redis_key
        self.max_records = max_records or settings.history_max_records

    async def connect(self) -> None:
        """Connect to Redis; history writes are skipped while disconnected."""
        try:
            self.client = redis.from_url(
                settings.redis_url, encoding="utf-8", decode_responses=True
            )
            await self.client.ping()
            self.connected = True
            logger.info("✅ Connected to Redis for translation history")
        except RedisError as e:
            logger.warning(f"Redis unavailable, history will not be persisted: {e}")
            self.connected = False

    async def disconnect(self) -> None:
        if self.client is not None:
            try:
                await self.client.aclose()
            except RedisError as e:
                logger.warning(f"Error closing Redis client: {e}")
            finally:
                self.connected = False
                logger.info("Disconnected from Redis")

    async def add(self, item: TranslationHistoryItem) -> None:
        if not self.connected:
            logger.warning(f"Redis not connected, history record for {item.filename} dropped")
            return
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lpush(self.key, item.model_dump_json())
            pipe.ltrim(self.key, 0, self.max_records - 1)
            await pipe.execute()
        logger.debug(f"Recorded history for {item.filename}")

    async def list(self) -> List[TranslationHistoryItem]:
        if not self.connected:
            return []
        raw_items = await self.client.lrange(self.key, 0, self.max_records - 1)
        items = []
        for raw in raw_items:
            try:
                items.append(TranslationHistoryItem.model_validate(json.loads(raw)))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable history record: {e}")
        return items

    async def clear(self) -> None:
        if self.connected:
            await self.client.delete(self.key)

    async def health_check(self) -> dict:
        if not self.connected or self.client is None:
            return {"connected": False, "status": "not_connected"}
        try:
            await self.client.ping()
            return {"connected": True, "status": "healthy"}
        except RedisError as e:
            return {"connected": False, "status": "error", "error": str(e)}
