"""Pytest configuration and shared fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional

import fakeredis.aioredis
import pytest
import pytest_asyncio

# Add src directory to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from manager.history import InMemoryHistoryStore, RedisHistoryStore


class FakeTranslationClient:
    """
    Scriptable stand-in for SubtitleTranslator.

    By default every text is upper-cased. ``fail_on`` selects call numbers
    (0-indexed) that raise, ``delays`` slows individual calls down so batches
    can finish out of order.
    """

    def __init__(
        self,
        translate: Optional[Callable[[str], str]] = None,
        fail_on: Optional[set] = None,
        fail_always: bool = False,
        delays: Optional[List[float]] = None,
    ):
        self.translate = translate or (lambda text: text.upper())
        self.fail_on = fail_on or set()
        self.fail_always = fail_always
        self.delays = delays or []
        self.calls: List[List[str]] = []
        self.custom_prompts: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def translate_batch(
        self,
        texts: List[str],
        source_language: str,
        target_language: str,
        custom_prompt: str = "",
    ) -> List[str]:
        call_number = len(self.calls)
        self.calls.append(list(texts))
        self.custom_prompts.append(custom_prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if call_number < len(self.delays):
                await asyncio.sleep(self.delays[call_number])
            else:
                await asyncio.sleep(0)
            if self.fail_always or call_number in self.fail_on:
                raise ConnectionError(f"translation service unavailable (call {call_number})")
            return [self.translate(text) for text in texts]
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_client():
    """Translation client that upper-cases every text."""
    return FakeTranslationClient()


@pytest.fixture
def failing_client():
    """Translation client whose every call fails."""
    return FakeTranslationClient(fail_always=True)


@pytest_asyncio.fixture
async def fake_redis_client():
    """
    Fake Redis client using fakeredis for realistic Redis behavior.

    This provides a real Redis-like interface without requiring a Redis server.
    """
    fake_redis = fakeredis.aioredis.FakeRedis(decode_responses=True, encoding="utf-8")
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest_asyncio.fixture
async def redis_history(fake_redis_client):
    """RedisHistoryStore bound to fakeredis, capped at 20 records."""
    yield RedisHistoryStore(
        client=fake_redis_client, key="test:translation:history", max_records=20
    )


@pytest.fixture
def memory_history():
    """In-process history store capped at 20 records."""
    return InMemoryHistoryStore(max_records=20)


@pytest.fixture
def sample_srt():
    """Two-cue SRT document."""
    return (
        "1\n"
        "00:00:01,000 --> 00:00:02,000\n"
        "Hello\n"
        "\n"
        "2\n"
        "00:00:03,000 --> 00:00:04,000\n"
        "World\n"
    )


@pytest.fixture
def sample_vtt():
    """WebVTT document with a header, a NOTE block and two cues."""
    return (
        "WEBVTT\n"
        "\n"
        "NOTE generated for tests\n"
        "\n"
        "intro\n"
        "00:00:01.000 --> 00:00:02.000\n"
        "Hi there\n"
        "\n"
        "00:00:03.000 --> 00:00:04.000 align:start\n"
        "Second line\n"
        "with a break\n"
    )


@pytest.fixture
def sample_ass():
    """Minimal ASS script with two dialogue events."""
    return (
        "[Script Info]\n"
        "Title: Test\n"
        "ScriptType: v4.00+\n"
        "\n"
        "[V4+ Styles]\n"
        "Format: Name, Fontname, Fontsize\n"
        "Style: Default,Arial,20\n"
        "\n"
        "[Events]\n"
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text\n"
        "Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Hello, friend\n"
        "Dialogue: 0,0:00:03.00,0:00:04.00,Default,,0,0,0,,{\\i1}Two\\Nlines{\\i0}\n"
    )
