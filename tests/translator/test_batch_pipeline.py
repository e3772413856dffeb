"""Tests for the windowed batch translation pipeline."""

import pytest

from common.subtitle_parser import Entry, parse
from translator.batch_pipeline import (
    BatchTranslationPipeline,
    apply_translations,
    chunk_entries,
    select_translatable,
)
from translator.schemas import ProgressAccumulator

from conftest import FakeTranslationClient


def make_entries(count: int):
    return [
        Entry(id=str(i + 1), timestamp=f"ts{i}", text=f"line {i}") for i in range(count)
    ]


class TestHelpers:
    """Test entry selection, chunking and application."""

    def test_select_translatable_skips_headers_malformed_and_blank(self):
        entries = [
            Entry(text="WEBVTT", is_header=True),
            Entry(text="Hello", timestamp="ts"),
            Entry(text="garbage", is_malformed=True),
            Entry(text="   ", timestamp="ts"),
            Entry(text="World", timestamp="ts"),
        ]

        selected = select_translatable(entries)

        assert [entry.text for entry in selected] == ["Hello", "World"]

    def test_chunk_entries(self):
        batches = chunk_entries(make_entries(250), 100)

        assert [len(batch) for batch in batches] == [100, 100, 50]

    def test_chunk_entries_rejects_zero(self):
        with pytest.raises(ValueError):
            chunk_entries(make_entries(3), 0)

    def test_apply_translations_keeps_original_for_empty_values(self):
        batch = make_entries(3)

        kept = apply_translations(batch, ["uno", "  ", None])

        assert [entry.text for entry in batch] == ["uno", "line 1", "line 2"]
        assert kept == [1, 2]

    def test_apply_translations_with_short_reply(self):
        """Positions past the end of the reply keep their text."""
        batch = make_entries(3)

        kept = apply_translations(batch, ["uno"])

        assert [entry.text for entry in batch] == ["uno", "line 1", "line 2"]
        assert kept == [1, 2]


class TestProgressAccumulator:
    def test_capped_and_monotonic(self):
        reported = []
        progress = ProgressAccumulator(10, reported.append)

        progress.advance(5)
        progress.advance(5)

        assert reported == [0.5, 0.99]


class TestBatchTranslationPipeline:
    """Test pipeline batching, ordering and failure handling."""

    def test_rejects_invalid_limits(self, fake_client):
        with pytest.raises(ValueError):
            BatchTranslationPipeline(fake_client, batch_size=0)
        with pytest.raises(ValueError):
            BatchTranslationPipeline(fake_client, concurrent_limit=0)

    @pytest.mark.asyncio
    async def test_translates_only_translatable_entries(self, fake_client, sample_vtt):
        """Headers never reach the client and keep their text."""
        document = parse(sample_vtt)
        pipeline = BatchTranslationPipeline(fake_client)

        report = await pipeline.run(document, "English", "Uzbek")

        assert fake_client.calls == [["Hi there", "Second line\nwith a break"]]
        assert document[0].text == "WEBVTT"
        assert document[2].text == "HI THERE"
        assert report.total_entries == 2
        assert report.translated_entries == 2

    @pytest.mark.asyncio
    async def test_no_translatable_entries_makes_no_calls(self, fake_client):
        entries = [Entry(text="WEBVTT", is_header=True)]
        pipeline = BatchTranslationPipeline(fake_client)

        report = await pipeline.run(entries, "English", "Uzbek")

        assert fake_client.calls == []
        assert report.results == []

    @pytest.mark.asyncio
    async def test_batches_by_size(self, fake_client):
        """250 entries with batch size 100 make three requests."""
        entries = make_entries(250)
        pipeline = BatchTranslationPipeline(fake_client, batch_size=100, concurrent_limit=5)

        report = await pipeline.run(entries, "English", "Uzbek")

        assert [len(call) for call in fake_client.calls] == [100, 100, 50]
        assert len(report.succeeded) == 3
        assert all(entry.text == entry.text.upper() for entry in entries)

    @pytest.mark.asyncio
    async def test_order_is_kept_when_batches_finish_out_of_order(self):
        """Translations land on the right entries whatever the completion order."""
        client = FakeTranslationClient(
            translate=lambda text: f"T({text})", delays=[0.05, 0.01, 0.0]
        )
        entries = make_entries(6)
        pipeline = BatchTranslationPipeline(client, batch_size=2, concurrent_limit=3)

        await pipeline.run(entries, "English", "Uzbek")

        assert [entry.text for entry in entries] == [f"T(line {i})" for i in range(6)]

    @pytest.mark.asyncio
    async def test_window_bounds_concurrency(self):
        """At most concurrent_limit requests are in flight at once."""
        client = FakeTranslationClient(delays=[0.01] * 12)
        pipeline = BatchTranslationPipeline(client, batch_size=1, concurrent_limit=5)

        await pipeline.run(make_entries(12), "English", "Uzbek")

        assert len(client.calls) == 12
        assert client.max_in_flight == 5

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_original_text(self):
        """One failing batch never stops the others."""
        client = FakeTranslationClient(fail_on={1})
        entries = make_entries(6)
        pipeline = BatchTranslationPipeline(client, batch_size=2, concurrent_limit=5)

        report = await pipeline.run(entries, "English", "Uzbek")

        assert [entry.text for entry in entries] == [
            "LINE 0",
            "LINE 1",
            "line 2",
            "line 3",
            "LINE 4",
            "LINE 5",
        ]
        assert len(report.failed) == 1
        assert report.failed[0].index == 1
        assert "ConnectionError" in report.failed[0].error

    @pytest.mark.asyncio
    async def test_all_batches_failing_leaves_entries_untouched(self, failing_client):
        entries = make_entries(5)
        pipeline = BatchTranslationPipeline(failing_client, batch_size=2)

        report = await pipeline.run(entries, "English", "Uzbek")

        assert [entry.text for entry in entries] == [f"line {i}" for i in range(5)]
        assert len(report.failed) == 3
        assert report.translated_entries == 0

    @pytest.mark.asyncio
    async def test_empty_translations_fall_back_to_original(self):
        """Blank values from the client never empty a cue."""
        client = FakeTranslationClient(translate=lambda text: "" if text == "line 1" else "ok")
        entries = make_entries(3)
        pipeline = BatchTranslationPipeline(client)

        report = await pipeline.run(entries, "English", "Uzbek")

        assert [entry.text for entry in entries] == ["ok", "line 1", "ok"]
        assert report.results[0].fallback_positions == [1]

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_capped(self):
        """Progress never decreases and never reaches 1.0."""
        client = FakeTranslationClient(delays=[0.03, 0.0, 0.01, 0.02, 0.0, 0.0, 0.0])
        reported = []
        pipeline = BatchTranslationPipeline(client, batch_size=3, concurrent_limit=3)

        await pipeline.run(make_entries(20), "English", "Uzbek", on_progress=reported.append)

        assert len(reported) == 7
        assert reported == sorted(reported)
        assert all(0.0 < value <= 0.99 for value in reported)
        assert reported[-1] == 0.99

    @pytest.mark.asyncio
    async def test_progress_counts_failed_batches(self, failing_client):
        reported = []
        pipeline = BatchTranslationPipeline(failing_client, batch_size=2)

        await pipeline.run(make_entries(4), "English", "Uzbek", on_progress=reported.append)

        assert reported == [0.5, 0.99]

    @pytest.mark.asyncio
    async def test_custom_prompt_is_forwarded(self, fake_client):
        pipeline = BatchTranslationPipeline(fake_client)

        await pipeline.run(make_entries(2), "English", "Uzbek", "Use informal tone")

        assert fake_client.custom_prompts == ["Use informal tone"]
