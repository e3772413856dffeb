"""Windowed batch translation of parsed subtitle entries."""

import asyncio
import logging
from typing import List, Optional, Sequence

from common.config import settings
from common.errors import TranslationBatchError
from common.subtitle_parser import Entry
from translator.schemas import (
    BatchResult,
    PipelineReport,
    ProgressAccumulator,
    ProgressCallback,
    TranslationClient,
)

logger = logging.getLogger(__name__)


def select_translatable(entries: Sequence[Entry]) -> List[Entry]:
    """
    Entries that may be sent for translation, in source order.

    Headers, malformed blocks and blank cues are left out.
    """
    return [entry for entry in entries if entry.is_translatable]


def chunk_entries(entries: List[Entry], batch_size: int) -> List[List[Entry]]:
    """
    Split entries into contiguous batches.

    Args:
        entries: Translatable entries
        batch_size: Maximum entries per batch (must be positive)

    Returns:
        List of batches, in order

    Raises:
        ValueError: If batch_size is less than 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    return [
        entries[start : start + batch_size]
        for start in range(0, len(entries), batch_size)
    ]


def apply_translations(batch: List[Entry], translations: Sequence) -> List[int]:
    """
    Overwrite entry text by position.

    Missing, empty or non-string values keep the original text so that no
    cue ever becomes empty.

    Returns:
        Positions that kept their original text
    """
    kept = []
    for position, entry in enumerate(batch):
        translated = translations[position] if position < len(translations) else None
        if isinstance(translated, str) and translated.strip():
            entry.text = translated
        else:
            kept.append(position)
    return kept


class BatchTranslationPipeline:
    """Translates entries in fixed-size batches, a bounded window at a time."""

    def __init__(
        self,
        client: TranslationClient,
        batch_size: Optional[int] = None,
        concurrent_limit: Optional[int] = None,
    ):
        self.client = client
        self.batch_size = (
            settings.translation_batch_size if batch_size is None else batch_size
        )
        self.concurrent_limit = (
            settings.translation_concurrent_limit
            if concurrent_limit is None
            else concurrent_limit
        )
        if self.batch_size < 1 or self.concurrent_limit < 1:
            raise ValueError("batch_size and concurrent_limit must be at least 1")

    async def run(
        self,
        entries: Sequence[Entry],
        source_language: str,
        target_language: str,
        custom_prompt: str = "",
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineReport:
        """
        Translate entries in place.

        Batches of a window run concurrently; the next window starts only
        after every batch of the current one has settled. A failed batch keeps
        its original text and never stops the run.

        Args:
            entries: Parsed entries; only the translatable ones are sent
            source_language: Source language name or code
            target_language: Target language name or code
            custom_prompt: Extra instructions for the translator
            on_progress: Called with the settled fraction after each batch

        Returns:
            PipelineReport with one result per batch
        """
        translatable = select_translatable(entries)
        report = PipelineReport(total_entries=len(translatable))
        if not translatable:
            logger.info("No translatable entries, skipping translation")
            return report

        batches = chunk_entries(translatable, self.batch_size)
        progress = ProgressAccumulator(len(translatable), on_progress)
        logger.info(
            f"🚀 Translating {len(translatable)} entries in {len(batches)} batches "
            f"({self.concurrent_limit} concurrent requests)"
        )

        for window_start in range(0, len(batches), self.concurrent_limit):
            window = batches[window_start : window_start + self.concurrent_limit]
            results = await asyncio.gather(
                *(
                    self._translate_batch(
                        window_start + offset,
                        batch,
                        len(batches),
                        source_language,
                        target_language,
                        custom_prompt,
                        progress,
                    )
                    for offset, batch in enumerate(window)
                )
            )
            report.results.extend(results)

        if report.failed:
            logger.warning(
                f"⚠️  {len(report.failed)}/{len(batches)} batches kept their original text"
            )
        logger.info(
            f"✅ Translated {report.translated_entries}/{len(translatable)} entries"
        )
        return report

    async def _translate_batch(
        self,
        index: int,
        batch: List[Entry],
        total_batches: int,
        source_language: str,
        target_language: str,
        custom_prompt: str,
        progress: ProgressAccumulator,
    ) -> BatchResult:
        texts = [entry.text for entry in batch]
        try:
            translations = await self.client.translate_batch(
                texts, source_language, target_language, custom_prompt
            )
            kept = apply_translations(batch, translations or [])
            if kept:
                logger.warning(
                    f"Batch {index + 1}/{total_batches}: {len(kept)} entries came back "
                    f"empty and keep their original text"
                )
            result = BatchResult(
                index=index, size=len(batch), ok=True, fallback_positions=kept
            )
            logger.debug(f"Batch {index + 1}/{total_batches} translated")
        except Exception as e:
            error = TranslationBatchError(index, len(batch), e)
            logger.error(f"❌ {error}, keeping original text", exc_info=True)
            result = BatchResult(index=index, size=len(batch), ok=False, error=str(error))
        finally:
            progress.advance(len(batch))
        return result
