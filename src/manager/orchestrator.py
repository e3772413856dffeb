"""Sequential per-file translation orchestration."""

import logging
from typing import Callable, List, Optional

from common.errors import InvalidRunError, ReconstructionError
from common.subtitle_parser import (
    SubtitleDocument,
    build_translated_filename,
    parse,
    reconstruct,
    strip_sdh,
)
from common.utils import LanguageUtils, MathUtils, TextUtils
from manager.file_service import SubtitleSource
from manager.history import HistorySink
from manager.schemas import (
    FileItem,
    FileStatus,
    TranslationHistoryItem,
    TranslationRun,
)
from translator.batch_pipeline import BatchTranslationPipeline
from translator.schemas import PipelineReport

logger = logging.getLogger(__name__)

# Receives overall run progress as a percentage
RunProgressCallback = Callable[[float], None]

# Highest percentage reported before every file is terminal
RUNNING_PROGRESS_CAP = 99.0


def create_run(
    sources: List[SubtitleSource],
    source_language: str,
    target_language: str,
    custom_prompt: str = "",
    remove_sdh: bool = False,
) -> TranslationRun:
    """Build a run with one pending FileItem per source, in upload order."""
    return TranslationRun(
        source_language=source_language,
        target_language=target_language,
        custom_prompt=custom_prompt or "",
        remove_sdh=remove_sdh,
        files=[FileItem(filename=source.name, source=source) for source in sources],
    )


def strip_sdh_annotations(document: SubtitleDocument) -> int:
    """
    Strip SDH annotations from translatable entries in place.

    Headers and malformed blocks are never touched.

    Returns:
        Number of entries whose text changed
    """
    changed = 0
    for entry in document.translatable_entries:
        stripped = strip_sdh(entry.text)
        if stripped != entry.text:
            entry.text = stripped
            changed += 1
    return changed


class TranslationOrchestrator:
    """Runs files through read, parse, translate and reconstruct, one at a time."""

    def __init__(
        self,
        pipeline: BatchTranslationPipeline,
        history: Optional[HistorySink] = None,
    ):
        self.pipeline = pipeline
        self.history = history

    @staticmethod
    def validate_run(run: TranslationRun) -> None:
        """
        Reject runs that cannot be processed.

        Raises:
            InvalidRunError: No files, identical source and target language, or
                files that were already picked up
        """
        if not run.files:
            raise InvalidRunError("No subtitle files to translate")
        if any(item.status != FileStatus.PENDING for item in run.files):
            raise InvalidRunError(f"Run {run.id} has already been processed")
        if LanguageUtils.same_language(run.source_language, run.target_language):
            raise InvalidRunError("Source and target languages must be different")

    async def process_files(
        self,
        run: TranslationRun,
        on_progress: Optional[RunProgressCallback] = None,
    ) -> TranslationRun:
        """
        Translate every file of the run, strictly in upload order.

        A failing file ends in ``error`` and the next file starts anyway.
        Progress is ``(file_index + file_progress) / total_files * 100``,
        capped at 99 until every file is terminal, then set to 100.

        Args:
            run: Run with pending files
            on_progress: Called with the overall percentage

        Returns:
            The same run, with every file in a terminal state

        Raises:
            InvalidRunError: If the run fails validation (no file is touched)
        """
        self.validate_run(run)

        total_files = len(run.files)
        run.is_processing = True
        run.progress = 0.0
        logger.info(
            f"Starting run {run.id}: {total_files} files, "
            f"{run.source_language} -> {run.target_language}"
        )

        def report(percentage: float) -> None:
            percentage = MathUtils.clamp(percentage, 0.0, RUNNING_PROGRESS_CAP)
            # Never move backwards
            if percentage < run.progress:
                return
            run.progress = percentage
            if on_progress is not None:
                on_progress(percentage)

        try:
            for file_index, file_item in enumerate(run.files):
                run.current_file = file_item.filename

                def on_file_progress(fraction: float, file_index: int = file_index) -> None:
                    report(
                        MathUtils.calculate_percentage(
                            file_index + fraction, total_files
                        )
                    )

                await self._process_file(run, file_item, on_file_progress)
                report(MathUtils.calculate_percentage(file_index + 1, total_files))
        finally:
            run.is_processing = False
            run.current_file = None

        run.progress = 100.0
        if on_progress is not None:
            on_progress(100.0)

        done = sum(1 for item in run.files if item.status == FileStatus.DONE)
        logger.info(f"✅ Run {run.id} finished: {done}/{total_files} files translated")
        return run

    async def _process_file(
        self,
        run: TranslationRun,
        file_item: FileItem,
        on_file_progress: Callable[[float], None],
    ) -> None:
        file_item.transition_to(FileStatus.PROCESSING)
        logger.info(f"🔄 Processing {file_item.filename}")

        try:
            text = await file_item.source.read_text()
            file_item.original_text = text

            document = parse(text, file_item.filename)

            if run.remove_sdh:
                stripped = strip_sdh_annotations(document)
                logger.info(f"Stripped SDH annotations from {stripped} entries")

            report = await self.pipeline.run(
                document,
                run.source_language,
                run.target_language,
                run.custom_prompt,
                on_file_progress,
            )

            translated_text = self._reconstruct(document, file_item.filename)
        except Exception as e:
            file_item.error = str(e) or type(e).__name__
            file_item.transition_to(FileStatus.ERROR)
            logger.error(
                f"❌ Failed to translate {file_item.filename}: {file_item.error}",
                exc_info=True,
            )
            return

        self._complete_file(run, file_item, document, translated_text, report)
        await self._record_history(run, file_item)

    @staticmethod
    def _reconstruct(document: SubtitleDocument, filename: str) -> str:
        try:
            return reconstruct(document, filename)
        except Exception as e:
            raise ReconstructionError(
                f"Could not rebuild translated document: {e}"
            ) from e

    @staticmethod
    def _complete_file(
        run: TranslationRun,
        file_item: FileItem,
        document: SubtitleDocument,
        translated_text: str,
        report: PipelineReport,
    ) -> None:
        file_item.translated_text = translated_text
        file_item.translated_filename = build_translated_filename(
            file_item.filename, run.target_language, document.format
        )
        file_item.word_count = TextUtils.count_words(translated_text)
        file_item.failed_batches = len(report.failed)
        file_item.transition_to(FileStatus.DONE)
        logger.info(
            f"✅ Translated {file_item.filename} -> {file_item.translated_filename} "
            f"({file_item.word_count} words, {file_item.failed_batches} failed batches)"
        )

    async def _record_history(self, run: TranslationRun, file_item: FileItem) -> None:
        if self.history is None:
            return
        try:
            await self.history.add(
                TranslationHistoryItem(
                    filename=file_item.filename,
                    source_language=run.source_language,
                    target_language=run.target_language,
                )
            )
        except Exception as e:
            logger.warning(f"⚠️  Failed to record history for {file_item.filename}: {e}")
