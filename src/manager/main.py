"""FastAPI application for the subtitle translation service."""

from collections import OrderedDict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import quote
from uuid import UUID

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from common.config import settings
from common.errors import InvalidRunError
from common.logging_config import setup_service_logging
from common.utils import LanguageUtils
from manager.file_service import UploadedSubtitleFile
from manager.history import HistorySink, InMemoryHistoryStore, RedisHistoryStore
from manager.orchestrator import TranslationOrchestrator, create_run
from manager.schemas import (
    FileStatus,
    TranslationHistoryItem,
    TranslationRun,
    TranslationRunResponse,
)
from translator.batch_pipeline import BatchTranslationPipeline
from translator.translation_service import SubtitleTranslator

# Configure logging
logger = setup_service_logging("manager", enable_file_logging=settings.log_file_enabled)

redis_history = RedisHistoryStore()
memory_history = InMemoryHistoryStore()
translator = SubtitleTranslator()

# Runs by id, oldest first
runs: "OrderedDict[UUID, TranslationRun]" = OrderedDict()


def get_history() -> HistorySink:
    """Redis-backed history when connected, in-process history otherwise."""
    return redis_history if redis_history.connected else memory_history


def get_orchestrator(history: HistorySink = Depends(get_history)) -> TranslationOrchestrator:
    return TranslationOrchestrator(BatchTranslationPipeline(translator), history)


def track_run(run: TranslationRun) -> None:
    """Remember a run, evicting the oldest finished ones beyond the limit."""
    runs[run.id] = run
    for run_id in list(runs):
        if len(runs) <= settings.max_tracked_runs:
            break
        if not runs[run_id].is_processing and run_id != run.id:
            del runs[run_id]


def get_run_or_404(run_id: UUID) -> TranslationRun:
    run = runs.get(run_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Translation run {run_id} not found",
        )
    return run


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("Starting subtitle translation API...")
    await redis_history.connect()
    logger.info("API startup complete")

    yield

    await redis_history.disconnect()
    logger.info("API shutdown complete")


app = FastAPI(
    title="Subtitle Translation API",
    description="Translate SRT, WebVTT and ASS subtitles while keeping their timing",
    version="1.0.0",
    lifespan=lifespan,
)

allowed_origins = (
    [origin.strip() for origin in settings.cors_allowed_origins.split(",")]
    if settings.cors_allowed_origins
    else ["http://localhost:3000"]  # Safe default for development
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/")
async def root() -> Dict[str, str]:
    """API information."""
    return {
        "message": "Subtitle Translation API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=Dict[str, Any])
async def health_check_endpoint():
    """Report Redis history and translator status."""
    redis_health = await redis_history.health_check()
    return {
        "status": "healthy",
        "checks": {
            "redis_connected": redis_health.get("connected", False),
            "translator_mode": "mock" if translator.is_mock else "openai",
        },
        "details": {"redis": redis_health},
    }


@app.get("/languages", response_model=List[Dict[str, str]])
async def list_languages():
    """Languages offered for source and target selection."""
    return LanguageUtils.SUPPORTED_LANGUAGES


@app.post(
    "/translations",
    response_model=TranslationRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_translation(
    background_tasks: BackgroundTasks,
    files: List[UploadFile] = File(..., description="Subtitle files"),
    source_language: str = Form(...),
    target_language: str = Form(...),
    custom_prompt: str = Form(""),
    remove_sdh: bool = Form(False),
    orchestrator: TranslationOrchestrator = Depends(get_orchestrator),
):
    """
    Upload subtitle files and start translating them.

    Files are processed one after another in a background task; poll
    ``GET /translations/{run_id}`` for progress.
    """
    sources = []
    for upload in files:
        filename = upload.filename or "subtitle.srt"
        extension = Path(filename).suffix.lower()
        if extension not in settings.subtitle_extensions:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Unsupported file type '{extension or filename}'. "
                    f"Allowed: {', '.join(settings.subtitle_extensions)}"
                ),
            )
        sources.append(UploadedSubtitleFile(filename, await upload.read()))

    try:
        run = create_run(
            sources, source_language, target_language, custom_prompt, remove_sdh
        )
        orchestrator.validate_run(run)
    except (InvalidRunError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    track_run(run)
    background_tasks.add_task(orchestrator.process_files, run)
    logger.info(f"Accepted run {run.id} with {len(sources)} files")

    return TranslationRunResponse.from_run(run)


@app.get("/translations/{run_id}", response_model=TranslationRunResponse)
async def get_translation(run_id: UUID):
    """Current state and progress of a run."""
    return TranslationRunResponse.from_run(get_run_or_404(run_id))


@app.get("/translations/{run_id}/files/{file_id}")
async def download_translated_file(run_id: UUID, file_id: UUID):
    """Download the translated document of one file."""
    run = get_run_or_404(run_id)
    file_item = run.get_file(file_id)
    if file_item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File {file_id} not found in run {run_id}",
        )

    if file_item.status != FileStatus.DONE or file_item.translated_text is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"File {file_item.filename} is {file_item.status.value}, not translated",
        )

    return PlainTextResponse(
        content=file_item.translated_text,
        media_type="text/plain; charset=utf-8",
        headers={
            "Content-Disposition": (
                f"attachment; filename*=UTF-8''{quote(file_item.translated_filename)}"
            )
        },
    )


@app.get("/history", response_model=List[TranslationHistoryItem])
async def list_history(history: HistorySink = Depends(get_history)):
    """Most recent successfully translated files, newest first."""
    return await history.list()


@app.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(history: HistorySink = Depends(get_history)):
    """Remove all history records."""
    await history.clear()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, reload=True)
