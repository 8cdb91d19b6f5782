"""
Dubbing relay API routes.

Endpoints:
    POST /api/upload                            — submit a recording for dubbing
    GET  /api/translations/{id}/status          — poll dubbing status
    GET  /api/translations/{id}/audio           — stream dubbed audio
    GET  /api/translations/{id}/download        — dubbed audio as an attachment
    GET  /api/translations/{id}/transcript      — SRT / WebVTT transcript

Each endpoint forwards to the matching ElevenLabs call; the relay only
fills in default languages, validates input and shapes download headers.
"""

import logging

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.responses import PlainTextResponse, StreamingResponse

from commons import limiter, pick_transcript_language, resolve_language
from configs.config import get_config
from security import (
    safe_error_response,
    validate_choice,
    validate_dubbing_id,
    validate_file_extension,
    validate_language_code,
)
from src.dubbing.elevenlabs_client import (
    DubbingServiceError,
    ElevenLabsDubbingClient,
    get_dubbing_client,
)

logger = logging.getLogger(__name__)

cfg = get_config()

router = APIRouter(prefix="/api", tags=["dubbing"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _raise_upstream(exc: DubbingServiceError, context: str):
    """Pass upstream 4xx answers through; anything else becomes a sanitized 500."""
    if exc.is_client_error:
        logger.warning("Upstream rejected %s (%d): %s", context, exc.status_code, exc.message)
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    safe_error_response(exc, context=context)


# ── Upload ───────────────────────────────────────────────────────────────


@router.post("/upload")
@limiter.limit("10/minute")
async def upload_audio(
    request: Request,
    audio: UploadFile = File(...),
    source_lang: str = Form(default=""),
    target_lang: str = Form(default=""),
    client: ElevenLabsDubbingClient = Depends(get_dubbing_client),
) -> dict:
    """Read the recording and start a dubbing job for it."""
    source = validate_language_code(
        resolve_language(source_lang, cfg.DEFAULT_SOURCE_LANG), "source_lang"
    )
    target = validate_language_code(
        resolve_language(target_lang, cfg.DEFAULT_TARGET_LANG), "target_lang"
    )
    validate_file_extension(audio.filename)

    logger.info("Upload received: %s (%s -> %s)", audio.filename, source, target)

    chunks = []
    total_bytes = 0
    while True:
        chunk = await audio.read(1024 * 1024)
        if not chunk:
            break
        total_bytes += len(chunk)
        if total_bytes > cfg.MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=413,
                detail=(
                    f"File too large. Maximum allowed size is "
                    f"{cfg.MAX_UPLOAD_SIZE // (1024 ** 2)} MB."
                ),
            )
        chunks.append(chunk)

    if not total_bytes:
        raise HTTPException(status_code=400, detail="Audio file is empty")
    logger.debug("Read %d bytes from %s", total_bytes, audio.filename)

    try:
        return await client.create_dubbing(
            audio=b"".join(chunks),
            filename=audio.filename,
            content_type=audio.content_type,
            source_lang=source,
            target_lang=target,
        )
    except DubbingServiceError as exc:
        _raise_upstream(exc, context="upload")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="upload")


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/translations/{dubbing_id}/status")
@limiter.limit("120/minute")
async def get_status(
    request: Request,
    dubbing_id: str,
    client: ElevenLabsDubbingClient = Depends(get_dubbing_client),
) -> dict:
    """Return the service's metadata for a dubbing job unchanged."""
    validate_dubbing_id(dubbing_id)
    try:
        return await client.get_dubbing_metadata(dubbing_id)
    except DubbingServiceError as exc:
        _raise_upstream(exc, context="status")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="status")


# ── Audio ────────────────────────────────────────────────────────────────


@router.get("/translations/{dubbing_id}/audio")
@limiter.limit("30/minute")
async def get_audio(
    request: Request,
    dubbing_id: str,
    target_lang: str = Query(default=""),
    client: ElevenLabsDubbingClient = Depends(get_dubbing_client),
) -> StreamingResponse:
    """Stream the dubbed audio for ``target_lang``."""
    validate_dubbing_id(dubbing_id)
    target = validate_language_code(
        resolve_language(target_lang, cfg.DEFAULT_TARGET_LANG), "target_lang"
    )
    try:
        chunks = await client.stream_dubbed_audio(dubbing_id, target)
    except DubbingServiceError as exc:
        _raise_upstream(exc, context="fetch_audio")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="fetch_audio")

    return StreamingResponse(chunks, media_type="audio/mpeg")


@router.get("/translations/{dubbing_id}/download")
@limiter.limit("30/minute")
async def download_audio(
    request: Request,
    dubbing_id: str,
    target_lang: str = Query(default=""),
    client: ElevenLabsDubbingClient = Depends(get_dubbing_client),
) -> StreamingResponse:
    """Same stream as ``/audio``, served as an uncached mp3 attachment."""
    validate_dubbing_id(dubbing_id)
    target = validate_language_code(
        resolve_language(target_lang, cfg.DEFAULT_TARGET_LANG), "target_lang"
    )
    try:
        chunks = await client.stream_dubbed_audio(dubbing_id, target)
    except DubbingServiceError as exc:
        _raise_upstream(exc, context="download_audio")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="download_audio")

    logger.info("Download started for %s (%s)", dubbing_id, target)
    headers = {
        "Content-Disposition": f'attachment; filename="translated_audio_{target}.mp3"',
        **NO_CACHE_HEADERS,
    }
    return StreamingResponse(chunks, media_type="audio/mp3", headers=headers)


# ── Transcript ───────────────────────────────────────────────────────────


@router.get("/translations/{dubbing_id}/transcript")
@limiter.limit("30/minute")
async def get_transcript(
    request: Request,
    dubbing_id: str,
    language: str = Query(default="target"),
    target_lang: str = Query(default=""),
    source_lang: str = Query(default=""),
    format_type: str = Query(default="", alias="format"),
    client: ElevenLabsDubbingClient = Depends(get_dubbing_client),
) -> PlainTextResponse:
    """Return the source or target transcript as plain text."""
    validate_dubbing_id(dubbing_id)
    validate_choice(language, cfg.TRANSCRIPT_LANGUAGES, "language")
    format_type = validate_choice(
        format_type or cfg.DEFAULT_TRANSCRIPT_FORMAT, cfg.TRANSCRIPT_FORMATS, "format"
    )
    source = validate_language_code(
        resolve_language(source_lang, cfg.DEFAULT_SOURCE_LANG), "source_lang"
    )
    target = validate_language_code(
        resolve_language(target_lang, cfg.DEFAULT_TARGET_LANG), "target_lang"
    )
    language_code = pick_transcript_language(language, source, target)

    try:
        transcript = await client.get_transcript(dubbing_id, language_code, format_type)
    except DubbingServiceError as exc:
        _raise_upstream(exc, context="fetch_transcript")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="fetch_transcript")

    logger.debug("Transcript fetched for %s (%s, %s)", dubbing_id, language_code, format_type)
    return PlainTextResponse(transcript)
