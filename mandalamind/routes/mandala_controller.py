from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse, Response
from typing import List, Optional
from urllib.parse import unquote_to_bytes
import base64
import binascii
import logging
import re

from mandalamind.dependencies import get_ai_service, get_manager, get_storage
from mandalamind.schemas.mandala import (
    GenerateMandalaRequest,
    GenerateMandalaResponse,
    MandalaCreate,
    MandalaGenerationOptions,
    MandalaOut,
)
from mandalamind.schemas.sessions import SessionUpdate
from mandalamind.services.ai_base import MandalaAIService, error_code, error_status
from mandalamind.storage import Storage
from mandalamind.websocket.manager import ConnectionManager

logger = logging.getLogger("mandalamind.mandalas")

router = APIRouter()

DEFAULT_RECENT_LIMIT = 6
_DATA_URL_MIME = re.compile(r"data:([^;,]+)")


def mandala_not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Mandala not found"})


def parse_limit(raw: Optional[str]) -> int:
    try:
        limit = int(raw) if raw is not None else 0
    except ValueError:
        limit = 0
    return limit or DEFAULT_RECENT_LIMIT


def decode_data_url(url: str):
    """Split a ``data:`` URL into (mime type, payload bytes)."""
    header, _, payload = url.partition(",")
    match = _DATA_URL_MIME.match(header)
    mime_type = match.group(1) if match else "image/svg+xml"
    if header.endswith(";base64"):
        return mime_type, base64.b64decode(payload)
    return mime_type, unquote_to_bytes(payload)


def generation_error_response(error: Exception) -> JSONResponse:
    status, message = 500, "Failed to generate mandala"
    text = str(error).lower()

    if error_code(error) in ("insufficient_quota", "billing_hard_limit_reached"):
        status, message = 503, "API quota exceeded. Using fallback mandala generation..."
    elif error_status(error) == 429:
        status, message = 429, "Too many requests. Please try again in a few minutes."
    elif "network" in text or "timeout" in text:
        status, message = 502, "Connection problem. Please try again."

    return JSONResponse(
        status_code=status,
        content={"error": message, "details": str(error) or "Unknown error", "fallbackAvailable": True},
    )


@router.get("/mandalas/recent", response_model=List[MandalaOut])
async def get_recent_mandalas(limit: Optional[str] = None, storage: Storage = Depends(get_storage)):
    return await storage.get_recent_mandalas(parse_limit(limit))


@router.post("/mandalas/generate", response_model=GenerateMandalaResponse)
async def generate_mandala(
    data: GenerateMandalaRequest,
    storage: Storage = Depends(get_storage),
    ai_service: MandalaAIService = Depends(get_ai_service),
    manager: ConnectionManager = Depends(get_manager),
):
    session = await storage.get_session(data.sessionId)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})

    try:
        options = MandalaGenerationOptions(
            voiceTranscript=data.voiceTranscript,
            brainwaveData=data.brainwaveData,
            **data.model_dump(include={"style", "colorPalette"}, exclude_none=True),
        )
        prompt = await ai_service.generate_mandala_prompt(options)
        generated = await ai_service.generate_mandala_image(prompt, data.brainwaveData)

        mandala = await storage.create_mandala(MandalaCreate(
            sessionId=data.sessionId,
            imageUrl=generated.imageUrl,
            prompt=generated.prompt,
            brainwaveData=data.brainwaveData.model_dump(),
            voiceTranscript=data.voiceTranscript,
        ))

        await storage.update_session(data.sessionId, SessionUpdate(
            voiceTranscript=data.voiceTranscript,
            aiPrompt=prompt,
            mandalaUrl=generated.imageUrl,
            attentionLevel=data.brainwaveData.attention,
            meditationLevel=data.brainwaveData.meditation,
            signalQuality=data.brainwaveData.signalQuality,
        ))
    except Exception as e:
        logger.exception("Error generating mandala")
        return generation_error_response(e)

    logger.info(f"✨ Mandala {mandala.id} generated for session {data.sessionId}")
    await manager.broadcast_json({
        "type": "mandala_generated",
        "mandala": mandala.model_dump(mode="json"),
        "generatedMandala": generated.model_dump(),
    })

    return GenerateMandalaResponse(
        mandala=mandala,
        generatedPrompt=prompt,
        imageUrl=generated.imageUrl,
        revisedPrompt=generated.revisedPrompt,
    )


@router.get("/mandalas/{mandala_id}", response_model=MandalaOut)
async def get_mandala(mandala_id: str, storage: Storage = Depends(get_storage)):
    mandala = await storage.get_mandala(mandala_id)
    if mandala is None:
        return mandala_not_found()
    return mandala


@router.get("/mandalas/{mandala_id}/image")
async def get_mandala_image(mandala_id: str, storage: Storage = Depends(get_storage)):
    mandala = await storage.get_mandala(mandala_id)
    if mandala is None:
        return mandala_not_found()

    if not mandala.imageUrl.startswith("data:"):
        return RedirectResponse(mandala.imageUrl, status_code=302)

    try:
        mime_type, payload = decode_data_url(mandala.imageUrl)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Stored image for mandala {mandala_id} is not a valid data URL: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to serve mandala image"})

    return Response(
        content=payload,
        media_type=mime_type,
        headers={
            "Cache-Control": "public, max-age=31536000",
            "ETag": f'"{mandala_id}"',
        },
    )
