"""
Gemini provider.

Prompts are generated with a JSON schema constraint. Images come back inline
from the image-capable model and are written under ``ASSETS_DIR`` so the app
can serve them from ``/attached_assets``.
"""
import asyncio
import base64
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from fastapi.concurrency import run_in_threadpool
from google import genai
from google.genai import types

from mandalamind.core import config
from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.mandala import GeneratedMandala, MandalaGenerationOptions
from mandalamind.services.ai_base import AIServiceError, MandalaAIService, Sleep
from mandalamind.services.mandala_prompts import SYSTEM_PROMPT, build_user_prompt, enhance_image_prompt

logger = logging.getLogger("mandalamind.ai.gemini")

ASSETS_URL_PREFIX = "/attached_assets"

PROMPT_SCHEMA = {
    "type": "object",
    "properties": {"prompt": {"type": "string"}},
    "required": ["prompt"],
}


class GeminiService(MandalaAIService):
    provider = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
        client: Any = None,
        assets_dir: str = config.ASSETS_DIR,
        clock=time.time,
    ):
        super().__init__(api_key=api_key, sleep=sleep)
        self.assets_dir = Path(assets_dir)
        self.clock = clock
        if client is None and api_key:
            client = genai.Client(api_key=api_key)
        self.client = client

    async def health_check(self) -> bool:
        if not self.is_configured:
            return False
        try:
            response = await self.client.aio.models.generate_content(
                model=config.GEMINI_HEALTH_MODEL,
                contents="Hello, respond with just 'OK'",
            )
            return bool(response.text)
        except Exception as e:
            logger.warning(f"Gemini health check failed: {e!r}")
            return False

    async def _request_prompt(self, options: MandalaGenerationOptions) -> Optional[str]:
        response = await self.client.aio.models.generate_content(
            model=config.GEMINI_PROMPT_MODEL,
            contents=build_user_prompt(options),
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                response_mime_type="application/json",
                response_schema=PROMPT_SCHEMA,
            ),
        )
        result = json.loads(response.text or "{}")
        return result.get("prompt") if isinstance(result, dict) else None

    async def _request_image(self, prompt: str, brainwave: Optional[BrainwaveData]) -> GeneratedMandala:
        enhanced = enhance_image_prompt(prompt, brainwave)
        response = await self.client.aio.models.generate_content(
            model=config.GEMINI_IMAGE_MODEL,
            contents=[types.Content(role="user", parts=[types.Part(text=enhanced)])],
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )

        candidates = response.candidates or []
        if not candidates:
            raise AIServiceError("No image generated from Gemini")
        content = candidates[0].content
        if content is None or not content.parts:
            raise AIServiceError("No content parts in Gemini response")

        revised_prompt = ""
        image_bytes = None
        for part in content.parts:
            if part.text:
                revised_prompt = part.text
            elif part.inline_data is not None and part.inline_data.data:
                image_bytes = part.inline_data.data

        if image_bytes is None:
            raise AIServiceError("No image data received from Gemini")

        image_url = await self.save_image(image_bytes)
        return GeneratedMandala(
            imageUrl=image_url,
            prompt=enhanced,
            revisedPrompt=revised_prompt or f"Gemini generated mandala: {enhanced}",
        )

    async def save_image(self, data) -> str:
        """Write image bytes (raw or base64 text) and return the public path."""
        if isinstance(data, str):
            data = base64.b64decode(data)
        filename = f"mandala_{int(self.clock() * 1000)}_{uuid.uuid4().hex[:8]}.png"
        await run_in_threadpool(self._write_asset, filename, data)
        logger.info(f"💾 Gemini image saved as {self.assets_dir / filename}")
        return f"{ASSETS_URL_PREFIX}/{filename}"

    def _write_asset(self, filename: str, data: bytes) -> None:
        self.assets_dir.mkdir(parents=True, exist_ok=True)
        (self.assets_dir / filename).write_bytes(data)
