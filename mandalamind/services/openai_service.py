import asyncio
import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from mandalamind.core import config
from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.mandala import GeneratedMandala, MandalaGenerationOptions, SentimentResult
from mandalamind.services.ai_base import AIServiceError, MandalaAIService, Sleep
from mandalamind.services.mandala_prompts import (
    SENTIMENT_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_user_prompt,
    dalle_image_prompt,
)

logger = logging.getLogger("mandalamind.ai.openai")


class OpenAIService(MandalaAIService):
    """Prompts from a chat model in JSON mode, images from DALL-E."""

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
        client: Any = None,
        prompt_model: str = config.OPENAI_PROMPT_MODEL,
        image_model: str = config.OPENAI_IMAGE_MODEL,
    ):
        super().__init__(api_key=api_key, sleep=sleep)
        self.prompt_model = prompt_model
        self.image_model = image_model
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key)
        self.client = client

    async def _request_prompt(self, options: MandalaGenerationOptions) -> Optional[str]:
        response = await self.client.chat.completions.create(
            model=self.prompt_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(options)},
            ],
            response_format={"type": "json_object"},
            max_completion_tokens=500,
        )
        result = json.loads(response.choices[0].message.content or "{}")
        return result.get("prompt") if isinstance(result, dict) else None

    async def _request_image(self, prompt: str, brainwave: Optional[BrainwaveData]) -> GeneratedMandala:
        enhanced = dalle_image_prompt(prompt)
        response = await self.client.images.generate(
            model=self.image_model,
            prompt=enhanced,
            n=1,
            size="1024x1024",
            quality="standard",
            style="vivid",
        )
        image = response.data[0] if response.data else None
        if image is None or not image.url:
            raise AIServiceError("No image URL received from OpenAI")

        logger.info("🖼️ OpenAI image generated")
        return GeneratedMandala(imageUrl=image.url, prompt=enhanced, revisedPrompt=image.revised_prompt)

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        if not self.is_configured:
            return SentimentResult()

        try:
            response = await self.client.chat.completions.create(
                model=self.prompt_model,
                messages=[
                    {"role": "system", "content": SENTIMENT_SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
                response_format={"type": "json_object"},
            )
            result = json.loads(response.choices[0].message.content or "{}")
        except Exception as e:
            logger.error(f"Error analyzing sentiment: {e!r}")
            return SentimentResult()

        if not isinstance(result, dict):
            return SentimentResult()

        rating = result.get("rating") or 3
        confidence = result.get("confidence") or 0.5
        emotions = result.get("emotions")
        try:
            return SentimentResult(
                rating=max(1, min(5, int(float(rating) + 0.5))),
                confidence=max(0.0, min(1.0, float(confidence))),
                emotions=[str(e) for e in emotions] if isinstance(emotions, list) else ["neutral"],
            )
        except (TypeError, ValueError):
            logger.warning(f"Unusable sentiment payload: {result!r}")
            return SentimentResult()
