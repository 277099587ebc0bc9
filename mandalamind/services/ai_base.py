"""
Retry/fallback skeleton shared by the mandala AI providers.

Subclasses implement one cloud call for the prompt and one for the image.
This class owns the retry budget, the backoff, the decision of which errors
are worth retrying, and the local fallbacks used when the cloud is out of
reach.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.mandala import GeneratedMandala, MandalaGenerationOptions
from mandalamind.services.mandala_prompts import build_fallback_prompt
from mandalamind.services.svg_mandala import create_svg_mandala, svg_data_url

logger = logging.getLogger("mandalamind.ai")

PROMPT_ATTEMPTS = 3
IMAGE_ATTEMPTS = 2
IMAGE_RETRY_DELAY_SEC = 2

QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached", "RESOURCE_EXHAUSTED"}

Sleep = Callable[[float], Awaitable[None]]


class AIServiceError(Exception):
    """A provider call failed in a way the caller may want to report."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status


def error_status(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def error_code(error: BaseException) -> Optional[str]:
    for attr in ("code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, str):
            return value
    return None


def is_quota_error(error: BaseException) -> bool:
    """Quota, billing and rate-limit failures do not improve with retries."""
    if error_code(error) in QUOTA_CODES or error_status(error) == 429:
        return True
    message = str(error).lower()
    return "quota" in message or "billing" in message


def is_bad_request(error: BaseException) -> bool:
    return error_status(error) == 400


def fallback_mandala(prompt: str, brainwave: Optional[BrainwaveData] = None) -> GeneratedMandala:
    svg = create_svg_mandala(prompt, brainwave)
    return GeneratedMandala(
        imageUrl=svg_data_url(svg),
        prompt=prompt,
        revisedPrompt=f"Fallback mandala generated locally with unique variations: {prompt}",
    )


class MandalaAIService(ABC):
    provider = "local"

    def __init__(self, api_key: Optional[str] = None, sleep: Sleep = asyncio.sleep):
        self.api_key = api_key
        self.sleep = sleep
        if not api_key:
            logger.warning(f"⚠️ No API key configured for {self.provider}, using local mandala generation")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # --- provider hooks ---

    @abstractmethod
    async def _request_prompt(self, options: MandalaGenerationOptions) -> Optional[str]:
        """One cloud call for the art prompt; raise to trigger a retry."""
        pass

    @abstractmethod
    async def _request_image(self, prompt: str, brainwave: Optional[BrainwaveData]) -> GeneratedMandala:
        """One cloud call for the image; raise to trigger a retry."""
        pass

    # --- public API ---

    async def generate_mandala_prompt(self, options: MandalaGenerationOptions) -> str:
        if not self.is_configured:
            return build_fallback_prompt(options)

        for attempt in range(1, PROMPT_ATTEMPTS + 1):
            try:
                prompt = await self._request_prompt(options)
                if prompt:
                    return prompt
                logger.warning(f"{self.provider} returned an empty prompt, using local prompt")
                return build_fallback_prompt(options)
            except Exception as e:
                logger.error(f"Error generating mandala prompt with {self.provider} (attempt {attempt}): {e!r}")
                if is_quota_error(e):
                    logger.info(f"API quota exceeded on attempt {attempt}, falling back to local generation")
                    break
                if attempt < PROMPT_ATTEMPTS:
                    await self.sleep(2 ** attempt)

        logger.info(f"Using fallback prompt generation due to {self.provider} API issues")
        return build_fallback_prompt(options)

    async def generate_mandala_image(
        self, prompt: str, brainwave: Optional[BrainwaveData] = None
    ) -> GeneratedMandala:
        if not self.is_configured:
            return fallback_mandala(prompt, brainwave)

        for attempt in range(1, IMAGE_ATTEMPTS + 1):
            try:
                return await self._request_image(prompt, brainwave)
            except Exception as e:
                logger.error(f"Error generating mandala image with {self.provider} (attempt {attempt}): {e!r}")
                if is_quota_error(e) or is_bad_request(e):
                    logger.info(f"{self.provider} image generation unavailable, switching to local mandala")
                    break
                if attempt < IMAGE_ATTEMPTS:
                    await self.sleep(IMAGE_RETRY_DELAY_SEC)

        logger.info(f"🎨 Using fallback mandala generation due to {self.provider} issues")
        return fallback_mandala(prompt, brainwave)

    async def health_check(self) -> bool:
        return self.is_configured


class LocalMandalaService(MandalaAIService):
    """Never calls out; prompts and images are always generated locally."""

    provider = "local"

    def __init__(self, sleep: Sleep = asyncio.sleep):
        self.api_key = None
        self.sleep = sleep

    async def _request_prompt(self, options: MandalaGenerationOptions) -> Optional[str]:
        return build_fallback_prompt(options)

    async def _request_image(self, prompt: str, brainwave: Optional[BrainwaveData]) -> GeneratedMandala:
        return fallback_mandala(prompt, brainwave)

    async def health_check(self) -> bool:
        return True


def build_ai_service(provider: str, sleep: Sleep = asyncio.sleep) -> MandalaAIService:
    from mandalamind.core import config

    if provider == "openai":
        from mandalamind.services.openai_service import OpenAIService

        return OpenAIService(api_key=config.OPENAI_API_KEY, sleep=sleep)
    if provider == "gemini":
        from mandalamind.services.gemini_service import GeminiService

        return GeminiService(api_key=config.GEMINI_API_KEY, sleep=sleep)
    if provider != "local":
        logger.warning(f"Unknown AI_PROVIDER '{provider}', using local generation")
    return LocalMandalaService(sleep=sleep)
