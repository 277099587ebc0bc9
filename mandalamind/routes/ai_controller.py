from fastapi import APIRouter, Depends

from mandalamind.dependencies import get_ai_service, get_sentiment_service
from mandalamind.schemas.mandala import SentimentRequest, SentimentResult
from mandalamind.services.ai_base import MandalaAIService
from mandalamind.services.openai_service import OpenAIService

router = APIRouter(prefix="/ai")


@router.get("/status")
async def ai_status(check: bool = False, ai_service: MandalaAIService = Depends(get_ai_service)):
    """Provider in use; ``?check=true`` also runs a live health check."""
    status = {"provider": ai_service.provider, "configured": ai_service.is_configured}
    if check:
        status["healthy"] = await ai_service.health_check()
    return status


@router.post("/sentiment", response_model=SentimentResult)
async def analyze_sentiment(
    data: SentimentRequest,
    sentiment_service: OpenAIService = Depends(get_sentiment_service),
):
    return await sentiment_service.analyze_sentiment(data.text)
