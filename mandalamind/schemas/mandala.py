from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from mandalamind.schemas.brainwave import BrainwaveData


class MandalaStyle(str, Enum):
    TRADITIONAL = "traditional"
    MODERN = "modern"
    ABSTRACT = "abstract"
    SPIRITUAL = "spiritual"


class ColorPalette(str, Enum):
    WARM = "warm"
    COOL = "cool"
    VIBRANT = "vibrant"
    MONOCHROME = "monochrome"


class MandalaCreate(BaseModel):
    sessionId: Optional[str] = None
    imageUrl: str
    prompt: str
    brainwaveData: Dict[str, Any]
    voiceTranscript: Optional[str] = None


class MandalaOut(BaseModel):
    id: str
    sessionId: Optional[str] = None
    imageUrl: str
    prompt: str
    brainwaveData: Dict[str, Any]
    voiceTranscript: Optional[str] = None
    createdAt: datetime


class MandalaGenerationOptions(BaseModel):
    voiceTranscript: str
    brainwaveData: BrainwaveData
    style: MandalaStyle = MandalaStyle.SPIRITUAL
    colorPalette: ColorPalette = ColorPalette.VIBRANT


class GeneratedMandala(BaseModel):
    imageUrl: str
    prompt: str
    revisedPrompt: Optional[str] = None


class GenerateMandalaRequest(BaseModel):
    voiceTranscript: str = Field(..., min_length=1, description="Voice transcript is required")
    brainwaveData: BrainwaveData
    sessionId: str
    style: Optional[MandalaStyle] = None
    colorPalette: Optional[ColorPalette] = None


class GenerateMandalaResponse(BaseModel):
    mandala: MandalaOut
    generatedPrompt: str
    imageUrl: str
    revisedPrompt: Optional[str] = None


class SentimentRequest(BaseModel):
    text: str = Field(..., min_length=1)


class SentimentResult(BaseModel):
    rating: int = Field(3, ge=1, le=5)
    confidence: float = Field(0.5, ge=0, le=1)
    emotions: list[str] = ["neutral"]
