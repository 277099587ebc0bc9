from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class SessionCreate(BaseModel):
    attentionLevel: Optional[int] = Field(None, ge=0, le=100)
    meditationLevel: Optional[int] = Field(None, ge=0, le=100)
    signalQuality: Optional[int] = Field(None, ge=0, le=100)
    voiceTranscript: Optional[str] = None
    aiPrompt: Optional[str] = None
    mandalaUrl: Optional[str] = None
    isActive: Optional[bool] = None


class SessionUpdate(BaseModel):
    attentionLevel: Optional[int] = Field(None, ge=0, le=100)
    meditationLevel: Optional[int] = Field(None, ge=0, le=100)
    signalQuality: Optional[int] = Field(None, ge=0, le=100)
    voiceTranscript: Optional[str] = None
    aiPrompt: Optional[str] = None
    mandalaUrl: Optional[str] = None
    isActive: Optional[bool] = None


class SessionOut(BaseModel):
    id: str
    createdAt: datetime
    attentionLevel: Optional[int] = None
    meditationLevel: Optional[int] = None
    signalQuality: Optional[int] = None
    voiceTranscript: Optional[str] = None
    aiPrompt: Optional[str] = None
    mandalaUrl: Optional[str] = None
    isActive: bool = True
