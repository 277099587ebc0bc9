from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, Optional


class EegDataCreate(BaseModel):
    sessionId: Optional[str] = None
    attention: int = Field(..., ge=0, le=100)
    meditation: int = Field(..., ge=0, le=100)
    signalQuality: int = Field(..., ge=0, le=100)
    rawData: Optional[Dict[str, Any]] = None


class EegDataOut(BaseModel):
    id: str
    sessionId: Optional[str] = None
    attention: int
    meditation: int
    signalQuality: int
    rawData: Optional[Dict[str, Any]] = None
    timestamp: datetime
