from pydantic import BaseModel, Field


def clamp_level(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


class BrainwaveData(BaseModel):
    """One eSense reading. Levels are percentages, timestamp is epoch ms."""

    attention: int = Field(..., ge=0, le=100)
    meditation: int = Field(..., ge=0, le=100)
    signalQuality: int = Field(..., ge=0, le=100)
    timestamp: float
