from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from mandalamind.database import Base

# JSONB on Postgres, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")


class SessionRecord(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    attention_level = Column(Integer, nullable=True)
    meditation_level = Column(Integer, nullable=True)
    signal_quality = Column(Integer, nullable=True)
    voice_transcript = Column(Text, nullable=True)
    ai_prompt = Column(Text, nullable=True)
    mandala_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class MandalaRecord(Base):
    __tablename__ = "mandalas"

    id = Column(String(36), primary_key=True, index=True)
    # No foreign key: a mandala may reference a session that no longer exists
    session_id = Column(String(36), nullable=True, index=True)
    image_url = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False)
    brainwave_data = Column(JsonType, nullable=False)
    voice_transcript = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class EegDataRecord(Base):
    __tablename__ = "eeg_data"

    id = Column(String(36), primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True, index=True)
    attention = Column(Integer, nullable=False)
    meditation = Column(Integer, nullable=False)
    signal_quality = Column(Integer, nullable=False)
    raw_data = Column(JsonType, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
