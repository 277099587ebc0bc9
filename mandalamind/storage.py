"""
Session, mandala and EEG sample persistence.

``MemStorage`` keeps everything in process memory and is the default.
``SqlStorage`` maps the same operations onto SQLAlchemy for a real database;
blocking ORM calls are pushed to the threadpool so the event loop keeps
streaming device data.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from mandalamind.models.records import EegDataRecord, MandalaRecord, SessionRecord
from mandalamind.schemas.eeg import EegDataCreate, EegDataOut
from mandalamind.schemas.mandala import MandalaCreate, MandalaOut
from mandalamind.schemas.sessions import SessionCreate, SessionOut, SessionUpdate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_changes(updates: SessionUpdate) -> dict:
    changes = updates.model_dump(exclude_unset=True)
    # isActive is a flag, never null
    if changes.get("isActive", False) is None:
        del changes["isActive"]
    return changes


class Storage(ABC):
    # Session management
    @abstractmethod
    async def create_session(self, data: SessionCreate) -> SessionOut: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionOut]: ...

    @abstractmethod
    async def update_session(self, session_id: str, updates: SessionUpdate) -> Optional[SessionOut]: ...

    @abstractmethod
    async def get_active_sessions(self) -> List[SessionOut]: ...

    # Mandala management
    @abstractmethod
    async def create_mandala(self, data: MandalaCreate) -> MandalaOut: ...

    @abstractmethod
    async def get_mandala(self, mandala_id: str) -> Optional[MandalaOut]: ...

    @abstractmethod
    async def get_mandalas_for_session(self, session_id: str) -> List[MandalaOut]: ...

    @abstractmethod
    async def get_recent_mandalas(self, limit: int) -> List[MandalaOut]: ...

    # EEG data management
    @abstractmethod
    async def add_eeg_data(self, data: EegDataCreate) -> EegDataOut: ...

    @abstractmethod
    async def get_eeg_data_for_session(self, session_id: str) -> List[EegDataOut]: ...

    async def get_latest_eeg_data(self, session_id: str) -> Optional[EegDataOut]:
        samples = await self.get_eeg_data_for_session(session_id)
        return samples[-1] if samples else None

    async def close(self) -> None:
        pass


class MemStorage(Storage):
    def __init__(self):
        self.sessions: Dict[str, SessionOut] = {}
        self.mandalas: Dict[str, MandalaOut] = {}
        self.eeg_data: Dict[str, EegDataOut] = {}

    async def create_session(self, data: SessionCreate) -> SessionOut:
        fields = data.model_dump(exclude={"isActive"})
        session = SessionOut(id=_new_id(), createdAt=_now(), isActive=True, **fields)
        self.sessions[session.id] = session
        return session

    async def get_session(self, session_id: str) -> Optional[SessionOut]:
        return self.sessions.get(session_id)

    async def update_session(self, session_id: str, updates: SessionUpdate) -> Optional[SessionOut]:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        updated = session.model_copy(update=_session_changes(updates))
        self.sessions[session_id] = updated
        return updated

    async def get_active_sessions(self) -> List[SessionOut]:
        return [s for s in self.sessions.values() if s.isActive]

    async def create_mandala(self, data: MandalaCreate) -> MandalaOut:
        mandala = MandalaOut(id=_new_id(), createdAt=_now(), **data.model_dump())
        self.mandalas[mandala.id] = mandala
        return mandala

    async def get_mandala(self, mandala_id: str) -> Optional[MandalaOut]:
        return self.mandalas.get(mandala_id)

    async def get_mandalas_for_session(self, session_id: str) -> List[MandalaOut]:
        return [m for m in self.mandalas.values() if m.sessionId == session_id]

    async def get_recent_mandalas(self, limit: int) -> List[MandalaOut]:
        # Newest insertion first so equal timestamps still come out newest-first
        newest_first = list(reversed(list(self.mandalas.values())))
        newest_first.sort(key=lambda m: m.createdAt, reverse=True)
        return newest_first[:max(limit, 0)]

    async def add_eeg_data(self, data: EegDataCreate) -> EegDataOut:
        sample = EegDataOut(id=_new_id(), timestamp=_now(), **data.model_dump())
        self.eeg_data[sample.id] = sample
        return sample

    async def get_eeg_data_for_session(self, session_id: str) -> List[EegDataOut]:
        samples = [d for d in self.eeg_data.values() if d.sessionId == session_id]
        samples.sort(key=lambda d: d.timestamp)
        return samples


class SqlStorage(Storage):
    """Storage backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory, engine=None):
        self.session_factory = session_factory
        self.engine = engine

    # --- row mapping ---

    @staticmethod
    def _session_out(row) -> SessionOut:
        return SessionOut(
            id=row.id,
            createdAt=_aware(row.created_at),
            attentionLevel=row.attention_level,
            meditationLevel=row.meditation_level,
            signalQuality=row.signal_quality,
            voiceTranscript=row.voice_transcript,
            aiPrompt=row.ai_prompt,
            mandalaUrl=row.mandala_url,
            isActive=row.is_active,
        )

    @staticmethod
    def _mandala_out(row) -> MandalaOut:
        return MandalaOut(
            id=row.id,
            sessionId=row.session_id,
            imageUrl=row.image_url,
            prompt=row.prompt,
            brainwaveData=row.brainwave_data,
            voiceTranscript=row.voice_transcript,
            createdAt=_aware(row.created_at),
        )

    @staticmethod
    def _eeg_out(row) -> EegDataOut:
        return EegDataOut(
            id=row.id,
            sessionId=row.session_id,
            attention=row.attention,
            meditation=row.meditation,
            signalQuality=row.signal_quality,
            rawData=row.raw_data,
            timestamp=_aware(row.timestamp),
        )

    _SESSION_COLUMNS = {
        "attentionLevel": "attention_level",
        "meditationLevel": "meditation_level",
        "signalQuality": "signal_quality",
        "voiceTranscript": "voice_transcript",
        "aiPrompt": "ai_prompt",
        "mandalaUrl": "mandala_url",
        "isActive": "is_active",
    }

    # --- sync implementations ---

    def _create_session(self, data: SessionCreate) -> SessionOut:
        fields = data.model_dump(exclude={"isActive"})
        row = SessionRecord(
            id=_new_id(),
            created_at=_now(),
            is_active=True,
            **{self._SESSION_COLUMNS[k]: v for k, v in fields.items()},
        )
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            return self._session_out(row)

    def _get_session(self, session_id: str) -> Optional[SessionOut]:
        with self.session_factory() as db:
            row = db.get(SessionRecord, session_id)
            return self._session_out(row) if row else None

    def _update_session(self, session_id: str, updates: SessionUpdate) -> Optional[SessionOut]:
        with self.session_factory() as db:
            row = db.get(SessionRecord, session_id)
            if row is None:
                return None
            for key, value in _session_changes(updates).items():
                setattr(row, self._SESSION_COLUMNS[key], value)
            db.commit()
            return self._session_out(row)

    def _get_active_sessions(self) -> List[SessionOut]:
        with self.session_factory() as db:
            rows = db.query(SessionRecord).filter(SessionRecord.is_active.is_(True)).all()
            return [self._session_out(r) for r in rows]

    def _create_mandala(self, data: MandalaCreate) -> MandalaOut:
        row = MandalaRecord(
            id=_new_id(),
            session_id=data.sessionId,
            image_url=data.imageUrl,
            prompt=data.prompt,
            brainwave_data=data.brainwaveData,
            voice_transcript=data.voiceTranscript,
            created_at=_now(),
        )
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            return self._mandala_out(row)

    def _get_mandala(self, mandala_id: str) -> Optional[MandalaOut]:
        with self.session_factory() as db:
            row = db.get(MandalaRecord, mandala_id)
            return self._mandala_out(row) if row else None

    def _get_mandalas_for_session(self, session_id: str) -> List[MandalaOut]:
        with self.session_factory() as db:
            rows = (
                db.query(MandalaRecord)
                .filter(MandalaRecord.session_id == session_id)
                .order_by(MandalaRecord.created_at.asc())
                .all()
            )
            return [self._mandala_out(r) for r in rows]

    def _get_recent_mandalas(self, limit: int) -> List[MandalaOut]:
        with self.session_factory() as db:
            rows = (
                db.query(MandalaRecord)
                .order_by(MandalaRecord.created_at.desc())
                .limit(max(limit, 0))
                .all()
            )
            return [self._mandala_out(r) for r in rows]

    def _add_eeg_data(self, data: EegDataCreate) -> EegDataOut:
        row = EegDataRecord(
            id=_new_id(),
            session_id=data.sessionId,
            attention=data.attention,
            meditation=data.meditation,
            signal_quality=data.signalQuality,
            raw_data=data.rawData,
            timestamp=_now(),
        )
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            return self._eeg_out(row)

    def _get_eeg_data_for_session(self, session_id: str) -> List[EegDataOut]:
        with self.session_factory() as db:
            rows = (
                db.query(EegDataRecord)
                .filter(EegDataRecord.session_id == session_id)
                .order_by(EegDataRecord.timestamp.asc())
                .all()
            )
            return [self._eeg_out(r) for r in rows]

    # --- async interface ---

    async def create_session(self, data: SessionCreate) -> SessionOut:
        return await run_in_threadpool(self._create_session, data)

    async def get_session(self, session_id: str) -> Optional[SessionOut]:
        return await run_in_threadpool(self._get_session, session_id)

    async def update_session(self, session_id: str, updates: SessionUpdate) -> Optional[SessionOut]:
        return await run_in_threadpool(self._update_session, session_id, updates)

    async def get_active_sessions(self) -> List[SessionOut]:
        return await run_in_threadpool(self._get_active_sessions)

    async def create_mandala(self, data: MandalaCreate) -> MandalaOut:
        return await run_in_threadpool(self._create_mandala, data)

    async def get_mandala(self, mandala_id: str) -> Optional[MandalaOut]:
        return await run_in_threadpool(self._get_mandala, mandala_id)

    async def get_mandalas_for_session(self, session_id: str) -> List[MandalaOut]:
        return await run_in_threadpool(self._get_mandalas_for_session, session_id)

    async def get_recent_mandalas(self, limit: int) -> List[MandalaOut]:
        return await run_in_threadpool(self._get_recent_mandalas, limit)

    async def add_eeg_data(self, data: EegDataCreate) -> EegDataOut:
        return await run_in_threadpool(self._add_eeg_data, data)

    async def get_eeg_data_for_session(self, session_id: str) -> List[EegDataOut]:
        return await run_in_threadpool(self._get_eeg_data_for_session, session_id)

    async def close(self) -> None:
        if self.engine is not None:
            await run_in_threadpool(self.engine.dispose)
            logger.info("🛑 Database engine disposed")


def build_storage(backend: str, database_url: Optional[str] = None) -> Storage:
    if backend == "sql":
        from mandalamind.database import init_db, make_engine, make_session_factory

        engine = make_engine(database_url)
        init_db(engine)
        logger.info("Using SQL storage backend")
        return SqlStorage(make_session_factory(engine), engine=engine)
    if backend != "memory":
        logger.warning(f"Unknown STORAGE_BACKEND '{backend}', falling back to memory")
    return MemStorage()
