from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import List

from mandalamind.dependencies import get_storage
from mandalamind.schemas.eeg import EegDataOut
from mandalamind.schemas.mandala import MandalaOut
from mandalamind.schemas.sessions import SessionCreate, SessionOut, SessionUpdate
from mandalamind.storage import Storage

router = APIRouter()


def session_not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Session not found"})


@router.post("/sessions", response_model=SessionOut)
async def create_session(data: SessionCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_session(data)


@router.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, storage: Storage = Depends(get_storage)):
    session = await storage.get_session(session_id)
    if session is None:
        return session_not_found()
    return session


@router.patch("/sessions/{session_id}", response_model=SessionOut)
async def update_session(session_id: str, updates: SessionUpdate, storage: Storage = Depends(get_storage)):
    session = await storage.update_session(session_id, updates)
    if session is None:
        return session_not_found()
    return session


@router.get("/sessions/{session_id}/eeg", response_model=List[EegDataOut])
async def get_session_eeg(session_id: str, storage: Storage = Depends(get_storage)):
    """EEG samples for a session, oldest first; unknown ids give an empty list."""
    return await storage.get_eeg_data_for_session(session_id)


@router.get("/sessions/{session_id}/mandalas", response_model=List[MandalaOut])
async def get_session_mandalas(session_id: str, storage: Storage = Depends(get_storage)):
    return await storage.get_mandalas_for_session(session_id)
