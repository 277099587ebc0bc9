import logging

from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.eeg import EegDataCreate
from mandalamind.services.neurosky_service import NeuroSkyService
from mandalamind.storage import Storage
from mandalamind.websocket.manager import ConnectionManager

logger = logging.getLogger("mandalamind.websocket")


async def store_eeg_for_active_sessions(storage: Storage, data: BrainwaveData) -> None:
    try:
        for session in await storage.get_active_sessions():
            await storage.add_eeg_data(EegDataCreate(
                sessionId=session.id,
                attention=data.attention,
                meditation=data.meditation,
                signalQuality=data.signalQuality,
                rawData=data.model_dump(),
            ))
    except Exception:
        logger.exception("Error storing EEG data")


def wire_neurosky_events(neurosky: NeuroSkyService, manager: ConnectionManager, storage: Storage) -> None:
    """Relay device events to every WebSocket client and persist readings."""

    async def on_connected():
        await manager.broadcast_json({"type": "neurosky_connected"})

    async def on_disconnected():
        await manager.broadcast_json({"type": "neurosky_disconnected"})

    async def on_data(data: BrainwaveData):
        await manager.broadcast_json({"type": "eeg_data", "data": data.model_dump()})
        await store_eeg_for_active_sessions(storage, data)

    async def on_error(error: Exception):
        await manager.broadcast_json({"type": "neurosky_error", "error": str(error)})

    async def on_blink(blink: dict):
        await manager.broadcast_json({"type": "blink", "data": blink})

    async def on_eeg_power(power: dict):
        await manager.broadcast_json({"type": "eeg_power", "data": power})

    neurosky.on("connected", on_connected)
    neurosky.on("disconnected", on_disconnected)
    neurosky.on("data", on_data)
    neurosky.on("error", on_error)
    neurosky.on("blink", on_blink)
    neurosky.on("eegPower", on_eeg_power)
