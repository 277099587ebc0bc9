from fastapi import APIRouter, WebSocket
import json
import logging

logger = logging.getLogger("mandalamind.websocket")

router = APIRouter(tags=["WebSocket"])

DEMO_ENABLED_MESSAGE = "Demo mode enabled - generating simulated brainwave data"
DEMO_DISABLED_MESSAGE = "Demo mode disabled - ready for real NeuroSky connection"


async def handle_command(websocket: WebSocket, command: dict):
    state = websocket.app.state
    neurosky, manager = state.neurosky, state.manager
    kind = command.get("type")

    if kind == "connect_neurosky":
        try:
            await neurosky.connect()
        except Exception as e:
            logger.error(f"WebSocket connect_neurosky failed: {e}")
            await manager.send_json(websocket, {"type": "error", "message": "Failed to connect to NeuroSky device"})

    elif kind == "disconnect_neurosky":
        await neurosky.disconnect()

    elif kind == "enable_demo":
        try:
            if neurosky.get_connection_status():
                await neurosky.disconnect()
            await neurosky.enable_demo_mode()
            await manager.send_json(websocket, {"type": "demo_enabled", "message": DEMO_ENABLED_MESSAGE})
        except Exception as e:
            logger.error(f"WebSocket enable_demo failed: {e}")
            await manager.send_json(websocket, {"type": "error", "message": "Failed to enable demo mode"})

    elif kind == "disable_demo":
        try:
            await neurosky.disable_demo_mode()
            await manager.send_json(websocket, {"type": "demo_disabled", "message": DEMO_DISABLED_MESSAGE})
        except Exception as e:
            logger.error(f"WebSocket disable_demo failed: {e}")
            await manager.send_json(websocket, {"type": "error", "message": "Failed to disable demo mode"})

    else:
        logger.debug(f"Ignoring unknown WebSocket command: {kind!r}")


@router.websocket("/ws")
async def neurosky_endpoint(websocket: WebSocket):
    """Streams device events to the browser and accepts device commands."""
    state = websocket.app.state
    manager, neurosky = state.manager, state.neurosky

    await manager.connect(websocket)
    current = neurosky.get_current_data()
    await manager.send_json(websocket, {
        "type": "connection_status",
        "connected": neurosky.get_connection_status(),
        "currentData": current.model_dump() if current else None,
    })

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("Client disconnected from WebSocket")
                break

            raw_message = message.get("text")
            if raw_message is None:
                logger.warning("Binary WebSocket frame received, skipping...")
                continue

            try:
                command = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON received, skipping...")
                continue
            if not isinstance(command, dict):
                logger.warning("WebSocket message is not an object, skipping...")
                continue

            await handle_command(websocket, command)

    finally:
        await manager.disconnect(websocket)
