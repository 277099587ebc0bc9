from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from mandalamind.dependencies import get_manager, get_neurosky
from mandalamind.services.neurosky_service import NeuroSkyService
from mandalamind.websocket.manager import ConnectionManager
from mandalamind.websocket.routes import DEMO_DISABLED_MESSAGE, DEMO_ENABLED_MESSAGE

logger = logging.getLogger("mandalamind.neurosky")

router = APIRouter(prefix="/neurosky")

SETUP_TROUBLESHOOTING = [
    "Ensure ThinkGear Connector is running",
    "Check that your NeuroSky device is connected in ThinkGear Connector",
    "Try restarting ThinkGear Connector",
    "Make sure the COM port is properly selected",
]
DEVICE_TROUBLESHOOTING = [
    "Check your NeuroSky device battery",
    "Ensure proper headset placement",
    "Try disconnecting and reconnecting in ThinkGear Connector",
]

CONNECTOR_INSTRUCTIONS = {
    "windows": [
        "Download and install ThinkGear Connector from NeuroSky developer portal",
        "Power on your NeuroSky headset and wait for the blue light",
        "Open ThinkGear Connector application",
        "Select the correct COM port (usually COM3, COM4, COM5, or COM6)",
        'Click Connect - you should see "Connecting..." then "Connected"',
        "Return to this application and try connecting again",
    ],
    "mac": [
        "Download and install ThinkGear Connector for macOS",
        "Power on your NeuroSky headset and pair via Bluetooth",
        "Open ThinkGear Connector application",
        "Select your paired headset from the device list",
        "Click Connect and wait for successful connection",
        "Return to this application and try connecting again",
    ],
    "troubleshooting": [
        "Ensure your NeuroSky headset is charged and powered on",
        "Check that the headset is properly paired with your computer",
        "Restart ThinkGear Connector if connection fails",
        "Try different COM ports if using Windows",
        "Make sure no other applications are using the NeuroSky device",
    ],
}

DEMO_INFO = {
    "description": "Demo mode simulates realistic brainwave patterns with 4 phases:",
    "phases": [
        "Settling in - Lower attention and meditation as you get comfortable",
        "Building focus - Increasing attention with moderate meditation",
        "Deep meditation - High meditation with relaxed attention",
        "Mixed state - Balanced attention and meditation levels",
    ],
    "note": "Each phase lasts 30 seconds and cycles continuously",
}


async def connector_available(neurosky: NeuroSkyService) -> bool:
    return await neurosky.check_thinkgear_connector(
        neurosky.config.host, neurosky.config.port, neurosky.probe_timeout
    )


@router.get("/status")
async def neurosky_status(neurosky: NeuroSkyService = Depends(get_neurosky)):
    current = neurosky.get_current_data()
    return {
        "connected": neurosky.get_connection_status(),
        "currentData": current.model_dump() if current else None,
        "connectionInfo": neurosky.get_connection_info(),
    }


@router.post("/connect")
async def neurosky_connect(
    neurosky: NeuroSkyService = Depends(get_neurosky),
    manager: ConnectionManager = Depends(get_manager),
):
    neurosky.reset_reconnection_attempts()

    if not await connector_available(neurosky):
        return JSONResponse(status_code=503, content={
            "success": False,
            "error": "ThinkGear Connector is not running",
            "message": "Please start ThinkGear Connector and connect your NeuroSky device first",
            "needsSetup": True,
        })

    try:
        await neurosky.connect()
    except Exception as e:
        error_message = str(e) or "Failed to connect to NeuroSky"
        needs_setup = "ThinkGear Connector" in error_message
        logger.error(f"NeuroSky connect failed: {error_message}")
        await manager.broadcast_json({"type": "neurosky_error", "error": error_message})
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": error_message,
            "needsSetup": needs_setup,
            "troubleshooting": SETUP_TROUBLESHOOTING if needs_setup else DEVICE_TROUBLESHOOTING,
        })

    info = neurosky.get_connection_info()
    await manager.broadcast_json({"type": "neurosky_connected", "connectionInfo": info})
    return {
        "success": True,
        "message": "Successfully connected to NeuroSky device via ThinkGear Connector",
        "connectionInfo": info,
    }


@router.post("/disconnect")
async def neurosky_disconnect(
    neurosky: NeuroSkyService = Depends(get_neurosky),
    manager: ConnectionManager = Depends(get_manager),
):
    await neurosky.disconnect()
    info = neurosky.get_connection_info()
    await manager.broadcast_json({"type": "neurosky_disconnected", "connectionInfo": info})
    return {
        "success": True,
        "message": "Successfully disconnected from NeuroSky device",
        "connectionInfo": info,
    }


@router.get("/check")
async def neurosky_check(neurosky: NeuroSkyService = Depends(get_neurosky)):
    available = await connector_available(neurosky)
    return {
        "available": available,
        "status": "ready" if available else "not_running",
        "message": (
            "ThinkGear Connector is running and ready for connection"
            if available
            else "ThinkGear Connector is not running. Please start the application and connect your NeuroSky device."
        ),
        "instructions": CONNECTOR_INSTRUCTIONS,
    }


@router.post("/demo/enable")
async def neurosky_demo_enable(
    neurosky: NeuroSkyService = Depends(get_neurosky),
    manager: ConnectionManager = Depends(get_manager),
):
    if neurosky.get_connection_status():
        await neurosky.disconnect()
    await neurosky.enable_demo_mode()

    await manager.broadcast_json({
        "type": "demo_enabled",
        "message": DEMO_ENABLED_MESSAGE,
        "connectionInfo": neurosky.get_connection_info(),
    })
    return {"success": True, "message": DEMO_ENABLED_MESSAGE, "demoInfo": DEMO_INFO}


@router.post("/demo/disable")
async def neurosky_demo_disable(
    neurosky: NeuroSkyService = Depends(get_neurosky),
    manager: ConnectionManager = Depends(get_manager),
):
    await neurosky.disable_demo_mode()
    info = neurosky.get_connection_info()
    await manager.broadcast_json({"type": "demo_disabled", "message": DEMO_DISABLED_MESSAGE, "connectionInfo": info})
    return {"success": True, "message": DEMO_DISABLED_MESSAGE, "connectionInfo": info}
