"""
NeuroSky headset access through the ThinkGear Connector.

The connector exposes the headset on a local TCP port and speaks a
newline/carriage-return delimited JSON protocol. After an auth handshake it
streams eSense values (attention, meditation), ``poorSignalLevel``, blink
strength, raw samples and band powers. This module turns that stream into
``BrainwaveData`` events and can also synthesize plausible readings when no
headset is available (demo mode).
"""
import asyncio
import inspect
import json
import logging
import math
import random
import re
import socket
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mandalamind.core import config
from mandalamind.schemas.brainwave import BrainwaveData, clamp_level

logger = logging.getLogger("mandalamind.neurosky")

NOT_RUNNING_MESSAGE = (
    "ThinkGear Connector is not running. Please start the ThinkGear Connector "
    "application and ensure your NeuroSky device is connected."
)
REFUSED_MESSAGE = (
    "ThinkGear Connector is not running. Please start the ThinkGear Connector "
    "application, connect your NeuroSky device, and try again."
)
UNREACHABLE_MESSAGE = "Cannot reach ThinkGear Connector. Please ensure it is installed and running."

DEMO_INTERVAL_SEC = 0.25  # 4 Hz
DEMO_PHASE_SEC = 30
MAX_RECONNECT_DELAY_SEC = 30
BASE_RECONNECT_DELAY_SEC = 5

_LINE_SPLIT = re.compile(rb"[\r\n]")


class NeuroSkyConnectionError(Exception):
    """Raised when the ThinkGear Connector cannot be reached or refuses us."""


@dataclass
class NeuroSkyConfig:
    host: str = config.THINKGEAR_HOST
    port: int = config.THINKGEAR_PORT
    app_name: str = config.THINKGEAR_APP_NAME
    app_key: str = config.THINKGEAR_APP_KEY
    auto_connect: bool = False
    demo_mode: bool = False
    enable_raw_output: bool = False


def _js_round(value: float) -> int:
    # Half-up rounding, the connector's own convention
    return int(math.floor(value + 0.5))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _now_ms() -> float:
    return time.time() * 1000


Listener = Callable[..., Any]


class EventEmitter:
    """Minimal listener registry; async listeners are scheduled as tasks."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._pending: set = set()

    def on(self, event: str, callback: Listener) -> None:
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Listener) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def emit(self, event: str, *args) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                result = callback(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._listener_done(event))

    def _listener_done(self, event: str):
        def done(task: asyncio.Future):
            self._pending.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Async listener for '{event}' failed: {task.exception()!r}")
        return done

    async def drain(self) -> None:
        """Wait for async listeners scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class NeuroSkyService(EventEmitter):
    """
    Client for the ThinkGear Connector with reconnect/backoff and demo mode.

    Events: ``connected``, ``disconnected``, ``data`` (BrainwaveData),
    ``blink``, ``rawEeg``, ``eegPower`` and ``error`` (an exception).
    """

    max_reconnect_attempts = 5

    def __init__(
        self,
        neurosky_config: Optional[NeuroSkyConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        probe_timeout: float = 3.0,
    ):
        super().__init__()
        self.config = neurosky_config or NeuroSkyConfig()
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.clock = clock
        self.probe_timeout = probe_timeout
        self.demo_interval = DEMO_INTERVAL_SEC

        self.is_connected = False
        self.is_authenticated = False
        self.is_demo_mode = self.config.demo_mode
        self.reconnect_attempts = 0
        self.current_data: Optional[BrainwaveData] = None

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._demo_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self.is_demo_mode:
            self._start_demo_mode()
            return

        try:
            await self._open_connection()
        except NeuroSkyConnectionError as e:
            logger.error(f"Failed to connect to NeuroSky: {e}")
            self.reconnect_attempts += 1
            raise

    async def _open_connection(self) -> None:
        host, port = self.config.host, self.config.port

        available = await self.check_thinkgear_connector(host, port, self.probe_timeout)
        if not available:
            raise NeuroSkyConnectionError(NOT_RUNNING_MESSAGE)

        # A stale reader would report its own EOF against the new socket
        await self._cancel_task(self._reader_task)
        self._reader_task = None
        await self._close_socket()
        self.is_connected = False
        self.is_authenticated = False

        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise NeuroSkyConnectionError(self._friendly_error_message(e)) from e

        self._reader, self._writer = reader, writer
        self.is_connected = True
        logger.info(f"🔌 Connected to ThinkGear Connector at {host}:{port}")

        auth_message = {
            "appName": self.config.app_name or "MandalaMind",
            "appKey": self.config.app_key,
            "format": "Json",
            "enableRawOutput": bool(self.config.enable_raw_output),
        }
        writer.write(json.dumps(auth_message).encode("utf-8"))
        await writer.drain()
        logger.info(f"Sent authentication to ThinkGear Connector: {auth_message['appName']}")

        self._reader_task = asyncio.create_task(self._read_loop(reader))

    async def disconnect(self) -> None:
        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel_task(self._demo_task)
        self._demo_task = None
        await self._cancel_task(self._reader_task)
        self._reader_task = None
        await self._close_socket()

        self.is_connected = False
        self.is_authenticated = False
        self.is_demo_mode = False
        self.reconnect_attempts = 0
        self.emit("disconnected")

    async def _close_socket(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Stream handling
    # ------------------------------------------------------------------

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        buffer = b""
        try:
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    break
                buffer += chunk
                *lines, buffer = _LINE_SPLIT.split(buffer)
                for line in lines:
                    self._handle_line(line)
                # Unterminated but complete JSON is still a message
                if buffer.strip():
                    try:
                        message = json.loads(buffer)
                    except ValueError:
                        continue
                    buffer = b""
                    self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except OSError as e:
            self._handle_socket_error(e)
        self._on_close()

    def _handle_line(self, line: bytes) -> None:
        if not line.strip():
            return
        try:
            message = json.loads(line)
        except ValueError as e:
            logger.error(f"Error parsing ThinkGear message line: {line[:200]!r}: {e}")
            return
        self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        if isinstance(message, dict):
            self.handle_thinkgear_message(message)

    def handle_thinkgear_message(self, message: Dict[str, Any]) -> None:
        if not self.is_authenticated:
            status = message.get("status")
            if status == "success":
                self.is_authenticated = True
                self.reconnect_attempts = 0
                logger.info("ThinkGear Connector authentication successful")
                self.emit("connected")
            elif status == "error":
                reason = message.get("message") or "Invalid app key"
                logger.error(f"ThinkGear Connector authentication failed: {reason}")
                self.emit("error", NeuroSkyConnectionError(f"Authentication failed: {reason}"))
            # Nothing else is meaningful until the handshake completes
            return

        update: Dict[str, int] = {}

        esense = message.get("eSense")
        if isinstance(esense, dict):
            attention = esense.get("attention")
            if _is_number(attention) and attention >= 0:
                update["attention"] = int(clamp_level(attention))
            meditation = esense.get("meditation")
            if _is_number(meditation) and meditation >= 0:
                update["meditation"] = int(clamp_level(meditation))

        poor_signal = message.get("poorSignalLevel")
        if _is_number(poor_signal):
            # 0 = perfect contact, 200 = headset off
            update["signalQuality"] = _js_round(clamp_level(100 - (poor_signal / 200) * 100))

        if update:
            previous = self.current_data
            self.current_data = BrainwaveData(
                attention=update.get("attention", previous.attention if previous else 0),
                meditation=update.get("meditation", previous.meditation if previous else 0),
                signalQuality=update.get("signalQuality", previous.signalQuality if previous else 0),
                timestamp=_now_ms(),
            )
            self.emit("data", self.current_data)

        blink = message.get("blinkStrength")
        if _is_number(blink) and blink > 0:
            self.emit("blink", {"strength": blink, "timestamp": _now_ms()})

        raw = message.get("rawEeg")
        if _is_number(raw):
            self.emit("rawEeg", {"value": raw, "timestamp": _now_ms()})

        power = message.get("eegPower")
        if isinstance(power, dict):
            self.emit("eegPower", {**power, "timestamp": _now_ms()})

    def _on_close(self) -> None:
        logger.info("NeuroSky connection closed")
        self._reader_task = None
        writer, self._writer, self._reader = self._writer, None, None
        if writer is not None:
            writer.close()
        self.is_connected = False
        self.is_authenticated = False
        self.emit("disconnected")

        if self.config.auto_connect and self.reconnect_attempts < self.max_reconnect_attempts:
            self._schedule_reconnect()

    def _handle_socket_error(self, error: OSError) -> str:
        logger.error(f"NeuroSky connection error: {error!r}")
        self.is_connected = False
        self.is_authenticated = False
        message = self._friendly_error_message(error)
        self.emit("error", NeuroSkyConnectionError(message))
        return message

    @staticmethod
    def _friendly_error_message(error: OSError) -> str:
        if isinstance(error, ConnectionRefusedError):
            return REFUSED_MESSAGE
        if isinstance(error, socket.gaierror):
            return UNREACHABLE_MESSAGE
        return str(error) or "Connection error"

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def reconnect_delay(self) -> float:
        return min(MAX_RECONNECT_DELAY_SEC, BASE_RECONNECT_DELAY_SEC * 2 ** self.reconnect_attempts)

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and self._reconnect_task is not asyncio.current_task():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        if self.config.auto_connect and self.reconnect_attempts < self.max_reconnect_attempts:
            delay = self.reconnect_delay()
            logger.info(f"Reconnecting to NeuroSky in {delay}s")
            self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self.sleep(delay)
        self.reconnect_attempts += 1
        logger.info(
            f"Attempting to reconnect to NeuroSky... "
            f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        try:
            await self._open_connection()
        except NeuroSkyConnectionError as e:
            logger.error(f"Reconnection failed: {e}")
            if self.reconnect_attempts >= self.max_reconnect_attempts:
                logger.warning("Max reconnection attempts reached. Stopping automatic reconnection.")
                self._reconnect_task = None
                self.emit("error", NeuroSkyConnectionError(
                    "Could not reconnect to ThinkGear Connector after multiple attempts."
                ))
            else:
                self._schedule_reconnect()
        else:
            self._reconnect_task = None

    def reset_reconnection_attempts(self) -> None:
        self.reconnect_attempts = 0

    # ------------------------------------------------------------------
    # Demo mode
    # ------------------------------------------------------------------

    async def enable_demo_mode(self) -> None:
        self.is_demo_mode = True
        self.config.demo_mode = True

        await self._cancel_task(self._reader_task)
        self._reader_task = None
        await self._close_socket()
        self.is_authenticated = False
        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None

        self._start_demo_mode()

    async def disable_demo_mode(self) -> None:
        self.is_demo_mode = False
        self.config.demo_mode = False
        await self._cancel_task(self._demo_task)
        self._demo_task = None
        self.is_connected = False
        self.emit("disconnected")
        await self._close_socket()

    def _start_demo_mode(self) -> None:
        logger.info("Starting NeuroSky demo mode")
        if self._demo_task is not None and not self._demo_task.done():
            self._demo_task.cancel()
        self.is_connected = True
        self.emit("connected")
        self._demo_task = asyncio.create_task(self._demo_loop())

    async def _demo_loop(self) -> None:
        while True:
            await self.sleep(self.demo_interval)
            self.generate_demo_data()

    def generate_demo_data(self, now: Optional[float] = None) -> BrainwaveData:
        """Produce one synthetic reading cycling through four mental states."""
        t = self.clock() if now is None else now
        r = self.rng.random

        phase = int(t // DEMO_PHASE_SEC) % 4
        if phase == 0:  # settling in
            base_attention = 20 + 15 * math.sin(t * 0.02)
            base_meditation = 15 + 20 * math.sin(t * 0.015)
            variation = 15
        elif phase == 1:  # building focus
            base_attention = 45 + 25 * math.sin(t * 0.01)
            base_meditation = 30 + 25 * math.cos(t * 0.012)
            variation = 10
        elif phase == 2:  # deep meditation
            base_attention = 25 + 15 * math.sin(t * 0.008)
            base_meditation = 60 + 20 * math.cos(t * 0.01)
            variation = 8
        else:  # mixed
            base_attention = 40 + 20 * math.sin(t * 0.015)
            base_meditation = 45 + 15 * math.cos(t * 0.018)
            variation = 12

        attention = int(clamp_level(_js_round(
            base_attention
            + variation * (r() - 0.5)
            + 3 * math.sin(t * 0.5)   # breathing
            + 2 * math.sin(t * 2)     # micro-movements
        )))
        meditation = int(clamp_level(_js_round(
            base_meditation
            + (variation * 0.8) * (r() - 0.5)
            + 4 * math.cos(t * 0.3)
            + 1.5 * math.cos(t * 1.5)
        )))

        base_signal = 88 + 8 * math.sin(t * 0.003)
        if r() < 0.05:  # headset shifted
            base_signal -= 20 + 15 * r()
        signal_quality = int(clamp_level(_js_round(base_signal + 6 * (r() - 0.5)), 30, 100))

        stamp = t * 1000
        self.current_data = BrainwaveData(
            attention=attention,
            meditation=meditation,
            signalQuality=signal_quality,
            timestamp=stamp,
        )
        self.emit("data", self.current_data)

        blink_chance = 0.015 + 0.01 * math.sin(t * 0.1)
        if r() < blink_chance:
            self.emit("blink", {"strength": _js_round(25 + 40 * r()), "timestamp": stamp})

        if r() < 0.1:
            self.emit("eegPower", {
                "delta": _js_round(200000 + 100000 * r()),
                "theta": _js_round(15000 + 10000 * r()),
                "lowAlpha": _js_round(2000 + 3000 * r()),
                "highAlpha": _js_round(1500 + 2000 * r()),
                "lowBeta": _js_round(800 + 1200 * r()),
                "highBeta": _js_round(600 + 800 * r()),
                "lowGamma": _js_round(400 + 600 * r()),
                "highGamma": _js_round(200 + 400 * r()),
                "timestamp": stamp,
            })

        return self.current_data

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @staticmethod
    async def check_thinkgear_connector(
        host: str = config.THINKGEAR_HOST,
        port: int = config.THINKGEAR_PORT,
        timeout: float = 3.0,
    ) -> bool:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass
        return True

    def get_connection_status(self) -> bool:
        return self.is_connected

    def get_current_data(self) -> Optional[BrainwaveData]:
        return self.current_data

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            "isConnected": self.is_connected,
            "isAuthenticated": self.is_authenticated,
            "isDemoMode": self.is_demo_mode,
            "reconnectAttempts": self.reconnect_attempts,
            "maxReconnectAttempts": self.max_reconnect_attempts,
            "config": {
                "host": self.config.host,
                "port": self.config.port,
                "appName": self.config.app_name,
            },
        }
