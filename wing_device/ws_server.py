"""
WebSocket Server for the simulated wing.

Handles:
- FastAPI WebSocket endpoint at / (the client's default ws://host:port)
- setAngle command parsing and forwarding to the simulated actuator
- Periodic angle telemetry broadcast to every connected client
- /health endpoint for monitoring
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from wing_control.errors import OutOfRange
from wing_control.message import AngleCommand

from .actuator import SimulatedWing

logger = logging.getLogger(__name__)


class DeviceServer:
    """
    WebSocket server fronting one simulated wing.

    Any number of clients may connect; all of them may command the wing and
    all of them receive telemetry.
    """

    def __init__(
        self,
        wing: Optional[SimulatedWing] = None,
        telemetry_hz: float = 10.0,
    ):
        """
        Initialize device server.

        Args:
            wing: Simulated actuator (defaults to SimulatedWing())
            telemetry_hz: Telemetry broadcast rate
        """
        if telemetry_hz <= 0:
            raise ValueError("telemetry_hz must be positive")

        self.wing = wing or SimulatedWing()
        self.telemetry_hz = telemetry_hz

        # Connected clients
        self._clients: Dict[str, WebSocket] = {}
        self._client_counter = 0

        # Statistics
        self._total_messages = 0
        self._invalid_messages = 0
        self._telemetry_sent = 0

        self._telemetry_task: Optional[asyncio.Task] = None

        self.app = FastAPI(title="SORDA-air Wing Simulator", lifespan=self._lifespan)

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self._telemetry_task = asyncio.create_task(self._telemetry_loop())
        logger.info(f"Telemetry loop started at {self.telemetry_hz:g} Hz")
        try:
            yield
        finally:
            self._telemetry_task.cancel()
            try:
                await self._telemetry_task
            except asyncio.CancelledError:
                pass
            self._telemetry_task = None

    def _setup_routes(self):
        """Set up FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {"status": "ok", **self.get_stats()}

        @self.app.websocket("/")
        async def websocket_device(websocket: WebSocket):
            """WebSocket endpoint for wing commands and telemetry."""
            await self._handle_websocket(websocket)

    async def _handle_websocket(self, websocket: WebSocket) -> None:
        """Handle one client connection."""
        await websocket.accept()

        self._client_counter += 1
        client_id = f"client_{self._client_counter}"
        self._clients[client_id] = websocket
        logger.info(f"Client connected: {client_id} from {websocket.client}")

        try:
            # Current state right away, no need to wait for the next tick
            await websocket.send_json(self.wing.snapshot())
            await self._receive_messages(websocket, client_id)
        except WebSocketDisconnect:
            logger.info(f"Client disconnected: {client_id}")
        except Exception as e:
            logger.error(f"Error handling client {client_id}: {e}")
        finally:
            self._clients.pop(client_id, None)

    async def _receive_messages(self, websocket: WebSocket, client_id: str) -> None:
        """Receive and apply commands from a client."""
        while True:
            data = await websocket.receive_text()
            self._total_messages += 1

            try:
                cmd = AngleCommand.from_json(data)
            except (ValueError, OutOfRange) as e:
                # json.JSONDecodeError is a ValueError
                self._invalid_messages += 1
                logger.warning(f"Invalid message from {client_id}: {e}")
                continue

            logger.debug(f"setAngle {cmd.angle:g} from {client_id} (ts={cmd.timestamp})")
            self.wing.command(cmd.angle)

    async def _telemetry_loop(self) -> None:
        """Step the simulation and broadcast telemetry at a fixed rate."""
        period = 1.0 / self.telemetry_hz
        last = time.monotonic()

        while True:
            await asyncio.sleep(period)
            now = time.monotonic()
            self.wing.step(now - last)
            last = now
            await self.broadcast(self.wing.snapshot())

    async def broadcast(self, payload: dict) -> None:
        """Send a payload to every connected client, dropping dead ones."""
        text = json.dumps(payload)
        for client_id, websocket in list(self._clients.items()):
            try:
                await websocket.send_text(text)
                self._telemetry_sent += 1
            except Exception as e:
                logger.warning(f"Dropping client {client_id}: {e}")
                self._clients.pop(client_id, None)

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            "connected_clients": len(self._clients),
            "angle": self.wing.position,
            "target": self.wing.target,
            "total_messages": self._total_messages,
            "invalid_messages": self._invalid_messages,
            "telemetry_sent": self._telemetry_sent,
        }


def create_app(
    slew_rate: float = 30.0,
    telemetry_hz: float = 10.0,
) -> FastAPI:
    """
    Create FastAPI application with a simulated wing.

    Args:
        slew_rate: Wing speed in degrees per second
        telemetry_hz: Telemetry broadcast rate

    Returns:
        Configured FastAPI application
    """
    server = DeviceServer(
        wing=SimulatedWing(slew_rate=slew_rate),
        telemetry_hz=telemetry_hz,
    )
    return server.app
