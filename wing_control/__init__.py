"""
Wing Control - Remote control client for the SORDA-air morphing wing.

Connects to the wing actuator over WebSocket, sends setAngle commands and
reconciles the optimistically commanded angle against device telemetry.

The core (transport + session) has no UI dependencies; the console in
``wing_control.main`` is one possible presentation layer.
"""

from .errors import (
    AlreadyConnected,
    AlreadyConnecting,
    ConnectionFailed,
    InvalidEndpoint,
    NotConnected,
    NotOpen,
    OutOfRange,
    WingControlError,
)
from .message import AngleCommand, TelemetryFrame, PRESET_ANGLES
from .session import ConnectionState, SessionController, SessionField, WingAngleState
from .transport import TransportConfig, WebSocketTransport

__version__ = "1.0.0"

__all__ = [
    "AlreadyConnected",
    "AlreadyConnecting",
    "AngleCommand",
    "ConnectionFailed",
    "ConnectionState",
    "InvalidEndpoint",
    "NotConnected",
    "NotOpen",
    "OutOfRange",
    "PRESET_ANGLES",
    "SessionController",
    "SessionField",
    "TelemetryFrame",
    "TransportConfig",
    "WebSocketTransport",
    "WingAngleState",
    "WingControlError",
]
