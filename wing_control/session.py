"""
Session Controller - connection state machine for the wing actuator.

Owns the single transport handle, turns UI intents (connect, disconnect,
set angle) into transport calls and reconciles the optimistically commanded
angle against the angle reported by device telemetry.

Transition table:

    Disconnected + connect         -> Connecting   (open transport)
    Connecting   + opened          -> Connected
    Connecting   + error           -> Failed -> Disconnected
    Connected    + disconnect      -> Disconnected (close transport)
    Connected    + closed          -> Disconnected (peer-initiated)
    Connected    + message         -> Connected    (update reported angle)
    Connected    + set angle       -> Connected    (send + optimistic update)

Every intent and every transport event runs to completion on the asyncio
loop thread, so no two transitions interleave.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

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
from .message import PRESET_ANGLES, TelemetryFrame, create_angle_command
from .transport import EventListener, TransportEvent, TransportEventType, TransportHandle

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_NAME = "SORDA-air"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class SessionField(str, enum.Enum):
    """Observable session values."""
    CONNECTION_STATE = "connection_state"
    COMMANDED_ANGLE = "commanded_angle"
    REPORTED_ANGLE = "reported_angle"
    FEEDBACK_MESSAGE = "feedback_message"


@dataclass
class WingAngleState:
    """
    Commanded vs. device-reported wing angle.

    Survives reconnects: the physical wing does not move back just because
    the link dropped.
    """
    commanded_angle: float = 0.0
    reported_angle: Optional[float] = None

    @property
    def current_angle(self) -> float:
        """Angle to display: reported if known, else last commanded."""
        if self.reported_angle is not None:
            return self.reported_angle
        return self.commanded_angle


class Transport(Protocol):
    """What the controller needs from a transport adapter."""

    def open(self, endpoint: str, listener: EventListener) -> TransportHandle: ...

    def send(self, handle: TransportHandle, payload: str) -> None: ...

    def close(self, handle: TransportHandle) -> None: ...


def format_angle(angle: float) -> str:
    return f"{angle:g}°"


def feedback_is_success(message: str) -> bool:
    """Whether a feedback message reports a success (for styling)."""
    return "Connected" in message or "set to" in message


class SessionController:
    """
    Connection/session state machine for one wing actuator.

    Intents never raise. They return True on success; on failure the error
    is stored in ``last_error`` and described in ``feedback_message``.
    """

    def __init__(
        self,
        transport: Transport,
        device_name: str = DEFAULT_DEVICE_NAME,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize session controller.

        Args:
            transport: Transport adapter used to reach the device
            device_name: Name shown in feedback messages
            clock: Wall-clock source for command timestamps (default: UTC now)
        """
        self.transport = transport
        self.device_name = device_name
        self._clock = clock

        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[TransportHandle] = None
        # handles closed by disconnect() whose terminal event is still due
        self._closing_handles: Set[TransportHandle] = set()
        self._pending_endpoint: Optional[str] = None
        self._active_endpoint: Optional[str] = None

        self._angles = WingAngleState()
        self._feedback = ""
        self.last_error: Optional[WingControlError] = None

        self._subscribers: Dict[SessionField, List[Callable[[Any], None]]] = {
            f: [] for f in SessionField
        }

        # Statistics
        self._commands_sent = 0
        self._telemetry_received = 0
        self._telemetry_ignored = 0

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def active_endpoint(self) -> Optional[str]:
        """Endpoint of the established connection, None unless connected."""
        return self._active_endpoint

    @property
    def angles(self) -> WingAngleState:
        return self._angles

    @property
    def commanded_angle(self) -> float:
        return self._angles.commanded_angle

    @property
    def reported_angle(self) -> Optional[float]:
        return self._angles.reported_angle

    @property
    def feedback_message(self) -> str:
        return self._feedback

    def subscribe(
        self,
        field: SessionField,
        callback: Callable[[Any], None],
    ) -> Callable[[], None]:
        """
        Register a callback for changes of one session value.

        Returns:
            Function that removes the subscription
        """
        callbacks = self._subscribers[SessionField(field)]
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, field: SessionField, value: Any) -> None:
        for callback in list(self._subscribers[field]):
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Error in {field.value} subscriber: {e}")

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(f"Connection state: {self._state.value} -> {state.value}")
        self._state = state
        self._notify(SessionField.CONNECTION_STATE, state)

    def _set_feedback(self, message: str) -> None:
        self._feedback = message
        self._notify(SessionField.FEEDBACK_MESSAGE, message)

    def _set_commanded(self, angle: float) -> None:
        if angle == self._angles.commanded_angle:
            return
        self._angles.commanded_angle = angle
        self._notify(SessionField.COMMANDED_ANGLE, angle)

    def _set_reported(self, angle: float) -> None:
        if angle == self._angles.reported_angle:
            return
        self._angles.reported_angle = angle
        self._notify(SessionField.REPORTED_ANGLE, angle)

    def _reject(self, error: WingControlError, feedback: str) -> bool:
        logger.warning(f"Intent rejected: {error.message}")
        self.last_error = error
        self._set_feedback(feedback)
        return False

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def connect(self, endpoint: str) -> bool:
        """
        Start connecting to a device endpoint.

        Returns:
            True if a connection attempt was started
        """
        if self._state == ConnectionState.CONNECTING:
            return self._reject(
                AlreadyConnecting(f"Connection to {self._pending_endpoint} still pending"),
                f"Already connecting to {self._pending_endpoint}",
            )
        if self._state == ConnectionState.CONNECTED:
            return self._reject(
                AlreadyConnected(f"Already connected to {self._active_endpoint}"),
                f"Already connected to {self._active_endpoint}",
            )

        if not isinstance(endpoint, str) or not endpoint.strip():
            return self._reject(
                InvalidEndpoint("Endpoint address is empty"),
                "Please enter a valid WebSocket URL",
            )

        try:
            handle = self.transport.open(endpoint.strip(), self._on_transport_event)
        except InvalidEndpoint as e:
            return self._reject(e, "Invalid WebSocket URL format")

        self.last_error = None
        self._handle = handle
        self._pending_endpoint = handle.endpoint
        self._set_state(ConnectionState.CONNECTING)
        return True

    def disconnect(self) -> bool:
        """
        Close the current connection or abandon a pending attempt.

        Returns:
            True if there was something to close
        """
        if self._handle is None:
            logger.debug("Disconnect ignored, no active connection")
            return False

        handle = self._handle
        self._handle = None
        self._closing_handles.add(handle)
        self._pending_endpoint = None
        self._active_endpoint = None
        self._set_state(ConnectionState.DISCONNECTED)

        # may deliver the closed event synchronously
        self.transport.close(handle)
        return True

    def set_angle(self, angle: float) -> bool:
        """
        Command a new wing angle.

        The commanded angle is updated as soon as the command is handed to
        the transport, before the device confirms anything.

        Returns:
            True if a command was sent
        """
        if self._state != ConnectionState.CONNECTED or self._handle is None:
            return self._reject(
                NotConnected(f"Cannot set angle while {self._state.value}"),
                f"Not connected to {self.device_name}",
            )

        now = self._clock() if self._clock else None
        try:
            command = create_angle_command(angle, now)
        except OutOfRange as e:
            return self._reject(e, "Angle must be between 0° and 90°")

        try:
            self.transport.send(self._handle, command.to_json())
        except NotOpen as e:
            return self._reject(
                NotConnected(e.message),
                f"Not connected to {self.device_name}",
            )

        self._commands_sent += 1
        self.last_error = None
        logger.info(f"Sent setAngle {command.angle:g}")
        self._set_commanded(command.angle)
        self._set_feedback(f"Wing angle set to {format_angle(command.angle)}")
        return True

    def apply_preset(self, angle: float) -> bool:
        """Quick-preset shortcut. Same contract as set_angle()."""
        if angle not in PRESET_ANGLES:
            raise ValueError(f"{angle!r} is not a preset angle {PRESET_ANGLES}")
        return self.set_angle(angle)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_transport_event(self, event: TransportEvent) -> None:
        handle = event.handle

        if handle in self._closing_handles:
            if event.type in (TransportEventType.CLOSED, TransportEventType.ERROR):
                self._closing_handles.discard(handle)
                # a newer link owns the feedback line now
                if self._handle is None:
                    self._set_feedback(f"Disconnected from {self.device_name}")
            return

        if handle is not self._handle:
            logger.debug(f"Ignoring {event.type.value} event from stale handle {handle.id}")
            return

        if event.type == TransportEventType.OPENED:
            self._handle_opened(handle)
        elif event.type == TransportEventType.ERROR:
            self._handle_error(event.reason)
        elif event.type == TransportEventType.CLOSED:
            self._handle_closed()
        elif event.type == TransportEventType.MESSAGE:
            self._handle_message(event.payload)

    def _handle_opened(self, handle: TransportHandle) -> None:
        if self._state != ConnectionState.CONNECTING:
            logger.warning(f"Unexpected open event while {self._state.value}")
            return

        self._active_endpoint = handle.endpoint
        self._pending_endpoint = None
        self._set_state(ConnectionState.CONNECTED)
        self._set_feedback(f"Connected to {self.device_name}")

    def _handle_error(self, reason: Optional[str]) -> None:
        self.last_error = ConnectionFailed(reason or "connection failed")
        self._handle = None
        self._pending_endpoint = None
        self._active_endpoint = None

        self._set_state(ConnectionState.FAILED)
        self._set_feedback("Connection failed. Check URL and try again.")
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_closed(self) -> None:
        self._handle = None
        self._pending_endpoint = None
        self._active_endpoint = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._set_feedback(f"Disconnected from {self.device_name}")

    def _handle_message(self, raw) -> None:
        if self._state != ConnectionState.CONNECTED:
            return

        frame = TelemetryFrame.decode(raw)
        if frame is None:
            self._telemetry_ignored += 1
            logger.debug(f"Ignoring non-telemetry frame: {raw!r}")
            return

        self._telemetry_received += 1
        self._set_reported(frame.angle)

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            "state": self._state.value,
            "endpoint": self._active_endpoint,
            "commanded_angle": self._angles.commanded_angle,
            "reported_angle": self._angles.reported_angle,
            "commands_sent": self._commands_sent,
            "telemetry_received": self._telemetry_received,
            "telemetry_ignored": self._telemetry_ignored,
        }
