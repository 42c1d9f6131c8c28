"""
Message Schema and Validation for wing control messages.

Defines the JSON wire format exchanged with the wing actuator:

- Outbound ``setAngle`` commands (client -> device)
- Inbound telemetry frames carrying the reported ``angle`` (device -> client)

Outgoing angles are validated, never reinterpreted. Inbound frames are decoded
opportunistically: anything that does not carry a numeric angle is dropped.
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from numbers import Real
from typing import Optional, Union

from .errors import OutOfRange

logger = logging.getLogger(__name__)

MIN_ANGLE = 0.0
MAX_ANGLE = 90.0

# Quick-preset shortcuts offered by the UI
PRESET_ANGLES = (0, 15, 45, 90)

SET_ANGLE_TYPE = "setAngle"


def _is_number(value) -> bool:
    # bool is a subclass of int but never a meaningful angle
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_angle(value) -> float:
    """
    Check that an angle can be sent to the wing.

    Args:
        value: Requested angle in degrees

    Returns:
        The angle as a float

    Raises:
        OutOfRange: If the value is not a finite number in [0, 90]
    """
    if not _is_number(value):
        raise OutOfRange(f"Angle must be a number, got {value!r}")

    try:
        angle = float(value)
    except OverflowError:
        raise OutOfRange(f"Angle {value!r} is too large") from None
    if not math.isfinite(angle):
        raise OutOfRange(f"Angle {angle} is not finite")
    if angle < MIN_ANGLE or angle > MAX_ANGLE:
        raise OutOfRange(
            f"Angle {angle} outside [{MIN_ANGLE:g}, {MAX_ANGLE:g}]"
        )
    return angle


def clamp_angle(value: float) -> float:
    """Clamp a user-entered angle into [0, 90]. NaN becomes 0."""
    if not math.isfinite(value):
        return MAX_ANGLE if value == math.inf else MIN_ANGLE
    return max(MIN_ANGLE, min(MAX_ANGLE, float(value)))


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """Format a wall-clock time as ISO-8601 UTC with millisecond precision."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AngleCommand:
    """
    setAngle command sent from client to device.

    Attributes:
        angle: Target wing angle in degrees, within [0, 90]
        timestamp: ISO-8601 wall-clock time the command was issued
    """
    angle: float
    timestamp: str
    type: str = SET_ANGLE_TYPE

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps({
            "type": self.type,
            "angle": self.angle,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> 'AngleCommand':
        """
        Deserialize from JSON string.

        Raises:
            ValueError: If the payload is not a setAngle command
            OutOfRange: If the angle is not valid
        """
        d = json.loads(data)
        if not isinstance(d, dict) or d.get("type") != SET_ANGLE_TYPE:
            raise ValueError("not a setAngle command")
        return cls(
            angle=validate_angle(d.get("angle")),
            timestamp=str(d.get("timestamp", "")),
        )


@dataclass(frozen=True)
class TelemetryFrame:
    """Inbound status frame reported by the device."""
    angle: float

    @classmethod
    def decode(cls, raw: Union[str, bytes]) -> Optional['TelemetryFrame']:
        """
        Decode a raw inbound payload.

        Any JSON object with a finite numeric ``angle`` field is accepted,
        extra fields are ignored.

        Returns:
            TelemetryFrame, or None if the payload is not telemetry
        """
        try:
            d = json.loads(raw)
        except (TypeError, ValueError, RecursionError):
            # UnicodeDecodeError is a ValueError too
            return None

        if not isinstance(d, dict):
            return None

        angle = d.get("angle")
        if not _is_number(angle):
            return None
        try:
            angle = float(angle)
        except OverflowError:
            return None
        if not math.isfinite(angle):
            return None

        return cls(angle=angle)


def create_angle_command(
    angle: float,
    now: Optional[datetime] = None,
) -> AngleCommand:
    """
    Create a setAngle command stamped with the current wall-clock time.

    Args:
        angle: Target angle in degrees
        now: Override for the timestamp (defaults to current UTC time)

    Returns:
        AngleCommand instance

    Raises:
        OutOfRange: If the angle is not valid
    """
    return AngleCommand(
        angle=validate_angle(angle),
        timestamp=iso_timestamp(now),
    )
