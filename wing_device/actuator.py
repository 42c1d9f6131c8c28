"""Simulated wing actuator with a finite slew rate."""

import logging

logger = logging.getLogger(__name__)

MIN_ANGLE = 0.0
MAX_ANGLE = 90.0


class SimulatedWing:
    """
    Wing that moves toward its target angle at a fixed rate.

    Out-of-range targets are clamped, the way the servo end stops would.
    """

    def __init__(self, slew_rate: float = 30.0, initial_angle: float = 0.0):
        """
        Args:
            slew_rate: Maximum angular speed in degrees per second
            initial_angle: Starting position in degrees
        """
        if slew_rate <= 0:
            raise ValueError("slew_rate must be positive")
        self.slew_rate = slew_rate
        self.position = self._clamp(initial_angle)
        self.target = self.position
        self.commands_received = 0

    @staticmethod
    def _clamp(angle: float) -> float:
        return max(MIN_ANGLE, min(MAX_ANGLE, float(angle)))

    @property
    def moving(self) -> bool:
        return self.position != self.target

    def command(self, angle: float) -> float:
        """Set a new target. Returns the clamped target."""
        self.target = self._clamp(angle)
        self.commands_received += 1
        logger.info(f"Wing target -> {self.target:.1f}° (at {self.position:.1f}°)")
        return self.target

    def step(self, dt: float) -> float:
        """Advance the simulation by ``dt`` seconds. Returns the new position."""
        if dt <= 0 or not self.moving:
            return self.position

        max_delta = self.slew_rate * dt
        delta = self.target - self.position
        if abs(delta) <= max_delta:
            self.position = self.target
        else:
            self.position += max_delta if delta > 0 else -max_delta
        return self.position

    def snapshot(self) -> dict:
        """Telemetry payload for the current state."""
        return {
            "angle": round(self.position, 2),
            "target": self.target,
        }
