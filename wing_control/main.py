#!/usr/bin/env python3
"""
Wing Control Console - Main Entry Point

Interactive text console for the SORDA-air morphing wing. Plays the role of
the UI: it turns typed commands into session intents and prints every
state change and feedback message.

Usage:
    python -m wing_control.main --url ws://localhost:8080 --connect
    python -m wing_control.main --device-name SORDA-air --debug

Commands:
    connect [url]     Connect (defaults to --url)
    disconnect        Close the connection
    set <angle>       Set wing angle, clamped to 0-90
    preset <angle>    Quick preset: 0, 15, 45 or 90
    status            Show connection and angle state
    help              Show commands
    quit              Exit
"""

import argparse
import asyncio
import logging
import shlex
import sys
from typing import List, Optional

from .message import PRESET_ANGLES, clamp_angle
from .session import (
    DEFAULT_DEVICE_NAME,
    ConnectionState,
    SessionController,
    SessionField,
    feedback_is_success,
    format_angle,
)
from .transport import TransportConfig, WebSocketTransport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  connect [url]     Connect (defaults to the configured URL)
  disconnect        Close the connection
  set <angle>       Set wing angle (0-90, clamped)
  preset <angle>    Quick preset: {presets}
  status            Show connection and angle state
  help              Show this help
  quit              Exit""".format(presets=", ".join(str(a) for a in PRESET_ANGLES))


class WingConsole:
    """
    Console front-end for a SessionController.

    Owns the input buffer (the "slider" value) and clamps typed angles
    before handing them to the core.
    """

    def __init__(
        self,
        session: SessionController,
        default_url: str,
        out=None,
    ):
        """
        Initialize console.

        Args:
            session: Session controller to drive
            default_url: URL used by a bare ``connect``
            out: Output stream (defaults to stdout)
        """
        self.session = session
        self.default_url = default_url
        self.input_angle = 0.0
        self.out = out or sys.stdout
        self._running = False

        session.subscribe(SessionField.CONNECTION_STATE, self._on_state)
        session.subscribe(SessionField.REPORTED_ANGLE, self._on_reported)
        session.subscribe(SessionField.FEEDBACK_MESSAGE, self._on_feedback)

    def _print(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def _on_state(self, state: ConnectionState) -> None:
        self._print(f"[state] {state.value}")

    def _on_reported(self, angle: float) -> None:
        self._print(f"[wing] reported angle {format_angle(angle)}")

    def _on_feedback(self, message: str) -> None:
        marker = "ok" if feedback_is_success(message) else "info"
        self._print(f"[{marker}] {message}")

    def status_text(self) -> str:
        s = self.session
        endpoint = s.active_endpoint if s.connected else "Not connected"
        lines = [
            f"Device:           {s.device_name}",
            f"Connection:       {s.connection_state.value} ({endpoint})",
            f"Current angle:    {format_angle(s.angles.current_angle)}",
            f"Commanded angle:  {format_angle(s.commanded_angle)}",
        ]
        if s.reported_angle is not None:
            lines.append(f"Reported angle:   {format_angle(s.reported_angle)}")
        return "\n".join(lines)

    def handle_command(self, line: str) -> bool:
        """
        Execute one console command.

        Returns:
            False if the console should exit
        """
        try:
            parts: List[str] = shlex.split(line)
        except ValueError as e:
            self._print(f"Parse error: {e}")
            return True

        if not parts:
            return True

        cmd, args = parts[0].lower(), parts[1:]

        if cmd in ("quit", "exit"):
            return False
        elif cmd == "help":
            self._print(HELP_TEXT)
        elif cmd == "status":
            self._print(self.status_text())
        elif cmd == "connect":
            self.session.connect(args[0] if args else self.default_url)
        elif cmd == "disconnect":
            if not self.session.disconnect():
                self._print("Not connected")
        elif cmd == "set":
            angle = self._parse_angle(args)
            if angle is not None:
                self.input_angle = clamp_angle(angle)
                self.session.set_angle(self.input_angle)
        elif cmd == "preset":
            angle = self._parse_angle(args)
            if angle is None:
                pass
            elif angle not in PRESET_ANGLES:
                self._print(f"Presets are {', '.join(str(a) for a in PRESET_ANGLES)}")
            else:
                self.input_angle = angle
                self.session.apply_preset(angle)
        else:
            self._print(f"Unknown command: {cmd} (try 'help')")

        return True

    def _parse_angle(self, args: List[str]) -> Optional[float]:
        if not args:
            self._print("Missing angle")
            return None
        try:
            return float(args[0])
        except ValueError:
            self._print(f"Not a number: {args[0]}")
            return None

    async def run(self) -> None:
        """Read commands from stdin until quit or EOF."""
        loop = asyncio.get_running_loop()
        self._running = True
        self._print(HELP_TEXT)

        while self._running:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not self.handle_command(line):
                break

        self._running = False
        self.session.disconnect()
        # Let the close handshake finish
        await asyncio.sleep(0.1)


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    transport = WebSocketTransport(TransportConfig(open_timeout=args.open_timeout))
    session = SessionController(transport, device_name=args.device_name)
    console = WingConsole(session, default_url=args.url)

    if args.connect:
        session.connect(args.url)

    await console.run()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="SORDA-air Wing Control Console",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--url",
        type=str,
        default="ws://localhost:8080",
        help="Device WebSocket URL",
    )
    parser.add_argument(
        "--connect",
        action="store_true",
        help="Connect on startup",
    )
    parser.add_argument(
        "--device-name",
        type=str,
        default=DEFAULT_DEVICE_NAME,
        help="Device name shown in messages",
    )
    parser.add_argument(
        "--open-timeout",
        type=float,
        default=None,
        help="Handshake timeout in seconds (default: none)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
