#!/usr/bin/env python3
"""
Wing Simulator - Main Entry Point

Runs a simulated SORDA-air wing behind a WebSocket endpoint so the control
client can be used without hardware.

Environment Variables:
    DEVICE_HOST: Bind address (default: 0.0.0.0)
    DEVICE_PORT: Port (default: 8080)
    SLEW_RATE: Wing speed in degrees per second (default: 30)
    TELEMETRY_HZ: Telemetry broadcast rate (default: 10)

Usage:
    python -m wing_device.main
    DEVICE_PORT=9000 python -m wing_device.main --slew-rate 60
"""

import argparse
import asyncio
import logging
import os
import sys

import uvicorn

from .actuator import SimulatedWing
from .ws_server import DeviceServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_server(server: DeviceServer, host: str, port: int) -> None:
    """Run the device server with uvicorn."""
    config = uvicorn.Config(
        server.app,
        host=host,
        port=port,
        log_level="info",
        access_log=False,
    )
    await uvicorn.Server(config).serve()


def parse_args(argv=None) -> argparse.Namespace:
    """Parse CLI flags, taking defaults from the environment."""
    parser = argparse.ArgumentParser(
        description="SORDA-air Wing Simulator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("DEVICE_HOST", "0.0.0.0"),
        help="Bind address",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("DEVICE_PORT", "8080")),
        help="Port",
    )
    parser.add_argument(
        "--slew-rate",
        type=float,
        default=float(os.environ.get("SLEW_RATE", "30")),
        help="Wing speed (degrees/s)",
    )
    parser.add_argument(
        "--telemetry-hz",
        type=float,
        default=float(os.environ.get("TELEMETRY_HZ", "10")),
        help="Telemetry broadcast rate (Hz)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def main() -> None:
    """Main entry point."""
    args = parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        server = DeviceServer(
            wing=SimulatedWing(slew_rate=args.slew_rate),
            telemetry_hz=args.telemetry_hz,
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(f"Wing simulator listening on ws://{args.host}:{args.port}/")

    try:
        asyncio.run(run_server(server, args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
