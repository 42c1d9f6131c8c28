"""
Wing Device - Simulated SORDA-air wing actuator.

Serves the wing control wire protocol over WebSocket so the client can be
exercised without hardware: accepts setAngle commands, slews a simulated
wing toward the target and streams angle telemetry.
"""

__version__ = "1.0.0"
