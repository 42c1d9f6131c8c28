"""
WebSocket transport for device communication.

Handles:
- Endpoint validation before any connection attempt
- Non-blocking connection attempts on the running asyncio loop
- Fire-and-forget text frame sends (no queue, no retry)
- Uniform, ordered lifecycle/message events per connection handle

Exactly one terminal event (error or closed) is delivered per handle;
after it nothing else is delivered for that handle.
"""

import asyncio
import enum
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Set, Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from .errors import InvalidEndpoint, NotOpen

logger = logging.getLogger(__name__)


class HandleState(str, enum.Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class TransportEventType(str, enum.Enum):
    OPENED = "opened"
    ERROR = "error"
    CLOSED = "closed"
    MESSAGE = "message"


@dataclass
class TransportConfig:
    """
    Connection tuning passed through to ``websockets``.

    ``open_timeout=None`` leaves a stalled handshake pending until the
    operating system gives up on it.
    """
    open_timeout: Optional[float] = None
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 10.0
    close_timeout: float = 5.0
    max_message_size: Optional[int] = 2 ** 20


@dataclass
class ConnectionStats:
    """Statistics about a single connection handle."""
    opened_at: Optional[float] = None
    closed_at: Optional[float] = None
    messages_sent: int = 0
    messages_received: int = 0
    send_failures: int = 0


@dataclass(eq=False)
class TransportHandle:
    """
    One connection attempt and, if it succeeds, the connection itself.

    Handles compare by identity.
    """
    id: int
    endpoint: str
    state: HandleState = HandleState.PENDING
    stats: ConnectionStats = field(default_factory=ConnectionStats)

    _ws: Optional[ClientConnection] = field(default=None, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, repr=False)
    _pending_sends: Set[asyncio.Task] = field(default_factory=set, repr=False)
    _close_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def terminal(self) -> bool:
        return self.state == HandleState.CLOSED


@dataclass(frozen=True)
class TransportEvent:
    """Event delivered to the handle owner."""
    type: TransportEventType
    handle: TransportHandle
    payload: Optional[Union[str, bytes]] = None
    reason: Optional[str] = None


EventListener = Callable[[TransportEvent], None]


def validate_endpoint(endpoint: str) -> str:
    """
    Validate a WebSocket endpoint address.

    Returns:
        The stripped address

    Raises:
        InvalidEndpoint: If the address is empty, has no host or is not ws/wss
    """
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise InvalidEndpoint("Endpoint address is empty")

    endpoint = endpoint.strip()
    try:
        parse_uri(endpoint)
    except InvalidURI as e:
        raise InvalidEndpoint(f"Malformed endpoint {endpoint!r}: {e}") from e
    except ValueError as e:
        # bad port numbers surface from urllib as ValueError
        raise InvalidEndpoint(f"Malformed endpoint {endpoint!r}: {e}") from e
    return endpoint


class WebSocketTransport:
    """
    Async WebSocket transport owning one connection per handle.

    Must be used from inside a running asyncio event loop. Events are
    delivered synchronously to the listener given to ``open()``, in order,
    from the loop thread.
    """

    def __init__(self, config: Optional[TransportConfig] = None):
        """
        Initialize transport.

        Args:
            config: Connection tuning, defaults to TransportConfig()
        """
        self.config = config or TransportConfig()
        self._ids = itertools.count(1)

    def open(self, endpoint: str, listener: EventListener) -> TransportHandle:
        """
        Begin connecting to ``endpoint``. Never blocks.

        Args:
            endpoint: ws:// or wss:// address
            listener: Receives every TransportEvent for the new handle

        Returns:
            Handle for the pending connection

        Raises:
            InvalidEndpoint: Before any connection attempt is made
        """
        endpoint = validate_endpoint(endpoint)
        loop = asyncio.get_running_loop()

        handle = TransportHandle(id=next(self._ids), endpoint=endpoint)
        handle._task = loop.create_task(self._run(handle, listener))
        handle._task.add_done_callback(
            lambda task: self._on_task_done(task, handle, listener)
        )

        logger.info(f"Connecting to {endpoint} (handle {handle.id})...")
        return handle

    def send(self, handle: TransportHandle, payload: str) -> None:
        """
        Write one text frame. Fire-and-forget.

        Raises:
            NotOpen: If the handle is not in the open state
        """
        if handle.state != HandleState.OPEN or handle._ws is None:
            raise NotOpen(f"Handle {handle.id} is {handle.state.value}")

        task = asyncio.ensure_future(handle._ws.send(payload))
        handle._pending_sends.add(task)
        task.add_done_callback(lambda t: self._on_send_done(t, handle))

    def close(self, handle: TransportHandle) -> None:
        """Tear down the handle. Idempotent."""
        if handle.state in (HandleState.CLOSING, HandleState.CLOSED):
            return

        logger.info(f"Closing connection to {handle.endpoint} (handle {handle.id})")
        was_open = handle.state == HandleState.OPEN
        handle.state = HandleState.CLOSING

        if was_open and handle._ws is not None:
            # Receive loop ends once the close handshake completes
            handle._close_task = asyncio.ensure_future(handle._ws.close())
        elif handle._task is not None:
            handle._task.cancel()

    async def _run(self, handle: TransportHandle, listener: EventListener) -> None:
        """Connect, then pump inbound frames until the connection ends."""
        cfg = self.config
        try:
            connecting = asyncio.ensure_future(connect(
                handle.endpoint,
                open_timeout=cfg.open_timeout,
                ping_interval=cfg.ping_interval,
                ping_timeout=cfg.ping_timeout,
                close_timeout=cfg.close_timeout,
                max_size=cfg.max_message_size,
            ))
            try:
                ws = await connecting
            except asyncio.CancelledError:
                # close() may land after the handshake finished but before
                # this task resumed; the connection still needs closing
                if (connecting.done() and not connecting.cancelled()
                        and connecting.exception() is None):
                    await connecting.result().close()
                raise
            except ConnectionRefusedError as e:
                logger.error(f"Connection refused by {handle.endpoint} - is the device running?")
                self._terminate(handle, listener, TransportEventType.ERROR, str(e))
                return
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.error(f"Connection to {handle.endpoint} failed: {e}")
                self._terminate(handle, listener, TransportEventType.ERROR, str(e) or type(e).__name__)
                return

            handle._ws = ws
            handle.state = HandleState.OPEN
            handle.stats.opened_at = time.time()
            logger.info(f"WebSocket connected to {handle.endpoint}")
            self._deliver(listener, TransportEvent(TransportEventType.OPENED, handle))

            try:
                async for message in ws:
                    handle.stats.messages_received += 1
                    logger.debug(f"Received from device: {message!r}")
                    self._deliver(
                        listener,
                        TransportEvent(TransportEventType.MESSAGE, handle, payload=message),
                    )
            except ConnectionClosed as e:
                logger.warning(f"Connection to {handle.endpoint} lost: {e}")
        finally:
            self._terminate(handle, listener, TransportEventType.CLOSED)

    def _terminate(
        self,
        handle: TransportHandle,
        listener: EventListener,
        event_type: TransportEventType,
        reason: Optional[str] = None,
    ) -> None:
        """Deliver the single terminal event for a handle."""
        if handle.terminal:
            return

        handle.state = HandleState.CLOSED
        handle.stats.closed_at = time.time()
        self._deliver(listener, TransportEvent(event_type, handle, reason=reason))

    def _on_task_done(
        self,
        task: asyncio.Task,
        handle: TransportHandle,
        listener: EventListener,
    ) -> None:
        # A task cancelled before its first step never runs its finally block
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Transport task for handle {handle.id} crashed: {task.exception()}")
        self._terminate(handle, listener, TransportEventType.CLOSED)

    def _on_send_done(self, task: asyncio.Task, handle: TransportHandle) -> None:
        handle._pending_sends.discard(task)
        if task.cancelled():
            handle.stats.send_failures += 1
            return

        exc = task.exception()
        if exc is not None:
            handle.stats.send_failures += 1
            logger.warning(f"Send to {handle.endpoint} failed: {exc}")
        else:
            handle.stats.messages_sent += 1

    @staticmethod
    def _deliver(listener: EventListener, event: TransportEvent) -> None:
        try:
            listener(event)
        except Exception as e:
            logger.error(f"Error in transport event listener ({event.type.value}): {e}")

    @staticmethod
    def get_stats(handle: TransportHandle) -> dict:
        """Get connection statistics for a handle."""
        return {
            "endpoint": handle.endpoint,
            "state": handle.state.value,
            "opened_at": handle.stats.opened_at,
            "closed_at": handle.stats.closed_at,
            "messages_sent": handle.stats.messages_sent,
            "messages_received": handle.stats.messages_received,
            "send_failures": handle.stats.send_failures,
            "pending_sends": len(handle._pending_sends),
        }
