from datetime import datetime, timezone

import pytest

from wing_control.errors import NotOpen
from wing_control.session import SessionController, SessionField
from wing_control.transport import (
    HandleState,
    TransportEvent,
    TransportEventType,
    TransportHandle,
    validate_endpoint,
)

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeTransport:
    """
    In-memory transport adapter.

    Records every call and lets tests inject events for the latest handle.
    close() delivers the terminal closed event synchronously unless
    ``defer_close`` is set, in which case finish_close() delivers it.
    """

    def __init__(self, defer_close=False):
        self.defer_close = defer_close
        self.handles = []
        self.listeners = {}
        self.sent = []
        self.closed = []
        self._next_id = 1

    @property
    def handle(self) -> TransportHandle:
        return self.handles[-1]

    def open(self, endpoint, listener):
        endpoint = validate_endpoint(endpoint)
        handle = TransportHandle(id=self._next_id, endpoint=endpoint)
        self._next_id += 1
        self.handles.append(handle)
        self.listeners[handle.id] = listener
        return handle

    def send(self, handle, payload):
        if handle.state != HandleState.OPEN:
            raise NotOpen(f"Handle {handle.id} is {handle.state.value}")
        self.sent.append(payload)

    def close(self, handle):
        self.closed.append(handle)
        if handle.state == HandleState.CLOSED:
            return
        if self.defer_close:
            handle.state = HandleState.CLOSING
            return
        self.finish_close(handle)

    def finish_close(self, handle):
        handle.state = HandleState.CLOSED
        self.listeners[handle.id](TransportEvent(TransportEventType.CLOSED, handle))

    def emit(self, event_type, payload=None, reason=None, handle=None):
        handle = handle or self.handle
        if event_type == TransportEventType.OPENED:
            handle.state = HandleState.OPEN
        elif event_type in (TransportEventType.CLOSED, TransportEventType.ERROR):
            handle.state = HandleState.CLOSED
        self.listeners[handle.id](
            TransportEvent(event_type, handle, payload=payload, reason=reason)
        )

    def opened(self):
        self.emit(TransportEventType.OPENED)

    def message(self, payload):
        self.emit(TransportEventType.MESSAGE, payload=payload)

    def error(self, reason="boom"):
        self.emit(TransportEventType.ERROR, reason=reason)

    def peer_closed(self):
        self.emit(TransportEventType.CLOSED)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def deferred_transport():
    """Transport whose close handshake completes only on finish_close()."""
    return FakeTransport(defer_close=True)


@pytest.fixture
def session(transport):
    return SessionController(transport, clock=lambda: FIXED_NOW)


@pytest.fixture
def connected_session(session, transport):
    session.connect("ws://host:1")
    transport.opened()
    return session


@pytest.fixture
def recorder(session):
    """Collects (field, value) for every session notification."""
    events = []
    for f in SessionField:
        session.subscribe(f, lambda value, f=f: events.append((f, value)))
    return events
