"""Tests for the console front-end."""

import io
import json

import pytest

from wing_control.main import WingConsole
from wing_control.session import ConnectionState


@pytest.fixture
def console(session):
    return WingConsole(session, default_url="ws://localhost:8080", out=io.StringIO())


def output(console):
    return console.out.getvalue()


class TestWingConsole:
    def test_connect_uses_default_url(self, console, transport):
        console.handle_command("connect")
        assert transport.handle.endpoint == "ws://localhost:8080"
        assert "[state] connecting" in output(console)

    def test_connect_explicit_url(self, console, transport):
        console.handle_command("connect ws://wing.local:9000")
        assert transport.handle.endpoint == "ws://wing.local:9000"

    def test_set_clamps_before_sending(self, console, session, transport):
        console.handle_command("connect")
        transport.opened()
        console.handle_command("set 120")
        assert json.loads(transport.sent[0])["angle"] == 90.0
        assert session.commanded_angle == 90.0
        assert "[ok] Wing angle set to 90°" in output(console)

    def test_set_not_connected(self, console, transport):
        console.handle_command("set 30")
        assert transport.sent == []
        assert "[info] Not connected to SORDA-air" in output(console)

    def test_set_requires_number(self, console, transport):
        console.handle_command("set abc")
        console.handle_command("set")
        assert "Not a number: abc" in output(console)
        assert "Missing angle" in output(console)

    def test_preset(self, console, transport):
        console.handle_command("connect")
        transport.opened()
        console.handle_command("preset 15")
        assert json.loads(transport.sent[0])["angle"] == 15
        assert console.input_angle == 15

    def test_unknown_preset(self, console, transport):
        console.handle_command("connect")
        transport.opened()
        console.handle_command("preset 30")
        assert transport.sent == []
        assert "Presets are 0, 15, 45, 90" in output(console)

    def test_reported_angle_printed(self, console, transport):
        console.handle_command("connect")
        transport.opened()
        transport.message('{"angle": 44.9}')
        assert "[wing] reported angle 44.9°" in output(console)

    def test_status(self, console, transport):
        console.handle_command("connect")
        transport.opened()
        console.handle_command("set 45")
        transport.message('{"angle": 44.9}')
        console.handle_command("status")
        text = output(console)
        assert "connected (ws://localhost:8080)" in text
        assert "Current angle:    44.9°" in text
        assert "Commanded angle:  45°" in text

    def test_disconnect(self, console, session, transport):
        console.handle_command("connect")
        transport.opened()
        console.handle_command("disconnect")
        assert session.connection_state == ConnectionState.DISCONNECTED
        console.handle_command("disconnect")
        assert "Not connected" in output(console)

    def test_quit_and_blank(self, console):
        assert console.handle_command("") is True
        assert console.handle_command("help") is True
        assert console.handle_command("quit") is False

    def test_unknown_command(self, console):
        console.handle_command("fly")
        assert "Unknown command: fly" in output(console)
