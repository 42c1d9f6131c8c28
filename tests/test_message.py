"""Tests for the wire message schema."""

import json
import math
from datetime import datetime, timedelta, timezone

import pytest

from wing_control.errors import OutOfRange
from wing_control.message import (
    AngleCommand,
    TelemetryFrame,
    clamp_angle,
    create_angle_command,
    iso_timestamp,
    validate_angle,
)


class TestValidateAngle:
    @pytest.mark.parametrize("angle", [0, 0.0, 15, 37.5, 45, 89.999, 90, 90.0])
    def test_accepts_range_inclusive(self, angle):
        assert validate_angle(angle) == float(angle)

    @pytest.mark.parametrize("angle", [
        -0.001, -10, 90.001, 180, 10 ** 400, -(10 ** 400),
        math.inf, -math.inf, math.nan,
    ])
    def test_rejects_out_of_range(self, angle):
        with pytest.raises(OutOfRange):
            validate_angle(angle)

    @pytest.mark.parametrize("angle", ["45", None, True, [45]])
    def test_rejects_non_numbers(self, angle):
        with pytest.raises(OutOfRange):
            validate_angle(angle)

    def test_does_not_clamp(self):
        with pytest.raises(OutOfRange):
            validate_angle(91)


class TestClampAngle:
    def test_within_range_unchanged(self):
        assert clamp_angle(33.3) == 33.3

    def test_clamps_both_ends(self):
        assert clamp_angle(-5) == 0.0
        assert clamp_angle(120) == 90.0

    def test_non_finite(self):
        assert clamp_angle(math.nan) == 0.0
        assert clamp_angle(math.inf) == 90.0
        assert clamp_angle(-math.inf) == 0.0


class TestIsoTimestamp:
    def test_utc_millisecond_precision(self):
        now = datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
        assert iso_timestamp(now) == "2024-05-01T12:30:15.123Z"

    def test_converts_other_timezones(self):
        now = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert iso_timestamp(now) == "2024-05-01T12:00:00.000Z"

    def test_naive_treated_as_utc(self):
        assert iso_timestamp(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"

    def test_defaults_to_now(self):
        ts = iso_timestamp()
        assert ts.endswith("Z")
        parsed = datetime.fromisoformat(ts[:-1]).replace(tzinfo=timezone.utc)
        assert abs(datetime.now(timezone.utc) - parsed) < timedelta(seconds=5)


class TestAngleCommand:
    def test_wire_format(self):
        cmd = create_angle_command(45, datetime(2024, 5, 1, tzinfo=timezone.utc))
        assert json.loads(cmd.to_json()) == {
            "type": "setAngle",
            "angle": 45.0,
            "timestamp": "2024-05-01T00:00:00.000Z",
        }

    def test_create_rejects_out_of_range(self):
        with pytest.raises(OutOfRange):
            create_angle_command(95)

    def test_from_json(self):
        cmd = AngleCommand.from_json(
            '{"type": "setAngle", "angle": 15, "timestamp": "2024-05-01T00:00:00.000Z"}'
        )
        assert cmd.angle == 15.0
        assert cmd.timestamp == "2024-05-01T00:00:00.000Z"

    def test_from_json_without_timestamp(self):
        # older UI presets sent no timestamp
        assert AngleCommand.from_json('{"type": "setAngle", "angle": 90}').timestamp == ""

    @pytest.mark.parametrize("data", [
        "not json",
        "[1, 2]",
        '{"angle": 45}',
        '{"type": "status", "angle": 45}',
    ])
    def test_from_json_rejects_other_messages(self, data):
        with pytest.raises(ValueError):
            AngleCommand.from_json(data)

    def test_from_json_rejects_bad_angle(self):
        with pytest.raises(OutOfRange):
            AngleCommand.from_json('{"type": "setAngle", "angle": 200}')


class TestTelemetryFrame:
    def test_decodes_angle(self):
        assert TelemetryFrame.decode('{"angle": 37.5}') == TelemetryFrame(angle=37.5)

    def test_superset_accepted(self):
        frame = TelemetryFrame.decode('{"angle": 12, "target": 45, "battery": 0.8}')
        assert frame.angle == 12.0

    def test_bytes_payload(self):
        assert TelemetryFrame.decode(b'{"angle": 3}').angle == 3.0

    def test_reported_angle_may_exceed_command_range(self):
        assert TelemetryFrame.decode('{"angle": 91.2}').angle == 91.2

    @pytest.mark.parametrize("raw", [
        '{"foo": 1}',
        '{"angle": "45"}',
        '{"angle": null}',
        '{"angle": true}',
        '{"angle": NaN}',
        '[{"angle": 1}]',
        "45",
        "hello",
        "",
        b"\xff\xfe",
        '{"angle": 1' + "0" * 400 + "}",
        "[" * 100000 + "]" * 100000,
    ])
    def test_ignored_payloads(self, raw):
        assert TelemetryFrame.decode(raw) is None
