import base64
import struct

import pytest

from concierge.wearables.heart_rate import (
    RR_BUFFER,
    HeartRateSession,
    parse_battery_level,
    parse_heart_rate_measurement,
    rmssd,
)


def test_parse_uint8_without_contact_support():
    m = parse_heart_rate_measurement(bytes([0x00, 72]))
    assert m.heart_rate == 72
    assert m.contact_detected is True
    assert m.energy_expended is None
    assert m.rr_intervals == []


def test_parse_uint16_energy_and_rr():
    flags = 0x01 | 0x02 | 0x04 | 0x08 | 0x10
    data = struct.pack("<BHHHH", flags, 301, 125, 1024, 800)
    m = parse_heart_rate_measurement(data)
    assert m.heart_rate == 301
    assert m.contact_detected is True
    assert m.energy_expended == 125
    assert m.rr_intervals == [1000, 781]


def test_parse_contact_supported_but_lost():
    assert parse_heart_rate_measurement(bytes([0x02, 60])).contact_detected is False


def test_parse_rejects_truncated_payloads():
    with pytest.raises(ValueError):
        parse_heart_rate_measurement(b"\x00")
    with pytest.raises(ValueError):
        parse_heart_rate_measurement(bytes([0x01, 60]))
    with pytest.raises(ValueError):
        parse_heart_rate_measurement(bytes([0x08, 60, 1]))


def test_parse_ignores_trailing_odd_byte():
    m = parse_heart_rate_measurement(bytes([0x10, 60, 0x00, 0x04, 0x07]))
    assert m.rr_intervals == [1000]


def test_rmssd():
    assert rmssd([]) is None
    assert rmssd([800]) is None
    assert rmssd([800, 810, 790]) == 16


def test_battery_level():
    assert parse_battery_level(b"\x5a") == 90
    with pytest.raises(ValueError):
        parse_battery_level(b"")


def test_session_keeps_last_intervals():
    session = HeartRateSession()
    assert session.reading() is None
    for i in range(40):
        reading = session.add(struct.pack("<BBH", 0x10, 70, 1024 + i))
    assert len(session.rr_buffer) == RR_BUFFER
    assert len(reading["rr_intervals"]) == 10
    assert reading["heart_rate"] == 70
    assert reading["heart_rate_variability"] == 1
    session.reset()
    assert session.reading() is None
    assert session.hrv is None


def test_heart_rate_routes(app, client, member, login):
    assert client.post("/wearables/heart-rate", json={"hex": "0048"}).status_code == 401
    login(member)

    r = client.post("/wearables/heart-rate", json={"hex": "0048"})
    assert r.status_code == 200
    assert r.get_json()["reading"]["heart_rate"] == 72

    payload = base64.b64encode(struct.pack("<BBHH", 0x10, 65, 1024, 1100)).decode()
    r = client.post("/wearables/heart-rate", json={"base64": payload})
    assert r.get_json()["reading"]["rr_intervals"] == [1000, 1074]

    assert client.get("/wearables/heart-rate").get_json()["reading"]["heart_rate"] == 65

    assert client.post("/wearables/heart-rate", json={"hex": "zz"}).status_code == 400
    assert client.post("/wearables/heart-rate", json={"hex": "01"}).status_code == 400
    assert client.post("/wearables/heart-rate", json={}).status_code == 400

    client.delete("/wearables/heart-rate")
    assert client.get("/wearables/heart-rate").get_json()["reading"] is None


def test_sessions_are_released(app, client, member, make_member, login):
    from datetime import datetime, timedelta

    from concierge.wearables import SESSION_IDLE, get_session, prune_sessions

    sessions = app.extensions.setdefault("heart_rate_sessions", {})
    login(member)
    client.get("/wearables/heart-rate")
    assert member.id not in sessions

    client.post("/wearables/heart-rate", json={"hex": "0048"})
    assert member.id in sessions
    client.delete("/wearables/heart-rate")
    assert member.id not in sessions

    idle = make_member(email="idle@example.com")
    get_session(idle.id).add(bytes.fromhex("0050"))
    sessions[idle.id].updated_at = datetime.utcnow() - SESSION_IDLE - timedelta(seconds=1)
    client.post("/wearables/heart-rate", json={"hex": "0048"})
    assert idle.id not in sessions
    assert prune_sessions(datetime.utcnow() + SESSION_IDLE + timedelta(seconds=1)) == 1
    assert sessions == {}
