# concierge/wearables/heart_rate.py
"""
Bluetooth heart rate monitors (GATT Heart Rate Measurement, 0x2A37).

Layout, little-endian:

    byte 0      flags
                  0x01  value is uint16 (else uint8)
                  0x02  contact status supported
                  0x04  contact detected
                  0x08  energy expended (uint16, kJ) present
                  0x10  RR intervals present (uint16 each, 1/1024 s)
    1..         heart rate, [energy expended], [RR intervals...]
"""
from __future__ import annotations

import math
import struct
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

FLAG_UINT16 = 0x01
FLAG_CONTACT_SUPPORTED = 0x02
FLAG_CONTACT_DETECTED = 0x04
FLAG_ENERGY = 0x08
FLAG_RR = 0x10

RR_BUFFER = 30
RR_REPORTED = 10


def _round(x: float) -> int:
    """Round half up."""
    return int(math.floor(x + 0.5))


@dataclass
class HeartRateMeasurement:
    heart_rate: int
    contact_detected: bool
    energy_expended: Optional[int] = None
    rr_intervals: List[int] = field(default_factory=list)  # milliseconds


def parse_heart_rate_measurement(data: bytes) -> HeartRateMeasurement:
    """
    Decode one measurement notification.

    Raises:
        ValueError: payload shorter than its flags require
    """
    data = bytes(data)
    if len(data) < 2:
        raise ValueError("heart rate measurement too short")
    flags = data[0]
    offset = 1

    try:
        if flags & FLAG_UINT16:
            (heart_rate,) = struct.unpack_from("<H", data, offset)
            offset += 2
        else:
            heart_rate = data[offset]
            offset += 1

        energy = None
        if flags & FLAG_ENERGY:
            (energy,) = struct.unpack_from("<H", data, offset)
            offset += 2
    except struct.error:
        raise ValueError("heart rate measurement too short")

    contact = bool(flags & FLAG_CONTACT_DETECTED) if flags & FLAG_CONTACT_SUPPORTED else True

    rr = []
    if flags & FLAG_RR:
        while offset + 2 <= len(data):
            (raw,) = struct.unpack_from("<H", data, offset)
            rr.append(_round(raw / 1024 * 1000))
            offset += 2

    return HeartRateMeasurement(heart_rate=heart_rate, contact_detected=contact, energy_expended=energy,
                                rr_intervals=rr)


def parse_battery_level(data: bytes) -> int:
    """Battery Level characteristic (0x2A19): one uint8 percentage."""
    if not data:
        raise ValueError("empty battery level")
    return bytes(data)[0]


def rmssd(rr_intervals: Iterable[int]) -> Optional[int]:
    """Root mean square of successive RR differences, in ms; None under two intervals."""
    rr = list(rr_intervals)
    if len(rr) < 2:
        return None
    total = sum((b - a) ** 2 for a, b in zip(rr, rr[1:]))
    return _round(math.sqrt(total / (len(rr) - 1)))


class HeartRateSession:
    """Running state for one connected monitor."""

    def __init__(self):
        self.rr_buffer = deque(maxlen=RR_BUFFER)
        self.latest: Optional[HeartRateMeasurement] = None
        self.updated_at: Optional[datetime] = None

    def add(self, data: bytes) -> dict:
        m = parse_heart_rate_measurement(data)
        self.rr_buffer.extend(m.rr_intervals)
        self.latest = m
        self.updated_at = datetime.utcnow()
        return self.reading()

    @property
    def hrv(self) -> Optional[int]:
        return rmssd(self.rr_buffer)

    def reading(self) -> Optional[dict]:
        if self.latest is None:
            return None
        return {
            "heart_rate": self.latest.heart_rate,
            "heart_rate_variability": self.hrv,
            "rr_intervals": list(self.rr_buffer)[-RR_REPORTED:],
            "energy_expended": self.latest.energy_expended,
            "contact_detected": self.latest.contact_detected,
            "timestamp": self.updated_at.isoformat() if self.updated_at else None,
        }

    def reset(self) -> None:
        self.rr_buffer.clear()
        self.latest = None
        self.updated_at = None
