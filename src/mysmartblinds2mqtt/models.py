# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
"""Data models for blinds known to the bridge."""

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Blind:
    """A blind as reported by the MySmartBlinds account listing."""

    id: str
    name: str
    room: str
    battery_level: int = 0

    @classmethod
    def from_api(cls, blind: Mapping[str, Any], rooms_by_id: Mapping[str, str]) -> "Blind":
        return cls(
            id=str(blind["encodedMacAddress"]),
            name=str(blind.get("name") or ""),
            room=rooms_by_id.get(blind.get("roomId", ""), "unknown"),
            battery_level=int(blind.get("batteryPercent") or 0),
        )


@dataclass(frozen=True)
class BlindState:
    """Raw state of a single blind, straight from a state or update response."""

    id: str
    battery_level: int
    signal_strength: int
    position: int

    @classmethod
    def from_api(cls, blind: Mapping[str, Any]) -> "BlindState":
        return cls(
            id=str(blind["encodedMacAddress"]),
            battery_level=int(blind.get("batteryLevel") or 0),
            signal_strength=int(blind.get("rssi") or 0),
            position=int(blind.get("position") or 0),
        )


@dataclass(frozen=True)
class QueuedBlindUpdate:
    blinds: tuple[str, ...]
    position: int
