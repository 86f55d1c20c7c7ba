# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
import json

from typing import TYPE_CHECKING, Any

from paho.mqtt.client import MQTTMessageInfo

from mysmartblinds2mqtt.models import BlindState

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt

# positions within this distance of either end are reported as fully closed
CLOSED_LOW = 4
CLOSED_HIGH = 176

# the hub reports 0 when it has no battery reading; 0 would look like a dead battery
DEFAULT_BATTERY_LEVEL = 20


class PublishMixin:

    # Service -------------------------------------------------------------------------------------

    async def publish_service_availability(self: Blinds2Mqtt, status: str = "online") -> MQTTMessageInfo | None:
        return await asyncio.to_thread(self.mqtt_safe_publish, f"{self.service}/availability", status, qos=1, retain=True)

    # Blinds --------------------------------------------------------------------------------------

    def normalize_position(self: Blinds2Mqtt, position: int) -> tuple[int, str]:
        if position < CLOSED_LOW:
            position = 0
        elif position > CLOSED_HIGH:
            position = 180

        return position, "closed" if position in (0, 180) else "open"

    def normalize_battery(self: Blinds2Mqtt, battery_level: int) -> int:
        return DEFAULT_BATTERY_LEVEL if battery_level == 0 else battery_level

    def build_state_payload(self: Blinds2Mqtt, state: BlindState) -> dict[str, Any]:
        position, label = self.normalize_position(state.position)
        return {
            "id": state.id,
            "batteryLevel": self.normalize_battery(state.battery_level),
            "signalStrength": state.signal_strength,
            "position": position,
            "state": label,
        }

    async def publish_blinds_state(self: Blinds2Mqtt, states: list[BlindState]) -> None:
        for state in states:
            blind = self.lookup_blind_by_id(state.id)
            if not blind:
                self.logger.error(f"ignoring state received for an unknown blind: {state.id}")
                continue

            payload = self.build_state_payload(state)

            await asyncio.to_thread(self.mqtt_safe_publish, self.get_blind_topic(blind, "state"), json.dumps(payload), retain=True)
            await asyncio.to_thread(self.mqtt_safe_publish, self.get_blind_topic(blind, "position"), str(payload["position"]), retain=True)

            self.logger.debug(f"published state for {blind.room} / {blind.name}: {payload}")
