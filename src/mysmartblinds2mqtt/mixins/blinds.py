# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

from typing import TYPE_CHECKING

from mysmartblinds2mqtt.models import Blind

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt


class DiscoveryError(RuntimeError):
    """Raised when the account listing comes back empty or fails."""

    pass


class BlindsMixin:
    async def refresh_device_list(self: Blinds2Mqtt) -> None:
        self.logger.info("refreshing blinds list from MySmartBlinds")

        blinds = await self.find_blinds()
        if not blinds:
            self.logger.error("did not find any blinds")
            raise DiscoveryError("no devices found")

        blinds_by_id: dict[str, Blind] = {}
        blinds_by_room: dict[str, dict[str, Blind]] = {}

        for blind in blinds:
            if blind.id in blinds_by_id:
                first = blinds_by_id[blind.id]
                self.logger.warning(f"blind '{blind.name}' in '{blind.room}' reuses id {blind.id} of '{first.name}' in '{first.room}', ignoring it")
                continue

            room_name = self.normalize_name(blind.room)
            blind_name = self.normalize_name(blind.name)
            room = blinds_by_room.setdefault(room_name, {})

            if blind_name in room:
                self.logger.warning(
                    f"blind '{blind.name}' ({blind.id}) in '{blind.room}' has the same topic as {room[blind_name].id}, ignoring it"
                )
                continue

            room[blind_name] = blind
            blinds_by_id[blind.id] = blind

        # swap both indexes in together so readers never see half a refresh
        self.blinds_by_id, self.blinds_by_room = blinds_by_id, blinds_by_room

        topics = [self.get_blind_topic(blind) for blind in blinds_by_id.values()]
        self.logger.info(f"registering topics: {', '.join(topics)}")

    def lookup_blind(self: Blinds2Mqtt, room: str, name: str) -> Blind | None:
        return self.blinds_by_room.get(self.normalize_name(room), {}).get(self.normalize_name(name))

    def lookup_blind_by_id(self: Blinds2Mqtt, blind_id: str) -> Blind | None:
        return self.blinds_by_id.get(blind_id)

    def get_blind_topic(self: Blinds2Mqtt, blind: Blind, *parts: str) -> str:
        return "/".join([self.service, self.normalize_name(blind.room), self.normalize_name(blind.name), *parts])
