# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
import signal

from typing import TYPE_CHECKING

from mysmartblinds2mqtt.mixins.blinds import DiscoveryError

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt


class LoopsMixin:
    async def device_list_loop(self: Blinds2Mqtt) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.rescan_interval)
            except asyncio.CancelledError:
                self.logger.debug("device_list_loop cancelled during sleep")
                break

            if not self.running:
                break
            try:
                await self.refresh_device_list()
            except DiscoveryError as err:
                self.logger.warning(f"rescan failed ({err}), keeping the {len(self.blinds_by_id)} blinds we already know")

    async def device_loop(self: Blinds2Mqtt) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.refresh_interval)
            except asyncio.CancelledError:
                self.logger.debug("device_loop cancelled during sleep")
                break

            if self.running:
                self.update_blinds_state()

    async def heartbeat(self: Blinds2Mqtt) -> None:
        while self.running:
            self.heartbeat_ready()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                self.logger.debug("heartbeat cancelled during sleep")
                break

    # main loop
    async def main_loop(self: Blinds2Mqtt) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                signal.signal(sig, self._handle_signal)
            except Exception:
                self.logger.debug(f"cannot install handler for {sig}")

        # no blinds means nothing to route; DiscoveryError ends startup before we touch MQTT
        await self.refresh_device_list()

        # a signal during discovery has nothing to cancel yet
        if not self.running:
            self.logger.warning("stop requested during startup, not connecting to MQTT")
            return

        self.mqttc_create()
        self.running = True
        self.mark_ready()

        self.loop_tasks = [
            asyncio.create_task(self.device_list_loop(), name="device_list_loop"),
            asyncio.create_task(self.device_loop(), name="device_loop"),
            asyncio.create_task(self.heartbeat(), name="heartbeat"),
        ]

        try:
            await asyncio.gather(*self.loop_tasks)
        except asyncio.CancelledError:
            self.logger.warning("main loop cancelled, shutting down")
        except Exception as err:
            self.logger.exception(f"unhandled exception in main loop: {err}")
            self.running = False
            raise
        finally:
            self.logger.info("all loops terminated")
