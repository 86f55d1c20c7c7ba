# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import aiohttp
import argparse
import asyncio
import logging
from types import TracebackType

from typing import Any, Self, cast

from mysmartblinds2mqtt.mixins.helpers import setup_logging
from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt
from mysmartblinds2mqtt.models import Blind, QueuedBlindUpdate

# how long shutdown waits for in-flight MySmartBlinds calls
SHUTDOWN_GRACE = 10

# how long shutdown waits for the broker to take the offline status
OFFLINE_PUBLISH_TIMEOUT = 5


class Base:
    def __init__(self: Blinds2Mqtt, args: argparse.Namespace | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)

        self.loop = asyncio.get_running_loop()
        self.session: aiohttp.ClientSession

        self.args = args
        self.logger = logging.getLogger(__name__)

        # now load self.config right away
        cfg_arg = getattr(args, "config", None)
        self.config = self.load_config(cfg_arg)

        # down in trenches if we have to
        setup_logging(hide_ts=self.config["hide_ts"], debug=self.config["debug"])
        self.logger.info(f"starting mysmartblinds2mqtt {self.config['version']}, config loaded from {self.config['config_from']} ({self.config['config_path']})")

        self.mqtt_config = self.config["mqtt"]
        self.blinds_config = self.config["mysmartblinds"]

        self.service = self.mqtt_config["prefix"]
        self.qos = self.mqtt_config["qos"]

        self.running = False
        self.exit_code = 0

        self.mqttc = None
        self.mqtt_state = "disconnected"
        self.mqtt_connect_time = None
        self.client_id = self.get_new_client_id()

        self.username = self.blinds_config["username"]
        self.password = self.blinds_config["password"]
        self._token = None
        self._token_expiry = 0.0

        self.blinds_by_id: dict[str, Blind] = {}
        self.blinds_by_room: dict[str, dict[str, Blind]] = {}

        self.update_delay = self.blinds_config["update_delay"]
        self.update_queue: list[QueuedBlindUpdate] = []
        self.update_timer = None

        self.state_interval = self.blinds_config["state_interval"]
        self.last_state_poll = float("-inf")
        self.state_poll_timer = None

        self.refresh_interval = self.blinds_config["refresh_interval"]
        self.rescan_interval = self.blinds_config["rescan_interval"]

        self.tasks: set[asyncio.Task[Any]] = set()
        self.loop_tasks: list[asyncio.Task[Any]] = []

    async def __aenter__(self: Self) -> Blinds2Mqtt:
        timeout = aiohttp.ClientTimeout(total=15)
        cast(Any, self).session = aiohttp.ClientSession(timeout=timeout)
        cast(Any, self).running = True

        return cast(Blinds2Mqtt, self)

    async def __aexit__(self: Self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        svc = cast(Blinds2Mqtt, self)
        svc.running = False

        if svc.state_poll_timer is not None:
            svc.state_poll_timer.cancel()
            svc.state_poll_timer = None

        # anything still buffered was asked for before we stopped; send it now
        if svc.update_queue:
            await svc.flush_update_queue()

        if svc.tasks:
            await asyncio.wait(list(svc.tasks), timeout=SHUTDOWN_GRACE)

        if svc.mqttc is not None:
            try:
                info = await svc.publish_service_availability("offline")
                if info is not None:
                    # a clean disconnect never fires the will, so make sure this one lands
                    await asyncio.to_thread(info.wait_for_publish, OFFLINE_PUBLISH_TIMEOUT)
            except (RuntimeError, ValueError) as e:
                svc.logger.warning(f"could not confirm offline status was published: {e}")

            try:
                svc.mqttc.disconnect()
                svc.mqttc.loop_stop()
                svc.logger.info("disconnected from MQTT broker")
            except Exception as e:
                svc.logger.warning(f"error during MQTT disconnect: {e}")

        if not svc.session.closed:
            await svc.session.close()

        svc.logger.info("exiting gracefully")
