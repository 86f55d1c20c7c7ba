# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
import argparse
import asyncio
import logging
from concurrent.futures import Future
from types import FrameType
from typing import Any, Coroutine, Protocol

import aiohttp
from paho.mqtt.client import Client, MQTTMessage, MQTTMessageInfo

from mysmartblinds2mqtt.models import Blind, BlindState, QueuedBlindUpdate


class BlindsServiceProtocol(Protocol):
    """Shape of the composed MySmartBlinds2Mqtt service, used to type mixin `self`."""

    args: argparse.Namespace | None
    config: dict[str, Any]
    mqtt_config: dict[str, Any]
    blinds_config: dict[str, Any]
    logger: logging.Logger
    loop: asyncio.AbstractEventLoop
    session: aiohttp.ClientSession
    running: bool
    exit_code: int

    service: str
    qos: int
    client_id: str
    mqttc: Client | None
    mqtt_state: str
    mqtt_connect_time: float | None

    username: str
    password: str
    _token: str | None
    _token_expiry: float

    blinds_by_id: dict[str, Blind]
    blinds_by_room: dict[str, dict[str, Blind]]

    update_delay: float
    update_queue: list[QueuedBlindUpdate]
    update_timer: asyncio.TimerHandle | None

    state_interval: float
    last_state_poll: float
    state_poll_timer: asyncio.TimerHandle | None

    refresh_interval: float
    rescan_interval: float
    tasks: set[asyncio.Task[Any]]
    loop_tasks: list[asyncio.Task[Any]]

    # helpers
    def load_config(self, config_arg: Any | None = None) -> dict[str, Any]: ...
    def normalize_name(self, name: str) -> str: ...
    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]: ...
    def mark_ready(self) -> None: ...
    def heartbeat_ready(self) -> None: ...
    def _handle_signal(self, signum: int, frame: FrameType | None = None) -> None: ...

    # remote service
    async def find_blinds(self) -> list[Blind] | None: ...
    async def get_blinds_state(self, blinds: list[str]) -> list[BlindState] | None: ...
    async def update_tilt_position(self, blinds: list[str], position: int) -> list[BlindState] | None: ...
    async def get_token(self) -> str: ...
    async def get_headers(self) -> dict[str, str]: ...
    async def graphql(self, query: str, variables: dict[str, Any] | None) -> dict[str, Any]: ...

    # registry
    async def refresh_device_list(self) -> None: ...
    def lookup_blind(self, room: str, name: str) -> Blind | None: ...
    def lookup_blind_by_id(self, blind_id: str) -> Blind | None: ...
    def get_blind_topic(self, blind: Blind, *parts: str) -> str: ...

    # coalescer
    def parse_position(self, payload: Any) -> int | None: ...
    def queue_blinds_update(self, blinds: list[str], position: Any) -> bool: ...
    def _flush_update_queue_soon(self) -> None: ...
    async def flush_update_queue(self) -> None: ...
    async def update_blinds_position(self, blinds: list[str], position: int) -> None: ...

    # publisher
    def normalize_position(self, position: int) -> tuple[int, str]: ...
    def normalize_battery(self, battery_level: int) -> int: ...
    def build_state_payload(self, state: BlindState) -> dict[str, Any]: ...
    async def publish_blinds_state(self, states: list[BlindState]) -> None: ...
    async def publish_service_availability(self, status: str = "online") -> MQTTMessageInfo | None: ...
    def mqtt_safe_publish(self, topic: str, payload: str, qos: int | None = None, retain: bool = False) -> MQTTMessageInfo | None: ...

    # refresh
    def update_blinds_state(self) -> None: ...
    def _run_trailing_state_poll(self) -> None: ...
    async def poll_blinds_state(self) -> None: ...

    # mqtt
    def get_new_client_id(self) -> str: ...
    def mqttc_create(self) -> None: ...
    def mqtt_subscription_topics(self) -> list[tuple[str, int]]: ...
    def mqtt_on_connect(self, client: Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None: ...
    def mqtt_on_disconnect(self, client: Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None: ...
    def mqtt_on_subscribe(self, client: Client, userdata: Any, mid: int, reason_code_list: list[Any], properties: Any) -> None: ...
    def mqtt_on_message(self, client: Client, userdata: Any, msg: MQTTMessage) -> None: ...
    def _log_handler_failure(self, future: Future[None]) -> None: ...
    async def handle_connect(self) -> None: ...
    def handle_disconnect(self, reason_code: Any) -> None: ...
    async def handle_message(self, topic: str, payload: bytes) -> None: ...
    def _parse_blind_topic(self, topic: str) -> list[str] | None: ...

    # loops
    async def device_loop(self) -> None: ...
    async def device_list_loop(self) -> None: ...
    async def heartbeat(self) -> None: ...
    async def main_loop(self) -> None: ...
