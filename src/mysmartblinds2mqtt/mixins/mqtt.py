# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
import random
import ssl
import string
import time
from typing import TYPE_CHECKING, Any

from concurrent.futures import Future
from paho.mqtt.client import MQTT_ERR_SUCCESS, CallbackAPIVersion, Client, MQTTMessage, MQTTMessageInfo, error_string

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt


class MqttError(RuntimeError):
    """Raised when the MQTT client cannot be set up at all."""

    pass


class MqttMixin:
    def get_new_client_id(self: Blinds2Mqtt) -> str:
        return self.mqtt_config["prefix"] + "-" + "".join(random.choices(string.ascii_lowercase + string.digits, k=8))

    def mqtt_subscription_topics(self: Blinds2Mqtt) -> list[tuple[str, int]]:
        return [
            (f"{self.service}/refresh", self.qos),
            # matches "prefix/room_name/blind_name/set"
            (f"{self.service}/+/+/set", 2),
        ]

    def mqttc_create(self: Blinds2Mqtt) -> None:
        self.mqttc = Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
        )

        try:
            if self.mqtt_config.get("tls_enabled"):
                self.mqttc.tls_set(
                    ca_certs=self.mqtt_config.get("tls_ca_cert"),
                    certfile=self.mqtt_config.get("tls_cert"),
                    keyfile=self.mqtt_config.get("tls_key"),
                    cert_reqs=ssl.CERT_REQUIRED,
                    tls_version=ssl.PROTOCOL_TLS_CLIENT,
                )
            if self.mqtt_config.get("username"):
                self.mqttc.username_pw_set(
                    username=self.mqtt_config["username"],
                    password=self.mqtt_config.get("password") or None,
                )

            self.mqttc.on_connect = self.mqtt_on_connect
            self.mqttc.on_disconnect = self.mqtt_on_disconnect
            self.mqttc.on_message = self.mqtt_on_message
            self.mqttc.on_subscribe = self.mqtt_on_subscribe

            self.mqttc.will_set(f"{self.service}/availability", "offline", qos=1, retain=True)

            # paho's network thread reconnects on its own, always after the same delay
            delay = max(1, int(self.mqtt_config["reconnect_delay"]))
            self.mqttc.reconnect_delay_set(min_delay=delay, max_delay=delay)

            self.mqtt_state = "connecting"
            self.mqttc.connect_async(self.mqtt_config["host"], port=self.mqtt_config["port"], keepalive=60)
            self.mqtt_connect_time = time.time()
            self.mqttc.loop_start()
        except (OSError, ValueError) as err:
            self.mqtt_state = "disconnected"
            raise MqttError(f"failed to set up MQTT client for {self.mqtt_config['host']}: {err}") from err

        self.logger.info(f"connecting to MQTT broker at {self.mqtt_config['host']}:{self.mqtt_config['port']} as {self.client_id}")

    def mqtt_safe_publish(self: Blinds2Mqtt, topic: str, payload: str, qos: int | None = None, retain: bool = False) -> MQTTMessageInfo | None:
        """Publish without raising; returns the message info only when paho queued it."""
        if self.mqttc is None:
            self.logger.debug(f"no MQTT client yet, dropping publish to {topic}")
            return None

        try:
            info = self.mqttc.publish(topic, payload, qos=self.qos if qos is None else qos, retain=retain)
        except (ValueError, OSError) as err:
            self.logger.error(f"failed to publish to {topic}: {err}")
            return None

        if info.rc != MQTT_ERR_SUCCESS:
            self.logger.warning(f"publish to {topic} not delivered: {error_string(info.rc)}")
            return None

        return info

    # Callbacks (paho network thread) -------------------------------------------------------------

    def mqtt_on_connect(self: Blinds2Mqtt, client: Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            self.logger.error(f"MQTT connection refused: {reason_code}")
            return

        future = asyncio.run_coroutine_threadsafe(self.handle_connect(), self.loop)
        future.add_done_callback(self._log_handler_failure)

    def mqtt_on_disconnect(self: Blinds2Mqtt, client: Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self.loop.call_soon_threadsafe(self.handle_disconnect, reason_code)

    def mqtt_on_subscribe(self: Blinds2Mqtt, client: Client, userdata: Any, mid: int, reason_code_list: list[Any], properties: Any) -> None:
        self.logger.debug(f"MQTT subscribed: reason_codes - {'; '.join(str(rc) for rc in reason_code_list)}")

    def mqtt_on_message(self: Blinds2Mqtt, client: Client, userdata: Any, msg: MQTTMessage) -> None:
        future = asyncio.run_coroutine_threadsafe(self.handle_message(msg.topic, msg.payload), self.loop)
        future.add_done_callback(self._log_handler_failure)

    def _log_handler_failure(self: Blinds2Mqtt, future: Future[None]) -> None:
        if future.cancelled():
            return
        err = future.exception()
        if err is not None:
            self.logger.error(f"MQTT handler failed: {err}", exc_info=err)

    # Handlers (event loop) -----------------------------------------------------------------------

    async def handle_connect(self: Blinds2Mqtt) -> None:
        self.mqtt_state = "connected"
        self.logger.info(f"MQTT connected as {self.client_id}")

        await self.publish_service_availability("online")

        if self.mqttc is not None:
            self.mqttc.subscribe(self.mqtt_subscription_topics())

        self.update_blinds_state()

    def handle_disconnect(self: Blinds2Mqtt, reason_code: Any) -> None:
        if self.running:
            self.mqtt_state = "connecting"
            self.logger.warning(f"MQTT connection lost ({reason_code}), reconnecting in {self.mqtt_config['reconnect_delay']} sec")
        else:
            self.mqtt_state = "disconnected"
            self.logger.info("MQTT connection closed")

    async def handle_message(self: Blinds2Mqtt, topic: str, payload: bytes) -> None:
        if topic == f"{self.service}/refresh":
            self.update_blinds_state()
            return

        parsed = self._parse_blind_topic(topic)
        if not parsed:
            self.logger.warning(f"no handler for topic: {topic}")
            return

        room, name, action = parsed
        blind = self.lookup_blind(room, name)
        if not blind or action != "set":
            self.logger.warning(f"no handler for topic: {topic}")
            return

        self.logger.info(f"got position {payload!r} for {blind.room} / {blind.name}")
        self.queue_blinds_update([blind.id], payload)

    def _parse_blind_topic(self: Blinds2Mqtt, topic: str) -> list[str] | None:
        """Extract [room, name, action] from `prefix/room/name/action`."""
        components = topic.split("/")
        if len(components) != 4 or components[0] != self.service:
            return None
        if not all(components[1:]):
            return None

        return components[1:]
