# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
import copy
from deepmerge.merger import Merger
from importlib.metadata import PackageNotFoundError, version as pkg_version
import logging
import os
import pathlib
import re
import signal
from types import FrameType
from urllib.parse import urlsplit
import yaml

from typing import TYPE_CHECKING, Any, Coroutine, cast

from mysmartblinds2mqtt.mixins.queue import UPDATE_QUEUE_DELAY
from mysmartblinds2mqtt.mixins.refresh import STATE_POLL_INTERVAL

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt

READY_FILE = os.getenv("READY_FILE", "/tmp/mysmartblinds2mqtt.ready")

WHITESPACE = re.compile(r"\s+")
# characters that would change the meaning of a topic segment
TOPIC_UNSAFE = re.compile(r"[/+#]")

CONFIG_DEFAULTS: dict[str, Any] = {
    "mqtt": {
        "host": "",
        "port": 1883,
        "qos": 0,
        "username": "",
        "password": "",
        "tls_enabled": False,
        "tls_ca_cert": None,
        "tls_cert": None,
        "tls_key": None,
        "prefix": "mysmartblinds",
        "reconnect_delay": 5,
    },
    "mysmartblinds": {
        "username": "",
        "password": "",
        "update_delay": UPDATE_QUEUE_DELAY,
        "state_interval": STATE_POLL_INTERVAL,
        "refresh_interval": 300,
        "rescan_interval": 3600,
    },
    "debug": False,
    "hide_ts": False,
}

# fmt: off
CONFIG_ENV_VARS: dict[tuple[str, ...], str] = {
    ("mqtt", "host"):                        "MQTT_HOST",
    ("mqtt", "port"):                        "MQTT_PORT",
    ("mqtt", "qos"):                         "MQTT_QOS",
    ("mqtt", "username"):                    "MQTT_USERNAME",
    ("mqtt", "password"):                    "MQTT_PASSWORD",
    ("mqtt", "tls_enabled"):                 "MQTT_TLS_ENABLED",
    ("mqtt", "tls_ca_cert"):                 "MQTT_TLS_CA_CERT",
    ("mqtt", "tls_cert"):                    "MQTT_TLS_CERT",
    ("mqtt", "tls_key"):                     "MQTT_TLS_KEY",
    ("mqtt", "prefix"):                      "MQTT_PREFIX",
    ("mqtt", "reconnect_delay"):             "MQTT_RECONNECT_DELAY",
    ("mysmartblinds", "username"):           "MSB_USER",
    ("mysmartblinds", "password"):           "MSB_PASS",
    ("mysmartblinds", "update_delay"):       "MSB_UPDATE_DELAY",
    ("mysmartblinds", "state_interval"):     "MSB_STATE_INTERVAL",
    ("mysmartblinds", "refresh_interval"):   "MSB_REFRESH_INTERVAL",
    ("mysmartblinds", "rescan_interval"):    "MSB_RESCAN_INTERVAL",
    ("debug",):                              "DEBUG",
    ("hide_ts",):                            "HIDE_TS",
}
# fmt: on

CONFIG_MERGER = Merger(
    [(dict, "merge"), (list, "override")],
    ["override"],
    ["override"],
)


class ConfigError(ValueError):
    """Raised when the configuration file is invalid."""

    pass


LOG_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT_NO_TS = "[%(levelname)s] %(name)s: %(message)s"


def setup_logging(hide_ts: bool = False, debug: bool = False) -> None:
    logging.basicConfig(
        format=LOG_FORMAT_NO_TS if hide_ts else LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )

    # we don't want to get this mess of deeper-level logging
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: _drop_none(v) if isinstance(v, dict) else v for k, v in data.items() if v is not None}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


class HelpersMixin:
    def load_config(self: Blinds2Mqtt, config_arg: Any | None = None) -> dict[str, Any]:
        try:
            version = pkg_version("mysmartblinds2mqtt")
        except PackageNotFoundError:
            version = os.getenv("APP_VERSION", "unknown")

        config_from = "env"
        file_config: dict[str, Any] = {}

        # Determine config file path
        config_path = config_arg or "/config"
        config_path = os.path.expanduser(config_path)
        config_path = os.path.abspath(config_path)

        if os.path.isdir(config_path):
            config_file = os.path.join(config_path, "config.yaml")
        elif os.path.isfile(config_path):
            config_file = config_path
            config_path = os.path.dirname(config_file)
        elif config_path.endswith((".yaml", ".yml")):
            config_file = config_path
        else:
            config_file = os.path.join(config_path, "config.yaml")

        if os.path.exists(config_file):
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
                config_from = "file"
            except (OSError, yaml.YAMLError) as err:
                logging.warning(f"Failed to load config from {config_file}: {err}")
        else:
            logging.warning(f"Config file not found at {config_file}, falling back to environment vars")

        if not isinstance(file_config, dict):
            raise ConfigError(f"config file {config_file} must hold a mapping, got {type(file_config).__name__}")

        env_config: dict[str, Any] = {}
        for path, env_var in CONFIG_ENV_VARS.items():
            value = os.getenv(env_var)
            if value is None or value == "":
                continue
            section = env_config
            for key in path[:-1]:
                section = section.setdefault(key, {})
            section[path[-1]] = value

        # file wins over env, env wins over defaults
        config = CONFIG_MERGER.merge(copy.deepcopy(CONFIG_DEFAULTS), env_config)
        config = CONFIG_MERGER.merge(config, _drop_none(file_config))

        mqtt = cast(dict[str, Any], config["mqtt"])
        blinds = cast(dict[str, Any], config["mysmartblinds"])

        try:
            mqtt["port"] = int(mqtt["port"])
            mqtt["qos"] = int(mqtt["qos"])
            mqtt["reconnect_delay"] = float(mqtt["reconnect_delay"])
            for key in ("update_delay", "state_interval", "refresh_interval", "rescan_interval"):
                blinds[key] = float(blinds[key])
        except (TypeError, ValueError) as err:
            raise ConfigError(f"invalid numeric config value: {err}") from err

        mqtt["tls_enabled"] = _as_bool(mqtt["tls_enabled"])
        config["debug"] = _as_bool(config["debug"])
        config["hide_ts"] = _as_bool(config["hide_ts"])

        # accept a broker url like mqtt://host:1883 as well as a bare host
        host = str(mqtt.get("host") or "")
        if "://" in host:
            url = urlsplit(host)
            host = url.hostname or ""
            if url.port:
                mqtt["port"] = url.port
            if url.scheme in ("mqtts", "ssl"):
                mqtt["tls_enabled"] = True
        mqtt["host"] = host

        config["config_from"] = config_from
        config["config_path"] = config_path
        config["version"] = version

        # Validate required fields
        if not blinds.get("username") or not blinds.get("password"):
            raise ConfigError("`mysmartblinds.username` and `mysmartblinds.password` required in config file or MSB_USER/MSB_PASS env vars")
        if not mqtt["host"]:
            raise ConfigError("`mqtt.host` required in config file or MQTT_HOST env var")
        prefix = str(mqtt.get("prefix") or "")
        if not prefix or TOPIC_UNSAFE.search(prefix):
            raise ConfigError(f"`mqtt.prefix` must be non-empty and must not contain '/', '+' or '#', got {prefix!r}")
        if mqtt["qos"] not in (0, 1, 2):
            raise ConfigError(f"`mqtt.qos` must be 0, 1 or 2, got {mqtt['qos']}")
        for key in ("update_delay", "state_interval", "refresh_interval", "rescan_interval"):
            if blinds[key] <= 0:
                raise ConfigError(f"`mysmartblinds.{key}` must be greater than zero")

        return cast(dict[str, Any], config)

    def normalize_name(self: Blinds2Mqtt, name: str) -> str:
        """Turn a display name into a topic segment: lower-case, whitespace runs to `_`."""
        return TOPIC_UNSAFE.sub("_", WHITESPACE.sub("_", name)).lower()

    def spawn(self: Blinds2Mqtt, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Run a coroutine on our loop, holding a reference until it finishes."""
        task = self.loop.create_task(coro, name=name)
        self.tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self.tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                self.logger.error(f"task {t.get_name()} failed", exc_info=t.exception())

        task.add_done_callback(_done)
        return task

    # Utility functions ---------------------------------------------------------------------------

    def _handle_signal(self: Blinds2Mqtt, signum: int, frame: FrameType | None = None) -> None:
        sig_name = signal.Signals(signum).name
        self.logger.warning(f"{sig_name} received - stopping service loop")
        self.running = False
        if signum == signal.SIGINT:
            self.exit_code = 2

        for task in self.loop_tasks:
            self.loop.call_soon_threadsafe(task.cancel)

    def mark_ready(self: Blinds2Mqtt) -> None:
        pathlib.Path(READY_FILE).touch()

    def heartbeat_ready(self: Blinds2Mqtt) -> None:
        pathlib.Path(READY_FILE).touch()
