# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from typing import Any

import pytest

from mysmartblinds2mqtt.mixins.helpers import CONFIG_ENV_VARS


@pytest.fixture
def sample_blinds_config() -> dict[str, Any]:
    """Return a minimal valid config dict for mysmartblinds2mqtt."""
    return {
        "mqtt": {
            "host": "localhost",
            "port": 1883,
            "qos": 0,
            "username": "testuser",
            "password": "testpass",
            "tls_enabled": False,
            "tls_ca_cert": None,
            "tls_cert": None,
            "tls_key": None,
            "prefix": "mysmartblinds",
            "reconnect_delay": 5.0,
        },
        "mysmartblinds": {
            "username": "blinds@example.com",
            "password": "hunter2",
            "update_delay": 0.75,
            "state_interval": 10.0,
            "refresh_interval": 300.0,
            "rescan_interval": 3600.0,
        },
        "debug": False,
        "hide_ts": False,
        "config_from": "test",
        "config_path": "/tmp",
        "version": "0.0.0-test",
    }


@pytest.fixture
def blinds_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Clear every config env var, then set just the required ones."""
    for env_var in CONFIG_ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)

    monkeypatch.setenv("MSB_USER", "blinds@example.com")
    monkeypatch.setenv("MSB_PASS", "hunter2")
    monkeypatch.setenv("MQTT_HOST", "broker.local")
    return monkeypatch
