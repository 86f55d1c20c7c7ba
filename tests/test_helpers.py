# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
import asyncio
import signal
from unittest.mock import MagicMock

import pytest

from mysmartblinds2mqtt.mixins.helpers import ConfigError, HelpersMixin


class FakeHelper(HelpersMixin):
    def __init__(self):
        self.logger = MagicMock()
        self.running = True
        self.exit_code = 0
        self.loop = MagicMock()
        self.tasks = set()
        self.loop_tasks = []


# ===========================================================================
# load_config
# ===========================================================================


class TestLoadConfig:
    def test_env_only(self, blinds_env, tmp_path):
        config = FakeHelper().load_config(str(tmp_path))

        assert config["config_from"] == "env"
        assert config["mqtt"]["host"] == "broker.local"
        assert config["mqtt"]["port"] == 1883
        assert config["mqtt"]["prefix"] == "mysmartblinds"
        assert config["mysmartblinds"]["username"] == "blinds@example.com"
        assert config["mysmartblinds"]["update_delay"] == 0.75
        assert config["mysmartblinds"]["state_interval"] == 10
        assert config["debug"] is False

    def test_env_values_are_coerced(self, blinds_env, tmp_path):
        blinds_env.setenv("MQTT_PORT", "8883")
        blinds_env.setenv("MQTT_QOS", "1")
        blinds_env.setenv("MSB_UPDATE_DELAY", "1.5")
        blinds_env.setenv("DEBUG", "true")

        config = FakeHelper().load_config(str(tmp_path))

        assert config["mqtt"]["port"] == 8883
        assert config["mqtt"]["qos"] == 1
        assert config["mysmartblinds"]["update_delay"] == 1.5
        assert config["debug"] is True

    def test_file_wins_over_env(self, blinds_env, tmp_path):
        (tmp_path / "config.yaml").write_text("mqtt:\n  host: filehost\n  prefix: blinds\nmysmartblinds:\n  state_interval: 30\n")

        config = FakeHelper().load_config(str(tmp_path))

        assert config["config_from"] == "file"
        assert config["mqtt"]["host"] == "filehost"
        assert config["mqtt"]["prefix"] == "blinds"
        assert config["mysmartblinds"]["state_interval"] == 30
        # untouched by the file, so env still applies
        assert config["mysmartblinds"]["username"] == "blinds@example.com"

    def test_file_path_directly(self, blinds_env, tmp_path):
        config_file = tmp_path / "blinds.yaml"
        config_file.write_text("mqtt:\n  port: 1884\n")

        config = FakeHelper().load_config(str(config_file))

        assert config["mqtt"]["port"] == 1884
        assert config["config_path"] == str(tmp_path)

    def test_null_in_file_keeps_default(self, blinds_env, tmp_path):
        (tmp_path / "config.yaml").write_text("mqtt:\n  port:\n")

        config = FakeHelper().load_config(str(tmp_path))

        assert config["mqtt"]["port"] == 1883

    def test_broker_url(self, blinds_env, tmp_path):
        blinds_env.setenv("MQTT_HOST", "mqtts://broker.example.com:8883")

        config = FakeHelper().load_config(str(tmp_path))

        assert config["mqtt"]["host"] == "broker.example.com"
        assert config["mqtt"]["port"] == 8883
        assert config["mqtt"]["tls_enabled"] is True

    def test_plain_mqtt_url_keeps_tls_off(self, blinds_env, tmp_path):
        blinds_env.setenv("MQTT_HOST", "mqtt://broker.example.com")

        config = FakeHelper().load_config(str(tmp_path))

        assert config["mqtt"]["host"] == "broker.example.com"
        assert config["mqtt"]["port"] == 1883
        assert config["mqtt"]["tls_enabled"] is False

    def test_missing_credentials(self, blinds_env, tmp_path):
        blinds_env.delenv("MSB_PASS")

        with pytest.raises(ConfigError, match="password"):
            FakeHelper().load_config(str(tmp_path))

    def test_missing_host(self, blinds_env, tmp_path):
        blinds_env.delenv("MQTT_HOST")

        with pytest.raises(ConfigError, match="mqtt.host"):
            FakeHelper().load_config(str(tmp_path))

    @pytest.mark.parametrize("prefix", ["blinds/home", "blinds+", "#"])
    def test_prefix_with_wildcards_rejected(self, blinds_env, tmp_path, prefix):
        blinds_env.setenv("MQTT_PREFIX", prefix)

        with pytest.raises(ConfigError, match="prefix"):
            FakeHelper().load_config(str(tmp_path))

    def test_non_numeric_port(self, blinds_env, tmp_path):
        blinds_env.setenv("MQTT_PORT", "not-a-port")

        with pytest.raises(ConfigError):
            FakeHelper().load_config(str(tmp_path))

    def test_bad_qos(self, blinds_env, tmp_path):
        blinds_env.setenv("MQTT_QOS", "3")

        with pytest.raises(ConfigError, match="qos"):
            FakeHelper().load_config(str(tmp_path))

    def test_zero_interval_rejected(self, blinds_env, tmp_path):
        blinds_env.setenv("MSB_STATE_INTERVAL", "0")

        with pytest.raises(ConfigError, match="state_interval"):
            FakeHelper().load_config(str(tmp_path))

    def test_file_must_be_mapping(self, blinds_env, tmp_path):
        (tmp_path / "config.yaml").write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            FakeHelper().load_config(str(tmp_path))


# ===========================================================================
# normalize_name
# ===========================================================================


class TestNormalizeName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("My House", "my_house"),
            ("Living Room", "living_room"),
            ("  Bay   Window ", "_bay_window_"),
            ("Tab\tSeparated", "tab_separated"),
            ("Kids/Bedroom", "kids_bedroom"),
            ("Blind #1", "blind__1"),
            ("office", "office"),
        ],
    )
    def test_normalize(self, name, expected):
        assert FakeHelper().normalize_name(name) == expected


# ===========================================================================
# spawn / signals / readiness
# ===========================================================================


class TestSpawn:
    @pytest.mark.asyncio
    async def test_tracks_until_done(self):
        h = FakeHelper()
        h.loop = asyncio.get_running_loop()

        async def work():
            return 42

        task = h.spawn(work(), name="work")
        assert task in h.tasks

        assert await task == 42
        await asyncio.sleep(0)
        assert task not in h.tasks

    @pytest.mark.asyncio
    async def test_logs_failures(self):
        h = FakeHelper()
        h.loop = asyncio.get_running_loop()

        async def boom():
            raise RuntimeError("nope")

        task = h.spawn(boom(), name="boom")
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        h.logger.error.assert_called_once()
        assert not h.tasks


class TestHandleSignal:
    def test_sigint_sets_exit_code(self):
        h = FakeHelper()
        task = MagicMock()
        h.loop_tasks = [task]

        h._handle_signal(signal.SIGINT)

        assert h.running is False
        assert h.exit_code == 2
        h.loop.call_soon_threadsafe.assert_called_once_with(task.cancel)

    def test_sigterm_is_clean_exit(self):
        h = FakeHelper()

        h._handle_signal(signal.SIGTERM)

        assert h.running is False
        assert h.exit_code == 0


class TestReadyFile:
    def test_mark_ready_touches_file(self, tmp_path, monkeypatch):
        ready = tmp_path / "ready"
        monkeypatch.setattr("mysmartblinds2mqtt.mixins.helpers.READY_FILE", str(ready))

        FakeHelper().mark_ready()

        assert ready.exists()
