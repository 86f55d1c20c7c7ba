# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
#!/usr/bin/env python3
import asyncio
import argparse
import logging
import os

from .mixins.blinds import DiscoveryError
from .mixins.helpers import ConfigError, _as_bool, setup_logging
from .mixins.mqtt import MqttError
from .core import MySmartBlinds2Mqtt


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mysmartblinds2mqtt", exit_on_error=True)
    p.add_argument(
        "-c",
        "--config",
        help="Directory or file path for config.yaml (defaults to /config/config.yaml)",
    )
    return p


async def async_main(argv: list[str] | None = None) -> int:
    # env only for now, the service re-applies this once the config file is read
    setup_logging(hide_ts=_as_bool(os.getenv("HIDE_TS", "")), debug=_as_bool(os.getenv("DEBUG", "")))
    logger = logging.getLogger(__name__)

    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = 0
    try:
        async with MySmartBlinds2Mqtt(args=args) as mysmartblinds2mqtt:
            try:
                await mysmartblinds2mqtt.main_loop()
            finally:
                exit_code = mysmartblinds2mqtt.exit_code
    except ConfigError as err:
        logger.error(f"Fatal config error was found: {err}")
        return 1
    except DiscoveryError as err:
        logger.error(f"Could not load blinds from MySmartBlinds: {err}")
        return 1
    except MqttError as err:
        logger.error(f"MQTT service problems: {err}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Shutdown requested (Ctrl+C). Exiting gracefully...")
        return 2
    except asyncio.CancelledError:
        logger.warning("Main loop cancelled.")
        return exit_code or 2
    except Exception as err:
        logger.error(f"Unhandled exception: {err}", exc_info=True)
        return 1
    finally:
        logger.info("mysmartblinds2mqtt stopped.")

    return exit_code


def main() -> int:
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        return 2
