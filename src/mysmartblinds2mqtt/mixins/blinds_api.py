# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
from aiohttp import ClientError
from datetime import datetime
import time

from typing import TYPE_CHECKING, Any

from mysmartblinds2mqtt.models import Blind, BlindState

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt

AUTH_URL = "https://mysmartblinds.auth0.com/oauth/ro"
GRAPHQL_URL = "https://api.mysmartblinds.com/v1/graphql"

APP_USER_AGENT = "MySmartBlinds/5 CFNetwork/1121.2.2 Darwin/19.3.0"
APP_CLIENT_ID = "1d1c3vuqWtpUt1U577QX5gzCJZzm8WOB"

# auth0 id tokens are good for 10 hours
TOKEN_LIFETIME = 10 * 60 * 60

QUERY_GET_USER_INFO = """
query GetUserInfo {
    user {
        rooms {
            id
            name
            deleted
        }
        blinds {
            name
            encodedMacAddress
            roomId
            deleted
            batteryPercent
        }
    }
}
"""

QUERY_GET_BLINDS_STATE = """
query GetBlindsState($blinds: [String]) {
    blindsState(encodedMacAddresses: $blinds) {
        __typename
        encodedMacAddress
        position
        rssi
        batteryLevel
    }
}
"""

MUTATION_UPDATE_BLINDS_POSITION = """
mutation UpdateBlindsPosition($blinds: [String], $position: Int!) {
    updateBlindsPosition(encodedMacAddresses: $blinds, position: $position) {
        __typename
        encodedMacAddress
        position
        rssi
        batteryLevel
    }
}
"""


class BlindsAPIError(RuntimeError):
    """Raised inside the API mixin when MySmartBlinds answers with something unusable."""

    pass


# a failed call is reported to the caller as None, never raised
API_ERRORS = (ClientError, asyncio.TimeoutError, BlindsAPIError, KeyError, TypeError, ValueError)


class BlindsAPIMixin:
    async def find_blinds(self: Blinds2Mqtt) -> list[Blind] | None:
        self.logger.debug("searching for blinds on MySmartBlinds account")

        try:
            data = await self.graphql(QUERY_GET_USER_INFO, None)
            user = (data.get("data") or {}).get("user") or {}

            rooms_by_id = {room["id"]: room["name"] for room in user.get("rooms") or [] if not room.get("deleted")}
            return [Blind.from_api(blind, rooms_by_id) for blind in user.get("blinds") or [] if not blind.get("deleted")]

        except API_ERRORS as err:
            self.logger.error(f"failed finding available blinds: {err}")
            return None

    async def get_blinds_state(self: Blinds2Mqtt, blinds: list[str]) -> list[BlindState] | None:
        self.logger.debug(f"requesting state for {len(blinds)} blinds")

        try:
            data = await self.graphql(QUERY_GET_BLINDS_STATE, {"blinds": blinds})
            self.logger.debug(f"GetBlindsState response: {data}")
            return [BlindState.from_api(blind) for blind in data["data"]["blindsState"]]

        except API_ERRORS as err:
            self.logger.error(f"failed getting blinds state: {err}")
            return None

    async def update_tilt_position(self: Blinds2Mqtt, blinds: list[str], position: int) -> list[BlindState] | None:
        try:
            data = await self.graphql(MUTATION_UPDATE_BLINDS_POSITION, {"position": position, "blinds": blinds})
            self.logger.debug(f"UpdateBlindsPosition response: {data}")
            return [BlindState.from_api(blind) for blind in data["data"]["updateBlindsPosition"]]

        except API_ERRORS as err:
            self.logger.error(f"failed updating blinds position: {err}")
            return None

    # Transport -----------------------------------------------------------------------------------

    async def get_token(self: Blinds2Mqtt) -> str:
        if self._token and time.time() < self._token_expiry:
            self.logger.debug("using existing auth token")
            return self._token

        self.logger.info("fetching new auth token")

        body = {
            "scope": "openid offline_access",
            "grant_type": "password",
            "client_id": APP_CLIENT_ID,
            "connection": "Username-Password-Authentication",
            "device": "MySmartBlinds MQTT",
            "username": self.username,
            "password": self.password,
        }
        headers = {"Content-Type": "application/json", "User-Agent": APP_USER_AGENT}

        async with self.session.post(AUTH_URL, headers=headers, json=body) as r:
            if r.status != 200:
                raise BlindsAPIError(f"error ({r.status}) fetching auth token")
            data = await r.json()

        token = data.get("id_token") if isinstance(data, dict) else None
        if not token:
            raise BlindsAPIError("failed fetching auth token")

        self._token = token
        self._token_expiry = time.time() + TOKEN_LIFETIME
        self.logger.info(f"received new token, valid until: {datetime.fromtimestamp(self._token_expiry).isoformat()}")

        return token

    async def get_headers(self: Blinds2Mqtt) -> dict[str, str]:
        token = await self.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "auth0-client-id": APP_CLIENT_ID,
            "User-Agent": APP_USER_AGENT,
            "Content-Type": "application/json",
        }

    async def graphql(self: Blinds2Mqtt, query: str, variables: dict[str, Any] | None) -> dict[str, Any]:
        headers = await self.get_headers()

        async with self.session.post(GRAPHQL_URL, headers=headers, json={"query": query, "variables": variables}) as r:
            if r.status == 401:
                # make the next call log in again
                self._token = None
            if r.status != 200:
                raise BlindsAPIError(f"error ({r.status}) from MySmartBlinds")
            data = await r.json()

        if not isinstance(data, dict):
            raise BlindsAPIError(f"unexpected response type from MySmartBlinds: {type(data).__name__}")
        if data.get("errors"):
            raise BlindsAPIError(f"MySmartBlinds returned errors: {data['errors']}")

        return data
