# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

import asyncio
import math

from typing import TYPE_CHECKING, Any

from mysmartblinds2mqtt.models import QueuedBlindUpdate

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt

# Time window (in seconds) to collect position requests before calling MySmartBlinds.
# Requests for the same blind keep the last position; blinds headed for the same
# position share a single call.
UPDATE_QUEUE_DELAY = 0.75

MIN_POSITION = 0
MAX_POSITION = 180


class QueueMixin:
    def parse_position(self: Blinds2Mqtt, payload: Any) -> int | None:
        if isinstance(payload, bool):
            return None
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError:
                return None
        if isinstance(payload, str):
            payload = payload.strip()
            if not payload:
                return None

        try:
            value = float(payload)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value):
            return None

        return max(MIN_POSITION, min(MAX_POSITION, round(value)))

    def queue_blinds_update(self: Blinds2Mqtt, blinds: list[str], position: Any) -> bool:
        """Buffer a position change; the first request into an empty buffer arms the flush timer."""
        parsed = self.parse_position(position)
        if parsed is None:
            self.logger.warning(f"received invalid position {position!r} for blinds {', '.join(blinds)}, ignoring")
            return False

        self.update_queue.append(QueuedBlindUpdate(tuple(blinds), parsed))

        if self.update_timer is None:
            self.update_timer = self.loop.call_later(self.update_delay, self._flush_update_queue_soon)

        return True

    def _flush_update_queue_soon(self: Blinds2Mqtt) -> None:
        self.spawn(self.flush_update_queue(), name="flush_update_queue")

    async def flush_update_queue(self: Blinds2Mqtt) -> None:
        requests = list(self.update_queue)
        self.update_queue.clear()
        if self.update_timer is not None:
            self.update_timer.cancel()
            self.update_timer = None

        if not requests:
            return

        # figure out where each blind should end up; a later request for the same blind wins
        positions_by_blind: dict[str, int] = {}
        for request in requests:
            for blind_id in request.blinds:
                positions_by_blind[blind_id] = request.position

        # then invert, so blinds headed to the same position go out in one call
        blinds_by_position: dict[int, list[str]] = {}
        for blind_id, position in positions_by_blind.items():
            blinds_by_position.setdefault(position, []).append(blind_id)

        self.logger.debug(f"flushing {len(requests)} queued requests as {len(blinds_by_position)} calls")

        await asyncio.gather(*[self.update_blinds_position(blind_ids, position) for position, blind_ids in blinds_by_position.items()])

    async def update_blinds_position(self: Blinds2Mqtt, blinds: list[str], position: int) -> None:
        self.logger.info(f"changing position to {position} for blinds: {', '.join(blinds)}")

        states = await self.update_tilt_position(blinds, position)
        if states is None:
            self.logger.warning(f"position change to {position} failed for blinds: {', '.join(blinds)}")
            return

        await self.publish_blinds_state(states)
