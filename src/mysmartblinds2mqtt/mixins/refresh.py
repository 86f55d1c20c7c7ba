# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mysmartblinds2mqtt.interface import BlindsServiceProtocol as Blinds2Mqtt

# MySmartBlinds is polled for state at most once in this many seconds
STATE_POLL_INTERVAL = 10


class RefreshMixin:
    def update_blinds_state(self: Blinds2Mqtt) -> None:
        """Throttled state poll.

        Runs right away when the last poll is at least `state_interval` old. Inside the
        window, every request collapses into a single trailing poll at the window boundary.
        """
        if self.state_poll_timer is not None:
            self.logger.debug("state poll already scheduled")
            return

        elapsed = self.loop.time() - self.last_state_poll
        if elapsed >= self.state_interval:
            self.last_state_poll = self.loop.time()
            self.spawn(self.poll_blinds_state(), name="poll_blinds_state")
            return

        delay = self.state_interval - elapsed
        self.logger.debug(f"state poll throttled, running in {delay:.1f} sec")
        self.state_poll_timer = self.loop.call_later(delay, self._run_trailing_state_poll)

    def _run_trailing_state_poll(self: Blinds2Mqtt) -> None:
        self.state_poll_timer = None
        self.last_state_poll = self.loop.time()
        self.spawn(self.poll_blinds_state(), name="poll_blinds_state")

    async def poll_blinds_state(self: Blinds2Mqtt) -> None:
        self.logger.info("processing request to get blinds state")

        blind_ids = list(self.blinds_by_id)
        if not blind_ids:
            return

        states = await self.get_blinds_state(blind_ids)
        if states is None:
            self.logger.warning("could not get blinds state from MySmartBlinds")
            return

        await self.publish_blinds_state(states)
