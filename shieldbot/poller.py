"""Periodic driver that pings once per shield drop and advances the schedule."""

from __future__ import annotations

import logging

from discord.ext import tasks

from shieldbot.notifier import Notifier
from shieldbot.schedule import ScheduleState
from shieldbot.timemath import encode_instant

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 30


class Poller:
    def __init__(self, state: ScheduleState, notifier: Notifier, interval_seconds: float = CHECK_INTERVAL_SECONDS):
        self.state = state
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.loop = tasks.loop(seconds=interval_seconds)(self.run_tick)

    def start(self) -> None:
        if not self.loop.is_running():
            self.loop.start()
            logger.info("Scheduler started, checking every %ss", self.interval_seconds)

    def stop(self) -> None:
        self.loop.cancel()

    def is_running(self) -> bool:
        return self.loop.is_running()

    async def run_tick(self) -> None:
        # tasks.Loop stops on an unhandled exception, so nothing may escape a tick.
        try:
            await self.tick()
        except Exception:
            logger.exception("Scheduler tick failed")

    async def tick(self) -> bool:
        """Run one check. Returns True when a ping was delivered."""
        async with self.state.lock:
            if self.state.next_drop is None:
                return False

            self.state.ensure_future()
            times = self.state.times()
            if times is None:
                return False

            now = self.state.clock()
            if now < times.ping_at or self.state.is_notified(times.drop):
                return False

            config = self.state.config
            try:
                await self.notifier.deliver(config.target_channel_id, config.ping_role_id)
            except Exception:
                logger.exception("Ping for drop %s failed; retrying next tick", encode_instant(times.drop))
                return False

            self.state.mark_notified(times.drop)
            self.state.advance_one_cycle()
            return True
