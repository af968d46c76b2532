"""Schedule state: the next shield drop and the cycle parameters.

``ScheduleState`` owns the current ``ScheduleConfig`` snapshot. Every
mutation builds a new snapshot, persists it, and (for operator edits) clears
the dedup key so the next cycle can be pinged again.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from shieldbot.errors import ConfigValidationError
from shieldbot.storage import ConfigStore, ScheduleConfig
from shieldbot.timemath import ScheduleTimes, compute_times, encode_instant

logger = logging.getLogger(__name__)

MIN_CYCLE_DAYS = 1
MAX_CYCLE_DAYS = 30
MIN_PING_HOURS = 1
MAX_PING_HOURS = 168

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShieldPhase(enum.Enum):
    SHIELDED = "shielded"
    UNSHIELDED = "unshielded"
    BETWEEN_CYCLES = "between_cycles"


def validate_cycle_days(days: int) -> None:
    if not MIN_CYCLE_DAYS <= days <= MAX_CYCLE_DAYS:
        raise ConfigValidationError(
            "cycleDays", f"Cycle must be between {MIN_CYCLE_DAYS} and {MAX_CYCLE_DAYS} days."
        )


def validate_ping_hours(hours: int) -> None:
    if not MIN_PING_HOURS <= hours <= MAX_PING_HOURS:
        raise ConfigValidationError(
            "pingHoursBefore", f"Ping offset must be between {MIN_PING_HOURS} and {MAX_PING_HOURS} hours."
        )


def sanitize_config(config: ScheduleConfig) -> ScheduleConfig:
    """Replace out-of-range values that came from env or files with defaults."""
    defaults = ScheduleConfig()
    changes = {}
    if not MIN_CYCLE_DAYS <= config.cycle_days <= MAX_CYCLE_DAYS:
        changes["cycle_days"] = defaults.cycle_days
    if not MIN_PING_HOURS <= config.ping_hours_before <= MAX_PING_HOURS:
        changes["ping_hours_before"] = defaults.ping_hours_before
    if config.unshielded_hours < 0:
        changes["unshielded_hours"] = defaults.unshielded_hours
    for field, value in changes.items():
        logger.warning(
            "Loaded %s=%r is out of range; using %r", field, getattr(config, field), value
        )
    if changes:
        config = replace(config, **changes)
    return config


class ScheduleState:
    def __init__(self, store: ConfigStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock
        # Serialises tick evaluation with command mutations.
        self.lock = asyncio.Lock()
        self.config: ScheduleConfig = sanitize_config(store.load())

    def reload(self) -> ScheduleConfig:
        self.config = sanitize_config(self.store.load())
        return self.config

    def _commit(self, config: ScheduleConfig) -> None:
        self.config = config
        self.store.save(config)

    @property
    def cycle(self) -> timedelta:
        return timedelta(days=self.config.cycle_days)

    @property
    def next_drop(self) -> Optional[datetime]:
        return self.config.next_drop

    def times(self) -> Optional[ScheduleTimes]:
        if self.config.next_drop is None:
            return None
        return compute_times(
            self.config.next_drop,
            self.config.ping_hours_before,
            self.config.unshielded_hours,
        )

    def ensure_future(self) -> Optional[datetime]:
        """Roll the drop forward by whole cycles until it is strictly after now."""
        drop = self.config.next_drop
        if drop is None:
            return None
        now = self.clock()
        if drop > now:
            return drop

        cycle = self.cycle
        skipped = 0
        while drop <= now:
            drop += cycle
            skipped += 1
        logger.info(
            "Drop instant was in the past; skipped %d cycle(s), next drop %s",
            skipped,
            encode_instant(drop),
        )
        self._commit(replace(self.config, next_drop=drop))
        return drop

    def advance_one_cycle(self) -> datetime:
        if self.config.next_drop is None:
            raise ConfigValidationError("nextShieldDropISO", "No shield drop set.")
        drop = self.config.next_drop + self.cycle
        self._commit(replace(self.config, next_drop=drop))
        logger.info("Advanced to next cycle, drop %s", encode_instant(drop))
        return drop

    def set_drop(self, instant: datetime) -> None:
        instant = instant.astimezone(timezone.utc)
        self._commit(replace(self.config, next_drop=instant, notified_drop=None))
        logger.info("Next shield drop set to %s", encode_instant(instant))

    def set_cycle_days(self, days: int) -> None:
        validate_cycle_days(days)
        self._commit(replace(self.config, cycle_days=days, notified_drop=None))
        logger.info("Cycle updated to %d days", days)

    def set_ping_hours(self, hours: int) -> None:
        validate_ping_hours(hours)
        self._commit(replace(self.config, ping_hours_before=hours, notified_drop=None))
        logger.info("Ping offset updated to %d hours", hours)

    def is_notified(self, drop: datetime) -> bool:
        return self.config.notified_drop == drop

    def mark_notified(self, drop: datetime) -> None:
        self._commit(replace(self.config, notified_drop=drop))

    def phase(self, now: Optional[datetime] = None) -> Optional[ShieldPhase]:
        times = self.times()
        if times is None:
            return None
        return shield_phase(times, self.cycle, now or self.clock())


def shield_phase(times: ScheduleTimes, cycle: timedelta, now: datetime) -> ShieldPhase:
    """Phase at ``now``. The previous cycle's contest window counts as unshielded."""
    if now < times.drop:
        previous_drop = times.drop - cycle
        if previous_drop <= now < times.reshield_at - cycle:
            return ShieldPhase.UNSHIELDED
        return ShieldPhase.SHIELDED
    if now < times.reshield_at:
        return ShieldPhase.UNSHIELDED
    return ShieldPhase.BETWEEN_CYCLES
