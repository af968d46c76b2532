"""Prefix command dispatcher.

Maps ``$command args`` text to schedule operations and returns the reply
text. Discord specifics (authors, replies) stay in ``bot.py``.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from shieldbot.errors import ConfigValidationError, DeliveryError, ParseError
from shieldbot.notifier import Notifier
from shieldbot.schedule import (
    MAX_CYCLE_DAYS,
    MAX_PING_HOURS,
    MIN_CYCLE_DAYS,
    MIN_PING_HOURS,
    ScheduleState,
    ShieldPhase,
)
from shieldbot.timemath import format_remaining, format_utc, resolve_local_instant

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "$"

PHASE_LINES = {
    ShieldPhase.SHIELDED: "\U0001F7E6 **Temple is SHIELDED now**",
    ShieldPhase.UNSHIELDED: "\U0001F534 **Temple is UNSHIELDED now (contest phase)**",
    ShieldPhase.BETWEEN_CYCLES: "\U0001F7E6 **Temple is SHIELDED now (between cycles)**",
}


def parse_int_arg(args: list[str]) -> Optional[int]:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


class CommandDispatcher:
    def __init__(self, state: ScheduleState, notifier: Notifier, prefix: str = DEFAULT_PREFIX):
        self.state = state
        self.notifier = notifier
        self.prefix = prefix
        self.handlers: dict[str, Callable[[list[str]], Awaitable[str]]] = {
            "help": self.cmd_help,
            "status": self.cmd_status,
            "info": self.cmd_status,
            "stat": self.cmd_status,
            "setdrop": self.cmd_setdrop,
            "cycle": self.cmd_cycle,
            "pinghours": self.cmd_pinghours,
            "pingtest": self.cmd_pingtest,
        }

    async def dispatch(self, content: str) -> Optional[str]:
        """Return the reply for a prefixed message, or None when it is not a command."""
        if not content.startswith(self.prefix):
            return None
        args = content[len(self.prefix):].split()
        name = args.pop(0).lower() if args else ""
        handler = self.handlers.get(name)
        if handler is None:
            return f"Unknown command. Use `{self.prefix}help`"
        return await handler(args)

    def help_text(self) -> str:
        p = self.prefix
        return (
            "**Commands**\n"
            f"• `{p}help`\n"
            f"• `{p}status` — shows shield/drop/reshield/ping times\n"
            f"• `{p}setdrop YYYY-MM-DD HH:MM TZ` — set next shield drop\n"
            f"   Example: `{p}setdrop 2026-02-13 18:31 +02:00`\n"
            f"• `{p}cycle <days>` — set repeat cycle (6/7/etc)\n"
            f"• `{p}pinghours <hours>` — set ping offset (default 24)\n"
            f"• `{p}pingtest` — sends a test ping in the channel"
        )

    def status_text(self) -> str:
        p = self.prefix
        state = self.state
        if state.next_drop is None:
            return (
                "No shield drop set.\n"
                f"Use: `{p}setdrop YYYY-MM-DD HH:MM TZ`\n"
                f"Example: `{p}setdrop 2026-02-13 18:31 +02:00`"
            )

        state.ensure_future()
        times = state.times()
        now = state.clock()
        config = state.config

        lines = [
            "**Lost Temple Status**",
            f"• Channel: <#{config.target_channel_id}>",
            f"• Role: <@&{config.ping_role_id}>",
            f"• Cycle Days: **{config.cycle_days}**",
            f"• Ping Before: **{config.ping_hours_before}h**",
            f"• Unshielded Duration: **{config.unshielded_hours}h**",
            "",
            PHASE_LINES[state.phase(now)],
            f"• Shield drops at (UTC): **{format_utc(times.drop)}**",
            f"• Reshield at (UTC): **{format_utc(times.reshield_at)}**",
            f"• Next ping at (UTC): **{format_utc(times.ping_at)}**",
        ]
        if state.is_notified(times.drop):
            lines.append("• Ping for this drop already sent")
        elif now < times.ping_at:
            remaining = int((times.ping_at - now).total_seconds())
            lines.append(f"• Ping in {format_remaining(remaining)}")
        return "\n".join(lines)

    async def cmd_help(self, args: list[str]) -> str:
        return self.help_text()

    async def cmd_status(self, args: list[str]) -> str:
        async with self.state.lock:
            return self.status_text()

    async def cmd_setdrop(self, args: list[str]) -> str:
        p = self.prefix
        if len(args) < 3:
            return f"Usage: `{p}setdrop YYYY-MM-DD HH:MM TZ` (TZ = UTC or +02:00)"
        try:
            instant = resolve_local_instant(args[0], args[1], args[2])
        except ParseError as exc:
            logger.info("Rejected setdrop %r: %s", args, exc)
            return f"Invalid format. Example: `{p}setdrop 2026-02-13 18:31 +02:00`"

        async with self.state.lock:
            self.state.set_drop(instant)
            config = self.state.config
        return (
            f"✅ Next shield drop set to (UTC): **{format_utc(instant)}**\n"
            f"I will ping <@&{config.ping_role_id}> in <#{config.target_channel_id}> "
            f"**{config.ping_hours_before}h before**, repeating every **{config.cycle_days} days**."
        )

    async def cmd_cycle(self, args: list[str]) -> str:
        p = self.prefix
        usage = f"Usage: `{p}cycle 6` or `{p}cycle 7` ({MIN_CYCLE_DAYS}–{MAX_CYCLE_DAYS})"
        days = parse_int_arg(args)
        if days is None:
            return usage
        try:
            async with self.state.lock:
                self.state.set_cycle_days(days)
        except ConfigValidationError as exc:
            return f"{exc}\n{usage}"
        return f"✅ Cycle updated: **{days} days**"

    async def cmd_pinghours(self, args: list[str]) -> str:
        p = self.prefix
        usage = f"Usage: `{p}pinghours 24` ({MIN_PING_HOURS}–{MAX_PING_HOURS})"
        hours = parse_int_arg(args)
        if hours is None:
            return usage
        try:
            async with self.state.lock:
                self.state.set_ping_hours(hours)
        except ConfigValidationError as exc:
            return f"{exc}\n{usage}"
        return f"✅ Ping offset updated: **{hours} hours before drop**"

    async def cmd_pingtest(self, args: list[str]) -> str:
        config = self.state.config
        try:
            await self.notifier.deliver(config.target_channel_id, config.ping_role_id)
        except DeliveryError as exc:
            logger.warning("Test ping failed: %s", exc)
            return f"❌ Failed to send test ping: {exc}\nCheck bot permissions + role mention perms."
        return "✅ Test ping sent."
