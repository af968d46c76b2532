"""Process settings read from the environment (``.env`` is loaded by ``bot.py``)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from shieldbot.commands import DEFAULT_PREFIX
from shieldbot.notifier import DEFAULT_PING_MESSAGE
from shieldbot.poller import CHECK_INTERVAL_SECONDS
from shieldbot.storage import CONFIG_PATH, DEFAULTS_PATH

logger = logging.getLogger(__name__)


def parse_id_list(value: str) -> list[int]:
    # Extract any numeric IDs from the string to tolerate quotes/spaces/newlines.
    return [int(x) for x in re.findall(r"\d{5,}", value or "")]


def _env_number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric value for %s: %s", name, raw)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive value for %s: %s", name, raw)
        return default
    return value


@dataclass(frozen=True)
class BotSettings:
    token: Optional[str]
    prefix: str = DEFAULT_PREFIX
    check_interval_seconds: float = CHECK_INTERVAL_SECONDS
    delivery_timeout_seconds: float = 15.0
    allowed_guild_ids: frozenset[int] = frozenset()
    config_path: str = CONFIG_PATH
    defaults_path: str = DEFAULTS_PATH
    ping_message: str = DEFAULT_PING_MESSAGE
    log_level: str = "INFO"
    log_file: Optional[str] = None


def load_settings(env: Optional[Mapping[str, str]] = None) -> BotSettings:
    env = os.environ if env is None else env
    return BotSettings(
        token=env.get("DISCORD_BOT_TOKEN") or env.get("DISCORD_TOKEN"),
        prefix=(env.get("COMMAND_PREFIX") or "").strip() or DEFAULT_PREFIX,
        check_interval_seconds=_env_number(env, "CHECK_INTERVAL_SECONDS", CHECK_INTERVAL_SECONDS),
        delivery_timeout_seconds=_env_number(env, "DELIVERY_TIMEOUT_SECONDS", 15.0),
        allowed_guild_ids=frozenset(parse_id_list(env.get("ALLOWED_GUILD_IDS", ""))),
        config_path=env.get("SHIELD_CONFIG_PATH") or CONFIG_PATH,
        defaults_path=env.get("SHIELD_DEFAULTS_PATH") or DEFAULTS_PATH,
        ping_message=(env.get("PING_MESSAGE") or "").strip() or DEFAULT_PING_MESSAGE,
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        log_file=env.get("LOG_FILE") or None,
    )
