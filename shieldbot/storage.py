"""Schedule config persistence.

The persisted record is a flat JSON object. On load every field is resolved
independently: environment > saved file > defaults file > built-in default.
The result is an immutable ``ScheduleConfig`` snapshot; callers replace it
with ``dataclasses.replace`` and hand it back to ``ConfigStore.save``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from shieldbot.errors import PersistedStateError
from shieldbot.timemath import decode_instant, encode_instant

logger = logging.getLogger(__name__)

CONFIG_PATH = "config.json"
DEFAULTS_PATH = "config.defaults.json"

DEFAULT_RECORD: dict[str, Any] = {
    "targetChannelId": "",
    "pingRoleId": "",
    "cycleDays": 7,
    "pingHoursBefore": 24,
    "unshieldedHours": 2,
    "nextShieldDropISO": None,
    "lastPingedForDropISO": None,
}

ENV_KEYS = {
    "targetChannelId": "TARGET_CHANNEL_ID",
    "pingRoleId": "PING_ROLE_ID",
    "cycleDays": "CYCLE_DAYS",
    "pingHoursBefore": "PING_HOURS_BEFORE",
    "unshieldedHours": "UNSHIELDED_HOURS",
    "nextShieldDropISO": "NEXT_SHIELD_DROP_ISO",
}

INT_KEYS = ("cycleDays", "pingHoursBefore", "unshieldedHours")


@dataclass(frozen=True)
class ScheduleConfig:
    target_channel_id: str = ""
    ping_role_id: str = ""
    cycle_days: int = 7
    ping_hours_before: int = 24
    unshielded_hours: int = 2
    next_drop: Optional[datetime] = None
    notified_drop: Optional[datetime] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "targetChannelId": self.target_channel_id,
            "pingRoleId": self.ping_role_id,
            "cycleDays": self.cycle_days,
            "pingHoursBefore": self.ping_hours_before,
            "unshieldedHours": self.unshielded_hours,
            "nextShieldDropISO": encode_instant(self.next_drop),
            "lastPingedForDropISO": encode_instant(self.notified_drop),
        }


def read_json(path: str) -> Optional[dict[str, Any]]:
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Failed to read %s: %r", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: root is not an object", path)
        return None
    return data


def _coerce_int(key: str, value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    logger.warning("Ignoring non-integer value for %s: %r", key, value)
    return None


def merge_layers(*layers: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge record layers lowest precedence first, field by field."""
    merged = dict(DEFAULT_RECORD)
    for layer in layers:
        if not layer:
            continue
        for key in DEFAULT_RECORD:
            if key not in layer or layer[key] is None:
                continue
            value = layer[key]
            if key in INT_KEYS:
                value = _coerce_int(key, value)
                if value is None:
                    continue
            elif key in ("targetChannelId", "pingRoleId"):
                value = str(value).strip()
            merged[key] = value
    return merged


def env_layer(env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key, env_name in ENV_KEYS.items():
        raw = env.get(env_name)
        if raw is not None and raw.strip():
            layer[key] = raw.strip()
    return layer


def config_from_record(record: Mapping[str, Any]) -> ScheduleConfig:
    """Build a snapshot. Raises PersistedStateError for a corrupt stored instant."""
    return ScheduleConfig(
        target_channel_id=record["targetChannelId"],
        ping_role_id=record["pingRoleId"],
        cycle_days=record["cycleDays"],
        ping_hours_before=record["pingHoursBefore"],
        unshielded_hours=record["unshieldedHours"],
        next_drop=decode_instant(record["nextShieldDropISO"], "nextShieldDropISO"),
        notified_drop=decode_instant(record["lastPingedForDropISO"], "lastPingedForDropISO"),
    )


class ConfigStore:
    def __init__(
        self,
        path: str = CONFIG_PATH,
        defaults_path: Optional[str] = DEFAULTS_PATH,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.path = path
        self.defaults_path = defaults_path
        self.env = os.environ if env is None else env

    def load(self) -> ScheduleConfig:
        defaults = read_json(self.defaults_path) if self.defaults_path else None
        saved = read_json(self.path)
        record = merge_layers(defaults, saved, env_layer(self.env))

        broken = []
        for key in ("nextShieldDropISO", "lastPingedForDropISO"):
            try:
                decode_instant(record[key], key)
            except PersistedStateError as exc:
                logger.warning("%s; treating it as unset", exc)
                record[key] = None
                broken.append(key)

        config = config_from_record(record)
        if broken:
            self.save(config)
        return config

    def save(self, config: ScheduleConfig) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.to_record(), f, indent=2)
        except OSError:
            logger.exception("Failed to save %s", self.path)
