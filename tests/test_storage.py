import json

from shieldbot.storage import ConfigStore, ScheduleConfig
from tests.conftest import utc


def write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


def read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class TestConfigStoreLoad:
    def test_missing_files_give_builtin_defaults(self, config_path):
        config = ConfigStore(config_path, defaults_path=None, env={}).load()
        assert config == ScheduleConfig()

    def test_env_beats_saved_beats_defaults_per_field(self, tmp_path, config_path):
        defaults_path = str(tmp_path / "config.defaults.json")
        write_json(defaults_path, {"cycleDays": 6, "pingHoursBefore": 12, "unshieldedHours": 3, "pingRoleId": "111"})
        write_json(config_path, {"cycleDays": 5, "pingHoursBefore": 10, "targetChannelId": "222"})
        env = {"CYCLE_DAYS": "4", "PING_ROLE_ID": "333"}

        config = ConfigStore(config_path, defaults_path, env=env).load()

        assert config.cycle_days == 4
        assert config.ping_hours_before == 10
        assert config.unshielded_hours == 3
        assert config.target_channel_id == "222"
        assert config.ping_role_id == "333"

    def test_env_drop_instant_overrides_saved(self, config_path):
        write_json(config_path, {"nextShieldDropISO": "2026-01-01T00:00:00.000Z"})
        env = {"NEXT_SHIELD_DROP_ISO": "2026-02-13T16:31:00Z"}
        config = ConfigStore(config_path, defaults_path=None, env=env).load()
        assert config.next_drop == utc(2026, 2, 13, 16, 31)

    def test_non_integer_value_falls_through_to_lower_layer(self, config_path):
        write_json(config_path, {"cycleDays": 6})
        config = ConfigStore(config_path, defaults_path=None, env={"CYCLE_DAYS": "weekly"}).load()
        assert config.cycle_days == 6

    def test_corrupt_drop_is_cleared_and_persisted(self, config_path):
        write_json(config_path, {"cycleDays": 6, "nextShieldDropISO": "not-a-date"})

        config = ConfigStore(config_path, defaults_path=None, env={}).load()

        assert config.next_drop is None
        saved = read_json(config_path)
        assert saved["nextShieldDropISO"] is None
        assert saved["cycleDays"] == 6

    def test_out_of_range_drop_is_cleared(self, config_path):
        write_json(config_path, {"nextShieldDropISO": "0001-01-01T00:00:00+05:00"})

        config = ConfigStore(config_path, defaults_path=None, env={}).load()

        assert config.next_drop is None
        assert read_json(config_path)["nextShieldDropISO"] is None

    def test_unreadable_file_is_ignored(self, config_path):
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("{ not json")
        assert ConfigStore(config_path, defaults_path=None, env={}).load() == ScheduleConfig()


class TestConfigStoreSave:
    def test_save_rewrites_whole_record(self, config_path):
        store = ConfigStore(config_path, defaults_path=None, env={})
        config = ScheduleConfig(
            target_channel_id="222",
            ping_role_id="333",
            cycle_days=6,
            next_drop=utc(2026, 2, 13, 16, 31),
            notified_drop=utc(2026, 2, 6, 16, 31),
        )

        store.save(config)

        assert read_json(config_path) == {
            "targetChannelId": "222",
            "pingRoleId": "333",
            "cycleDays": 6,
            "pingHoursBefore": 24,
            "unshieldedHours": 2,
            "nextShieldDropISO": "2026-02-13T16:31:00Z",
            "lastPingedForDropISO": "2026-02-06T16:31:00Z",
        }
        assert store.load() == config
