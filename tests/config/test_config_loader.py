"""
Tests for silver_config: loading, validation, the config trace log and the
bridge into the kernel's BillingPolicy.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from silver_config import DEFAULT_CONFIG_PATH, get_active_config
from silver_config import bridges
from silver_config.bridges import build_billing_policy, build_billing_service
from silver_config.loader import compute_checksum, load_yaml_file, parse_channel, parse_config
from silver_kernel.domain.policy import BalanceStrategyKind, CustomerRemoval, default_billing_policy


@pytest.fixture
def raw_config():
    return load_yaml_file(DEFAULT_CONFIG_PATH)


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "billing.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True))
    return path


class TestDefaults:

    def test_packaged_defaults_load(self):
        config = get_active_config()
        assert [c.name for c in config.channels] == ["regular", "wholesale"]
        assert config.voucher.max_sequence == 9999
        assert config.voucher.timezone == "Asia/Kolkata"
        assert config.tax.cgst_percent == Decimal("1.5")
        assert config.database.lock_timeout_ms == 5000
        assert config.logging.level == "INFO"
        assert config.channel("wholesale").identify_by_phone_only

    def test_trace_is_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "SILVER_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["channels"] == ["regular", "wholesale"]
        assert traces[0]["max_voucher_sequence"] == 9999

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_custom_file(self, tmp_path, raw_config):
        raw_config["voucher"]["max_sequence"] = 50
        config = get_active_config(_write(tmp_path, raw_config))
        assert config.voucher.max_sequence == 50


class TestValidation:

    def test_missing_channels(self, raw_config):
        del raw_config["channels"]
        with pytest.raises(KeyError):
            parse_config(raw_config)

    def test_missing_database(self, raw_config):
        del raw_config["database"]
        with pytest.raises(KeyError):
            parse_config(raw_config)

    def test_empty_channels(self, raw_config):
        raw_config["channels"] = []
        with pytest.raises(ValueError, match="at least one channel"):
            parse_config(raw_config)

    def test_duplicate_prefix(self, raw_config):
        raw_config["channels"][1]["voucher_prefix"] = "REG"
        with pytest.raises(ValueError, match="distinct voucher prefixes"):
            parse_config(raw_config)

    def test_duplicate_name(self, raw_config):
        raw_config["channels"][1]["name"] = "regular"
        with pytest.raises(ValueError, match="duplicate channel names"):
            parse_config(raw_config)

    @pytest.mark.parametrize("max_sequence", [0, 10000])
    def test_voucher_limit_range(self, raw_config, max_sequence):
        raw_config["voucher"]["max_sequence"] = max_sequence
        with pytest.raises(ValueError, match="max_sequence"):
            parse_config(raw_config)

    def test_negative_tax(self, raw_config):
        raw_config["tax"]["cgst_percent"] = "-1"
        with pytest.raises(ValueError, match="negative"):
            parse_config(raw_config)

    def test_non_numeric_tax(self, raw_config):
        raw_config["tax"]["sgst_percent"] = "one and a half"
        with pytest.raises(ValueError, match="expected a number"):
            parse_config(raw_config)

    def test_log_level_normalized(self, raw_config):
        raw_config["logging"] = {"level": "debug"}
        assert parse_config(raw_config).logging.level == "DEBUG"

    def test_unknown_log_level(self, raw_config):
        raw_config["logging"] = {"level": "chatty"}
        with pytest.raises(ValueError, match="logging.level"):
            parse_config(raw_config)

    def test_logging_section_optional(self, raw_config):
        del raw_config["logging"]
        assert parse_config(raw_config).logging.level == "INFO"

    @pytest.mark.parametrize(
        "override",
        [
            {"voucher_prefix": "reg"},
            {"voucher_prefix": "R1"},
            {"balance_strategy": "running_total"},
            {"customer_removal": "archive"},
        ],
    )
    def test_bad_channel_values(self, override):
        data = {"name": "retail", "voucher_prefix": "RT", "balance_strategy": "derived_sum"}
        data.update(override)
        with pytest.raises(ValueError):
            parse_channel(data)

    def test_channel_requires_strategy(self):
        with pytest.raises(KeyError):
            parse_channel({"name": "retail", "voucher_prefix": "RT"})

    def test_null_prefix_is_empty(self):
        channel = parse_channel(
            {"name": "trade", "voucher_prefix": None, "balance_strategy": "cached_field"}
        )
        assert channel.voucher_prefix == ""
        assert channel.customer_removal == "deactivate"


class TestChecksum:

    def test_deterministic(self, raw_config):
        assert compute_checksum(raw_config) == compute_checksum(dict(reversed(raw_config.items())))

    def test_changes_with_content(self, raw_config):
        before = compute_checksum(raw_config)
        raw_config["voucher"]["max_sequence"] = 100
        assert compute_checksum(raw_config) != before


class TestBridges:

    def test_policy_matches_builtin_default(self):
        built = build_billing_policy(get_active_config())
        default = default_billing_policy()

        assert built.channel_names == default.channel_names
        for name in default.channel_names:
            assert built.channel(name) == default.channel(name)
        assert built.default_tax == default.default_tax
        assert built.max_voucher_sequence == default.max_voucher_sequence
        assert built.timezone == default.timezone

    def test_policy_types(self):
        built = build_billing_policy(get_active_config())
        wholesale = built.channel("wholesale")
        assert wholesale.balance_strategy is BalanceStrategyKind.CACHED_FIELD
        assert built.channel("regular").customer_removal is CustomerRemoval.DELETE
        assert not built.default_tax.applicable

    def test_build_billing_service(self, monkeypatch, db_engine, deterministic_clock):
        monkeypatch.setattr(bridges, "init_engine_from_config", lambda database: db_engine)
        billing = build_billing_service(get_active_config(), clock=deterministic_clock)
        assert billing.policy.channel_names == ("regular", "wholesale")
