"""Tests for BillingConfig and the configuration singleton."""

import pytest

from licensebill.config import BillingConfig, get_config, reset_config, set_config
from licensebill.exceptions import ConfigurationError


class TestBillingConfig:

    def test_defaults(self):
        config = BillingConfig()

        assert config.decimal_places == 2
        assert config.strict_mode is False
        assert config.default_currency == "ZAR"
        assert config.default_installment_months == 12
        assert config.cache_enabled is True
        assert config.cache_max_size == 10000

    def test_invalid_decimal_places(self):
        with pytest.raises(ConfigurationError) as exc_info:
            BillingConfig(decimal_places=-1)
        assert exc_info.value.error_code == "LB_CONFIG_CONFIGURATION_ERROR"

    def test_invalid_installment_months(self):
        with pytest.raises(ConfigurationError):
            BillingConfig(default_installment_months=0)


class TestFromEnv:

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("LB_BILLING_DECIMAL_PLACES", "4")
        monkeypatch.setenv("LB_BILLING_STRICT_MODE", "Yes")
        monkeypatch.setenv("LB_BILLING_DEFAULT_CURRENCY", "USD")
        monkeypatch.setenv("LB_BILLING_CACHE_ENABLED", "false")

        config = BillingConfig.from_env()

        assert config.decimal_places == 4
        assert config.strict_mode is True
        assert config.default_currency == "USD"
        assert config.cache_enabled is False

    def test_invalid_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("LB_BILLING_CACHE_MAX_SIZE", "lots")
        assert BillingConfig.from_env().cache_max_size == 10000

    @pytest.mark.parametrize("name,value,field,default", [
        ("DECIMAL_PLACES", "-3", "decimal_places", 2),
        ("DEFAULT_INSTALLMENT_MONTHS", "0", "default_installment_months", 12),
        ("CACHE_MAX_SIZE", "2.5", "cache_max_size", 10000),
        ("STRICT_MODE", "maybe", "strict_mode", False),
        ("DEFAULT_CURRENCY", "  ", "default_currency", "ZAR"),
    ])
    def test_invalid_values_fall_back(self, monkeypatch, caplog, name, value, field, default):
        monkeypatch.setenv(f"LB_BILLING_{name}", value)

        config = BillingConfig.from_env()

        assert getattr(config, field) == default
        assert field in caplog.text

    def test_get_config_builds_from_env(self, monkeypatch):
        monkeypatch.setenv("LB_BILLING_DEFAULT_INSTALLMENT_MONTHS", "24")
        reset_config()
        assert get_config().default_installment_months == 24


class TestFromYaml:

    def test_loads_mapping(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("decimal_places: 3\nstrict_mode: true\nunknown_key: 1\n")

        config = BillingConfig.from_yaml(path)

        assert config.decimal_places == 3
        assert config.strict_mode is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot load"):
            BillingConfig.from_yaml(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            BillingConfig.from_yaml(path)

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("")
        assert BillingConfig.from_yaml(path) == BillingConfig()

    def test_invalid_values_fall_back(self, tmp_path, caplog):
        path = tmp_path / "billing.yaml"
        path.write_text(
            "decimal_places: -1\n"
            "default_installment_months: twelve\n"
            "cache_enabled: sometimes\n"
            "default_currency: USD\n"
        )

        config = BillingConfig.from_yaml(path)

        assert config.decimal_places == 2
        assert config.default_installment_months == 12
        assert config.cache_enabled is True
        assert config.default_currency == "USD"
        assert "decimal_places" in caplog.text

    def test_quoted_values_converted(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text('strict_mode: "false"\ndecimal_places: "4"\n')

        config = BillingConfig.from_yaml(path)

        assert config.strict_mode is False
        assert config.decimal_places == 4


class TestSingleton:

    def test_set_and_get(self):
        config = BillingConfig(strict_mode=True)
        set_config(config)
        assert get_config() is config

    def test_reset_creates_new_instance(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
