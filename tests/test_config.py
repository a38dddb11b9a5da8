"""Tests for configuration loading, environment overrides and validation."""

from pathlib import Path

import pytest

from deadline_notifier.config import (
    AppConfig,
    ConfigurationError,
    DeliveryConfig,
    ScheduleConfig,
    load_config,
    load_environment_config,
    validate_config_file,
)
from deadline_notifier.config.validators import check_for_warnings

ENV_VARS = (
    "DATABASE_URL",
    "CASES_DATABASE_URL",
    "GMAIL_CREDENTIALS_PATH",
    "GMAIL_TOKEN_PATH",
    "EMAIL_REMETENTE",
    "NOME_REMETENTE",
    "EMAIL_OUVIDORIA_GERAL",
    "EMAIL_PADRAO_SECRETARIAS",
    "LOG_LEVEL",
)

VALID_YAML = """
schedule:
  run_at: "07:45"
  timezone: America/Sao_Paulo
deadlines:
  information_request_days: 20
  default_days: 30
recipients:
  default_address: padrao@example.gov.br
  oversight_addresses: "gabinete@example.gov.br; controle@example.gov.br"
  static_directory:
    Secretaria Municipal de Saúde: smsdc@example.gov.br
delivery:
  max_attempts: 3
dispatch:
  max_workers: 4
logging:
  level: DEBUG
  format: json
"""


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the loader reads."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(VALID_YAML, encoding="utf-8")
    return path


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, clean_env, config_file):
        app_config, env_config = load_config(config_file)

        assert app_config.schedule.hour == 7
        assert app_config.schedule.minute == 45
        assert app_config.recipients.default_address == "padrao@example.gov.br"
        assert app_config.recipients.oversight_addresses == [
            "gabinete@example.gov.br",
            "controle@example.gov.br",
        ]
        assert app_config.recipients.static_directory == {
            "Secretaria Municipal de Saúde": "smsdc@example.gov.br"
        }
        assert app_config.delivery.max_attempts == 3
        assert app_config.dispatch.max_workers == 4
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == "json"
        assert env_config.database_url == "sqlite:///./data/notifications.db"
        assert env_config.cases_database_url == env_config.database_url

    def test_defaults_when_no_file(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.schedule.run_at == "08:00"
        assert app_config.schedule.timezone == "America/Sao_Paulo"
        assert app_config.deadlines.information_request_days == 20
        assert app_config.deadlines.default_days == 30
        assert len(app_config.recipients.oversight_addresses) == 3
        assert app_config.recipients.static_directory

    def test_discovers_config_in_working_directory(self, clean_env, tmp_path, config_file):
        clean_env.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.schedule.run_at == "07:45"

    def test_explicit_missing_file_raises(self, clean_env, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_uses_defaults(self, clean_env, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        app_config, _ = load_config(path)

        assert app_config == AppConfig()

    def test_invalid_yaml_syntax(self, clean_env, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("schedule:\n  run_at: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="parse YAML"):
            load_config(path)

    def test_top_level_must_be_mapping(self, clean_env, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="mapping") as exc_info:
            load_config(path)

        assert exc_info.value.source == str(path)
        assert str(exc_info.value).startswith(f"[{path}]")

    def test_validation_errors_are_collected(self, clean_env, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text(
            "schedule:\n  run_at: '25:00'\n  timezone: Mars/Olympus\ndispatch:\n  max_workers: 0\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert len(exc_info.value.errors) == 3
        assert "Validation Errors" in str(exc_info.value)


class TestEnvironmentOverrides:
    """Test environment variables applied over the YAML settings."""

    def test_environment_overrides_yaml(self, clean_env, config_file):
        clean_env.setenv("EMAIL_REMETENTE", "envio@example.gov.br")
        clean_env.setenv("NOME_REMETENTE", "Ouvidoria Teste")
        clean_env.setenv("EMAIL_OUVIDORIA_GERAL", "a@example.gov.br, b@example.gov.br")
        clean_env.setenv("EMAIL_PADRAO_SECRETARIAS", "fallback@example.gov.br")
        clean_env.setenv("DATABASE_URL", "sqlite:///./ledger.db")
        clean_env.setenv("LOG_LEVEL", "warning")

        app_config, env_config = load_config(config_file)

        assert app_config.delivery.sender_address == "envio@example.gov.br"
        assert app_config.delivery.sender_name == "Ouvidoria Teste"
        assert app_config.recipients.oversight_addresses == ["a@example.gov.br", "b@example.gov.br"]
        assert app_config.recipients.default_address == "fallback@example.gov.br"
        assert env_config.database_url == "sqlite:///./ledger.db"
        assert env_config.log_level == "WARNING"

    def test_invalid_environment_values(self, clean_env):
        clean_env.setenv("EMAIL_REMETENTE", "not-an-address")
        clean_env.setenv("EMAIL_OUVIDORIA_GERAL", "ok@example.gov.br, broken@")
        clean_env.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert len(exc_info.value.errors) == 3
        assert exc_info.value.source == "environment"

    def test_paths_default(self, clean_env):
        env_config = load_environment_config()

        assert env_config.credentials_path == Path("./data/credentials.json")
        assert env_config.token_path == Path("./data/token.json")


class TestModels:
    """Field-level validation."""

    @pytest.mark.parametrize("run_at", ["8:00", "08:00", "23:59", " 06:30 "])
    def test_run_at_accepts(self, run_at):
        assert ScheduleConfig(run_at=run_at).hour in (6, 8, 23)

    @pytest.mark.parametrize("run_at", ["24:00", "08:60", "8h", ""])
    def test_run_at_rejects(self, run_at):
        with pytest.raises(ValueError):
            ScheduleConfig(run_at=run_at)

    def test_delay_cap_below_base_rejected(self):
        with pytest.raises(ValueError):
            DeliveryConfig(base_delay_seconds=10, max_delay_seconds=5)


class TestWarnings:
    """Non-fatal configuration checks."""

    def test_empty_oversight_list_warns(self):
        warnings = check_for_warnings({"recipients": {"oversight_addresses": []}})

        assert any("digest will not be sent" in w for w in warnings)

    def test_high_worker_count_warns(self):
        assert check_for_warnings({"dispatch": {"max_workers": 15}})

    def test_clean_config_has_no_warnings(self):
        assert check_for_warnings({}) == []

    def test_warnings_emitted_on_load(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("delivery:\n  max_attempts: 1\n", encoding="utf-8")

        with pytest.warns(UserWarning, match="will not be retried"):
            load_config(path)


class TestValidateConfigFile:
    """Tests for the standalone file check."""

    def test_valid(self, config_file, capsys):
        assert validate_config_file(config_file)
        assert "is valid" in capsys.readouterr().out

    def test_invalid(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("delivery:\n  max_attempts: 99\n", encoding="utf-8")

        assert not validate_config_file(path)
        assert "validation failed" in capsys.readouterr().out
