"""Tests for YAML configuration loading and environment variable expansion."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from fcmpush.config import (
    CONFIG_PATH_ENV,
    Settings,
    expand_env_vars,
    get_settings,
    load_config_from_yaml,
)


class TestExpandEnvVars:
    """Tests for environment variable expansion in configuration."""

    def test_expand_simple_env_var(self, monkeypatch) -> None:
        """Test expansion of a single environment variable."""
        monkeypatch.setenv("TEST_VAR", "test_value")
        result = expand_env_vars("key: ${TEST_VAR}")
        assert result == "key: test_value"

    def test_expand_multiple_env_vars(self, monkeypatch) -> None:
        """Test expansion of multiple environment variables."""
        monkeypatch.setenv("VAR1", "value1")
        monkeypatch.setenv("VAR2", "value2")
        result = expand_env_vars("first: ${VAR1}\nsecond: ${VAR2}")
        assert result == "first: value1\nsecond: value2"

    def test_missing_env_var_raises_error(self) -> None:
        """Test that missing environment variable raises KeyError."""
        with pytest.raises(KeyError) as exc_info:
            expand_env_vars("key: ${NONEXISTENT_VAR}")
        assert "NONEXISTENT_VAR" in str(exc_info.value)
        assert "not set" in str(exc_info.value)

    def test_comment_lines_not_expanded(self) -> None:
        """Placeholders in comments are left alone, even when unset."""
        input_str = "# api_key: ${NONEXISTENT_VAR}\nkey: value"
        assert expand_env_vars(input_str) == input_str

    def test_no_env_vars_in_string(self) -> None:
        """Test that string without env vars is returned unchanged."""
        input_str = "key: value\nother: 123"
        assert expand_env_vars(input_str) == input_str


class TestLoadConfigFromYaml:
    """Tests for loading and parsing YAML configuration."""

    def test_load_valid_yaml_config(self, tmp_path: Path, monkeypatch) -> None:
        """Test loading a valid YAML configuration file."""
        monkeypatch.setenv("LEGACY_KEY", "server-key")
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            """
environment: staging

gcp:
  project_id: my-project

legacy:
  api_key: ${LEGACY_KEY}
"""
        )

        config = load_config_from_yaml(config_path)

        assert config["environment"] == "staging"
        assert config["gcp"]["project_id"] == "my-project"
        assert config["legacy"]["api_key"] == "server-key"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match=CONFIG_PATH_ENV):
            load_config_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        """Test that invalid YAML raises ValueError."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("gcp: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_from_yaml(config_path)

    def test_unset_variable_raises_value_error(self, tmp_path: Path) -> None:
        """Test that an unset ${VAR} surfaces as ValueError."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("legacy:\n  api_key: ${NONEXISTENT_VAR}\n")

        with pytest.raises(ValueError, match="NONEXISTENT_VAR"):
            load_config_from_yaml(config_path)

    def test_non_mapping_root_raises(self, tmp_path: Path) -> None:
        """Test that a list at the root is rejected."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config_from_yaml(config_path)

    def test_empty_file_is_empty_config(self, tmp_path: Path) -> None:
        """Test that an empty file yields an empty dict."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")

        assert load_config_from_yaml(config_path) == {}


class TestSettings:
    """Tests for Settings defaults, environment overrides and YAML mapping."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.environment == "development"
        assert settings.credential_source == "env"
        assert settings.credentials_dir == Path("data/gcp")
        assert settings.legacy_endpoint == "https://fcm.googleapis.com/fcm/send"
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("FCMPUSH_ENVIRONMENT", "production")
        monkeypatch.setenv("FCMPUSH_GCP_PROJECT_ID", "prod-project")
        monkeypatch.setenv("FCMPUSH_CREDENTIAL_SOURCE", "identity_pool")
        monkeypatch.setenv("FCMPUSH_LOG_JSON", "false")

        settings = get_settings()

        assert settings.environment == "production"
        assert settings.gcp_project_id == "prod-project"
        assert settings.credential_source == "identity_pool"
        assert settings.log_json is False

    def test_log_level_normalized(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown log level"):
            Settings(log_level="loud")

    def test_unknown_credential_source_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("FCMPUSH_CREDENTIAL_SOURCE", "vault")

        with pytest.raises(ValidationError):
            get_settings()

    def test_yaml_sections_map_to_fields(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            """
environment: production
gcp:
  project_id: my-project
  credentials_dir: /etc/fcmpush
credentials:
  source: embedded
identity_pool:
  project_number: 123456789
  pool_id: aws-pool
  provider_id: aws-provider
  service_account: sender@my-project.iam.gserviceaccount.com
  aws_region: us-east-1
legacy:
  api_key: server-key
  timeout_seconds: 5
logging:
  level: warning
  json: false
"""
        )

        settings = get_settings(config_path)

        assert settings.environment == "production"
        assert settings.gcp_project_id == "my-project"
        assert settings.credentials_dir == Path("/etc/fcmpush")
        assert settings.credential_source == "embedded"
        assert settings.identity_pool_project_number == "123456789"
        assert settings.identity_pool_id == "aws-pool"
        assert settings.aws_region == "us-east-1"
        assert settings.legacy_api_key == "server-key"
        assert settings.legacy_timeout_seconds == 5.0
        assert settings.log_level == "WARNING"
        assert settings.log_json is False

    def test_config_path_from_env(self, tmp_path: Path, monkeypatch) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("environment: staging\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))

        assert get_settings().environment == "staging"

    def test_settings_read_per_call(self, monkeypatch) -> None:
        monkeypatch.setenv("FCMPUSH_ENVIRONMENT", "staging")
        first = get_settings()
        monkeypatch.setenv("FCMPUSH_ENVIRONMENT", "production")

        assert first.environment == "staging"
        assert get_settings().environment == "production"
        assert "FCMPUSH_ENVIRONMENT" in os.environ
