from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "FCMPUSH_CONFIG_PATH"


def expand_env_vars(config_str: str) -> str:
    """
    Expand environment variables in the format ${VAR_NAME} within a YAML string.
    Skips expansion in YAML comments (lines starting with #).

    Args:
        config_str: YAML configuration string potentially containing ${VAR_NAME} placeholders

    Returns:
        YAML string with all ${VAR_NAME} placeholders expanded to environment variable values

    Raises:
        KeyError: If a referenced environment variable is not set
    """
    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        try:
            return os.environ[var_name]
        except KeyError:
            msg = f"Environment variable '{var_name}' referenced in config file but not set"
            raise KeyError(msg) from None

    lines = []
    for line in config_str.split('\n'):
        stripped = line.lstrip()
        if stripped.startswith('#'):
            lines.append(line)
        else:
            lines.append(re.sub(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}", replace_var, line))

    return '\n'.join(lines)


def load_config_from_yaml(config_path: str | Path) -> dict:
    """
    Load a YAML configuration file and expand environment variables.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dictionary containing the parsed configuration

    Raises:
        FileNotFoundError: If config file is not found
        ValueError: If the YAML is invalid, not a mapping, or references unset variables
    """
    config_file = Path(config_path)
    if not config_file.exists():
        msg = (
            f"Configuration file not found at {config_path}\n"
            f"Unset {CONFIG_PATH_ENV} to configure from environment variables only."
        )
        raise FileNotFoundError(msg)

    with open(config_file) as f:
        config_str = f.read()

    try:
        expanded_config = expand_env_vars(config_str)
    except KeyError as e:
        msg = f"Error expanding environment variables in {config_file.name}: {e}"
        raise ValueError(msg) from None

    try:
        config_dict = yaml.safe_load(expanded_config)
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {config_file.name}: {e}"
        raise ValueError(msg) from None

    if config_dict is None:
        return {}

    if not isinstance(config_dict, dict):
        msg = f"{config_file.name} must contain a YAML mapping/dictionary at root level"
        raise ValueError(msg)

    return config_dict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FCMPUSH_",
        env_file=None,
        case_sensitive=False,
    )

    # Deployment environment; selects the embedded credential file
    environment: str = "development"

    # Firebase project
    gcp_project_id: str | None = None
    credentials_dir: Path = Field(
        default=Path("data/gcp"),
        description="Directory holding workload_identity_pool_credentials_<env>.json files",
    )

    # Credential source used on the normal (non dry-run) path
    credential_source: Literal["embedded", "env", "identity_pool"] = "env"
    service_account_key_var: str = Field(
        default="GOOGLE_SERVICE_ACCOUNT_KEY",
        description="Name of the environment variable holding a raw service-account key",
    )

    # Workload identity federation (AWS -> GCP)
    identity_pool_project_number: str = ""
    identity_pool_id: str = ""
    identity_pool_provider_id: str = ""
    identity_pool_service_account: str = ""
    aws_region: str = "eu-west-1"

    # Legacy HTTP transport
    legacy_api_key: str | None = None
    legacy_endpoint: str = "https://fcm.googleapis.com/fcm/send"
    legacy_timeout_seconds: float = 10.0

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("log_level", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Reject levels the logging module does not know."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level


def _flatten_yaml_config(config_dict: dict) -> dict:
    """Map the nested YAML layout onto flat Settings field names."""
    flat_config: dict = {}

    if "environment" in config_dict:
        flat_config["environment"] = config_dict["environment"]

    gcp = config_dict.get("gcp")
    if isinstance(gcp, dict):
        if "project_id" in gcp:
            flat_config["gcp_project_id"] = gcp["project_id"]
        if "credentials_dir" in gcp:
            flat_config["credentials_dir"] = gcp["credentials_dir"]

    credentials = config_dict.get("credentials")
    if isinstance(credentials, dict):
        if "source" in credentials:
            flat_config["credential_source"] = credentials["source"]
        if "service_account_key_var" in credentials:
            flat_config["service_account_key_var"] = credentials["service_account_key_var"]

    pool = config_dict.get("identity_pool")
    if isinstance(pool, dict):
        for key, field in (
            ("project_number", "identity_pool_project_number"),
            ("pool_id", "identity_pool_id"),
            ("provider_id", "identity_pool_provider_id"),
            ("service_account", "identity_pool_service_account"),
            ("aws_region", "aws_region"),
        ):
            if key in pool:
                flat_config[field] = str(pool[key])

    legacy = config_dict.get("legacy")
    if isinstance(legacy, dict):
        if "api_key" in legacy:
            flat_config["legacy_api_key"] = legacy["api_key"]
        if "endpoint" in legacy:
            flat_config["legacy_endpoint"] = legacy["endpoint"]
        if "timeout_seconds" in legacy:
            flat_config["legacy_timeout_seconds"] = legacy["timeout_seconds"]

    logging_section = config_dict.get("logging")
    if isinstance(logging_section, dict):
        if "level" in logging_section:
            flat_config["log_level"] = logging_section["level"]
        if "json" in logging_section:
            flat_config["log_json"] = logging_section["json"]

    return flat_config


def get_settings(config_path: str | Path | None = None) -> Settings:
    """
    Build settings from the environment, overlaid with an optional YAML file.

    Settings are read at call time and not cached, so changes to the
    environment are picked up by the next send.

    Args:
        config_path: YAML file path. Defaults to $FCMPUSH_CONFIG_PATH if set.

    Returns:
        Validated Settings
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_PATH_ENV) or None

    flat_config: dict = {}
    if config_path is not None:
        flat_config = _flatten_yaml_config(load_config_from_yaml(config_path))

    try:
        return Settings(**flat_config)
    except ValidationError as e:
        logger.error("Configuration validation error", extra={"errors": e.errors()})
        raise
