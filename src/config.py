import os
from typing import Optional

from aws_lambda_powertools import Logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import entities

_loggers: dict[str, Logger] = {}


def get_logger(service: Optional[str] = None, level: Optional[str] = None) -> Logger:
    kwargs = {
        "json_default": entities.json_default,
        "level": level or os.environ.get("LOG_LEVEL", "INFO"),
    }
    if service:
        kwargs["service"] = service
    logger = Logger(**kwargs)
    _loggers[service or logger.service] = logger
    return logger


def set_log_level(level: str) -> None:
    """Re-level every logger handed out by get_logger so far."""
    for logger in _loggers.values():
        logger.setLevel(level)


logger = get_logger(service="config")


class Config(BaseSettings):
    model_config = SettingsConfigDict(frozen=True, env_prefix="SSO_IMPORT_")

    stack_name: str = "SsoAssignments"
    identity_store_id: str = ""
    managing_instance_arn: str = ""
    region: Optional[str] = None

    organization_file: str = "organization.yml"
    tasks_file: str = "organization-tasks.yml"
    templates_dir: str = "templates"
    temp_dir: str = ".orgformation-sso-import"
    org_formation_command: str = "org-formation"

    # The changeset name is fixed, a second run against the same stack fails on creation.
    changeset_name: str = "OrgFormationSsoImportResources"
    temp_group_name: str = "OrgFormationSsoImportTemp"

    poll_max_attempts: int = Field(default=30, ge=1)
    poll_interval_seconds: float = Field(default=1.0, ge=0)

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:  # noqa: ANN101
        return v.upper()

    @property
    def instance_is_configured(self) -> bool:  # noqa: ANN101
        return bool(self.identity_store_id and self.managing_instance_arn)


_config: Optional[Config] = None


def get_config() -> Config:
    global _config  # noqa: PLW0603
    if _config is None:
        _config = Config()  # type: ignore # noqa: PGH003
    return _config


def load_config(**overrides: object) -> Config:
    """Build the config from environment plus explicit overrides (CLI values). Empty overrides are ignored."""
    global _config  # noqa: PLW0603
    values = {key: value for key, value in overrides.items() if value not in (None, "")}
    _config = Config(**values)  # type: ignore # noqa: PGH003
    logger.debug("Configuration loaded", extra={"config": _config.model_dump()})
    return _config
