import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

ENV_TRACE_ENDPOINT = "TRACE_ENDPOINT"
ENV_SERVICE_NAME = "REQFLOW_SERVICE_NAME"
ENV_LOG_LEVEL = "REQFLOW_LOG_LEVEL"
ENV_TIMEOUT = "REQFLOW_TIMEOUT"


class Config(BaseModel):
    """Process-level settings owned by the hosting application."""

    trace_endpoint: Optional[str] = None
    service_name: str = "server"
    log_level: str = "INFO"
    default_timeout: float = Field(default=5.0, gt=0)

    @field_validator("trace_endpoint")
    @classmethod
    def _empty_endpoint_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from environment variables, keeping defaults for unset ones."""
        values: dict[str, str] = {}
        for env_var, field_name in (
            (ENV_TRACE_ENDPOINT, "trace_endpoint"),
            (ENV_SERVICE_NAME, "service_name"),
            (ENV_LOG_LEVEL, "log_level"),
            (ENV_TIMEOUT, "default_timeout"),
        ):
            value = os.getenv(env_var)
            if value is not None:
                values[field_name] = value
        return cls.model_validate(values)
