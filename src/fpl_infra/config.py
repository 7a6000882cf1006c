"""
Configuration settings for the FPL Assistant infrastructure tooling.

Uses pydantic-settings for type-safe configuration management with
environment variable support. Every field can be set through an
``FPL_``-prefixed environment variable or a ``.env`` file, and the CLI
overrides them per invocation.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "staging", "prod"]

ENVIRONMENTS: tuple[str, ...] = ("dev", "staging", "prod")

_PROJECT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Deployment settings for one project/environment pair."""

    model_config = SettingsConfigDict(
        env_prefix="FPL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Stack identity
    project_name: str = Field(default="fpl-assistant", description="Prefix for every resource name")
    environment: Environment = Field(default="dev", description="Deployment environment")
    region: str = Field(default="us-east-1", description="AWS region to deploy into")
    aws_profile: str | None = Field(default=None, description="Named AWS CLI profile")

    # Template inputs
    image_id: str | None = Field(default=None, description="AMI for the web server")
    ami_parameter: str = Field(
        default="/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
        description="Public SSM parameter holding the latest Amazon Linux AMI",
    )
    template_file: Path | None = Field(
        default=None,
        description="Pre-synthesized JSON template; skips CDK synthesis",
    )

    # Local state and lookups
    key_dir: Path = Field(default=Path("."), description="Directory for the private key file")
    ip_lookup_url: str = Field(default="https://checkip.amazonaws.com")
    ip_lookup_timeout: float = Field(default=10.0, description="Seconds to wait for the IP lookup")

    log_level: str = Field(default="INFO")

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        # Used verbatim in S3 bucket names
        if not _PROJECT_NAME_PATTERN.match(v):
            raise ValueError(
                "Project name must use lowercase letters, digits and hyphens"
            )
        return v

    @field_validator("ip_lookup_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("IP lookup timeout must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @property
    def prefix(self) -> str:
        """Naming prefix shared by the stack, key pair and resources."""
        return f"{self.project_name}-{self.environment}"

    @property
    def stack_name(self) -> str:
        return f"{self.prefix}-infrastructure"

    @property
    def key_name(self) -> str:
        return f"{self.prefix}-key"

    @property
    def key_file(self) -> Path:
        """Where the generated private key is written."""
        return self.key_dir / f"{self.key_name}.pem"

    def table_names(self) -> list[str]:
        return [f"{self.prefix}-{table}" for table in ("players", "fixtures", "teams")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
