"""Environment settings and run options for lambda_ci."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import boto3
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_core import PydanticCustomError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .build import DEFAULT_BUILD_STEPS, BuildStep
from .errors import ConfigError


class Settings(BaseSettings):
    """Credentials and stack identity, read from the CI task's environment."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    access_key_id: str
    secret_access_key: SecretStr
    region_name: str
    stack_name: str
    s3_host: str = "s3.amazonaws.com"

    @field_validator("access_key_id", "secret_access_key", "region_name", "stack_name", mode="before")
    @classmethod
    def _not_empty(cls, value):
        if isinstance(value, str) and not value.strip():
            raise PydanticCustomError("empty", "must not be empty")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings, turning unset or empty variables into a single ConfigError."""
        try:
            return cls()
        except ValidationError as e:
            missing = [
                str(err["loc"][0]) for err in e.errors() if err.get("type") in ("missing", "empty")
            ]
            if missing:
                raise ConfigError(
                    f"Missing required environment variable(s): {', '.join(missing)}"
                ) from e
            raise ConfigError(f"Invalid environment: {e}") from e

    def session(self) -> boto3.Session:
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key.get_secret_value(),
            region_name=self.region_name,
        )


class RunOptions(BaseModel):
    """Local layout, packaging and polling budget for one run."""

    release_dir: Path = Field(default_factory=Path.cwd)
    output_dir: Path = Field(default_factory=Path.cwd)

    skip_build: bool = False
    build_steps: list[BuildStep] = Field(default_factory=lambda: list(DEFAULT_BUILD_STEPS))

    # Relative to release_dir; the first file is the test binary, the second the CLI it drives
    package_files: list[Path] = Field(
        default_factory=lambda: [Path("integration/integration.test"), Path("out/s3cli")]
    )
    handler_asset: Optional[Path] = None
    test_args: list[str] = Field(default_factory=list)
    zip_name: str = "payload.zip"

    function_prefix: str = "s3cli-integration"
    runtime: str = "python3.9"
    handler: str = "lambda_function.test_runner_handler"
    timeout: int = 300

    poll_interval: float = 2.0
    activation_attempts: int = 30
    log_stream_retries: int = 5
    log_event_attempts: int = 20

    log_file: str = "lambda_output.log"
    result_file: str = "lambda_output.json"

    @property
    def log_path(self) -> Path:
        return self.output_dir / self.log_file

    @property
    def result_path(self) -> Path:
        return self.output_dir / self.result_file

    @property
    def zip_path(self) -> Path:
        return self.release_dir / self.zip_name

    def resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.release_dir / path
