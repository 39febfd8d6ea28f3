"""Typed configuration models for bootseq runtime settings."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "bootseq" / "bootseq.yaml"

# Runlevels span 0 (halt) through 6 (reboot).
MIN_RUNLEVEL = 0
MAX_RUNLEVEL = 6


class LoggingSettings(BaseModel):
    """Structured logging configuration for the boot process."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = True
    service: str = "bootseq"
    environment: str = "dev"


class BootSettings(BaseModel):
    """Pipeline timing, verification and runlevel bring-up settings."""

    stage_timeout_seconds: float | None = Field(default=30.0, gt=0)
    verify_each_stage: bool = True
    start_runlevel: int = Field(default=1, ge=MIN_RUNLEVEL, le=MAX_RUNLEVEL)
    target_runlevel: int = Field(default=5, ge=MIN_RUNLEVEL, le=MAX_RUNLEVEL)
    reboot_delay_seconds: float = Field(default=0.5, ge=0)

    @model_validator(mode="after")
    def _check_runlevel_range(self) -> BootSettings:
        """Reject bring-up ranges that would walk runlevels backwards."""
        if self.start_runlevel > self.target_runlevel:
            raise ValueError(
                "boot.start_runlevel must not exceed boot.target_runlevel "
                f"({self.start_runlevel} > {self.target_runlevel})"
            )
        return self


class BootseqSettings(BaseSettings):
    """Root runtime settings resolved from init/env/yaml/defaults sources."""

    model_config = SettingsConfigDict(
        env_prefix="BOOTSEQ_",
        env_nested_delimiter="__",
        extra="ignore",
        nested_model_default_partial_update=True,
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    boot: BootSettings = Field(default_factory=BootSettings)

    _config_path: ClassVar[Path] = DEFAULT_CONFIG_PATH

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Apply bootseq precedence: init > env > yaml > model defaults."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=cls._config_path,
                yaml_file_encoding="utf-8",
            ),
        )
