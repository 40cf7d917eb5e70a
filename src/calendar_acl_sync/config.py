"""Configuration management for Calendar ACL Sync application."""

from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sync.strategies import ReconcilePolicy, RoleMismatchPolicy

load_dotenv()


class DatabaseConfig(BaseSettings):
    """Roster database configuration."""

    url: Optional[str] = Field(None, validation_alias="DATABASE_URL")
    pool_size: int = Field(default=5, validation_alias="DATABASE_POOL_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",  # Treat empty string as None
    )


class WpsConfig(BaseSettings):
    """WPS open platform (calendar API) configuration."""

    base_url: str = Field(default="https://openapi.wps.cn", validation_alias="WPS_BASE_URL")
    client_id: Optional[str] = Field(None, validation_alias="WPS_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="WPS_CLIENT_SECRET")
    # Seconds per HTTP request
    timeout: float = Field(default=30.0, validation_alias="WPS_TIMEOUT")
    # "external" means user ids are the school's own ids (gh / xh)
    id_type: str = Field(default="external", validation_alias="WPS_ID_TYPE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",
    )


class AppConfig(BaseSettings):
    """Application configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    wps: WpsConfig = Field(default_factory=WpsConfig)

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, validation_alias="LOG_FILE")

    # Sync settings
    sync_max_concurrency: int = Field(default=5, ge=1, validation_alias="SYNC_MAX_CONCURRENCY")
    sync_apply_removals: bool = Field(default=False, validation_alias="SYNC_APPLY_REMOVALS")
    sync_role_mismatch: RoleMismatchPolicy = Field(
        default=RoleMismatchPolicy.IGNORE, validation_alias="SYNC_ROLE_MISMATCH"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


class SyncConfig:
    """Optional sync overrides loaded from YAML.

    Example::

        sync:
          max_concurrency: 3
          apply_removals: true
          role_mismatch: report
        skip_courses:
          - "2024-2025-1-ABC123-01"
    """

    def __init__(self, config_path: Path = Path("sync_config.yaml")):
        self.max_concurrency: Optional[int] = None
        self.apply_removals: Optional[bool] = None
        self.role_mismatch: Optional[RoleMismatchPolicy] = None
        self.skip_courses: set[str] = set()

        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            sync_data = data.get("sync", {}) or {}
            self.max_concurrency = sync_data.get("max_concurrency")
            self.apply_removals = sync_data.get("apply_removals")
            if sync_data.get("role_mismatch"):
                self.role_mismatch = RoleMismatchPolicy(sync_data["role_mismatch"])
            self.skip_courses = {str(s).strip() for s in data.get("skip_courses", []) or []}

    def reconcile_policy(self, app_config: AppConfig) -> ReconcilePolicy:
        """Merge YAML overrides on top of the environment settings."""
        return ReconcilePolicy(
            apply_removals=(
                self.apply_removals
                if self.apply_removals is not None
                else app_config.sync_apply_removals
            ),
            role_mismatch=self.role_mismatch or app_config.sync_role_mismatch,
        )

    def max_concurrency_for(self, app_config: AppConfig) -> int:
        return self.max_concurrency or app_config.sync_max_concurrency


# Global config instances
config = AppConfig()
sync_config = SyncConfig()
