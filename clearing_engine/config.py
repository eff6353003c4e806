"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get("CLEARING_ENGINE_BASE_PATH", Path.cwd()))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Lettrage (clearing) parameters
    clearing_tolerance_cents: int = Field(default=1, ge=0)
    lettrage_max_group_size: int = Field(default=6, ge=2)
    lettrage_combination_window: int = Field(default=12, ge=1)
    lettrage_date_window_days: int = Field(default=90, ge=1)
    lettrage_group_by_third_party: bool = Field(default=True)

    # Bank matching parameters
    bank_amount_tolerance_cents: int = Field(default=1, ge=0)
    date_tolerance_days: int = Field(default=5, ge=0)
    bank_match_threshold: float = Field(default=0.5)
    amount_base_weight: float = Field(default=0.3)
    date_weight: float = Field(default=0.7)
    reference_exact_bonus: float = Field(default=0.3)
    label_prefix_bonus: float = Field(default=0.1)
    label_prefix_length: int = Field(default=10, ge=1)

    # Chart of accounts (SYSCOHADA)
    treasury_account_prefix: str = Field(default="5")
    default_bank_account: str = Field(default="5211")

    # Query limits
    history_limit: int = Field(default=50)
    line_query_limit: int = Field(default=500)

    # Storage
    reports_dir: Path = Field(default=Path("./data/reports"))

    def is_treasury_account(self, account: str) -> bool:
        """SYSCOHADA class 5 accounts hold bank and cash balances."""
        return account.startswith(self.treasury_account_prefix)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
