"""FundSync - Central Configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Storyblok Management API ──
    storyblok_access_token: str = ""
    storyblok_space_id: str = ""
    storyblok_base_url: str = "https://mapi.storyblok.com/v1"
    store_timeout_seconds: float = 30.0

    # ── Raisely ──
    webhook_secret: Optional[str] = None
    profile_base_url: Optional[str] = None  # e.g. https://my-campaign.raisely.com
    default_campaign_name: str = "Default Campaign"

    # ── Tree resolution ──
    conflict_backoff_seconds: float = 1.0
    store_list_page_size: int = 100

    # ── Bulk sync ──
    bulk_data_path: Optional[str] = None
    bulk_batch_size: int = 5
    bulk_delay_seconds: float = 1.0

    # ── App ──
    environment: str = "production"  # development | production
    log_level: str = "INFO"
    scheduler_enabled: bool = False
    bulk_sync_hour: int = 3  # Nightly re-sync at 3 AM

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
