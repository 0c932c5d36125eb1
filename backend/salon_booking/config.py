# backend/salon_booking/config.py

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/booking.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # Slot engine
    slot_step_minutes: int = 15
    horizon_days: int = 60
    min_advance_minutes: int = 60

    # Payment hold lifetime (AWAITING_PAYMENT)
    payment_hold_minutes: int = 15
    hold_sweep_interval_seconds: int = 60
    payment_currency: str = "usd"
    stripe_api_key: str | None = None

    # No-show risk policy weights
    risk_base_score: int = 20
    risk_short_lead_hours: int = 24
    risk_short_lead_points: int = 15
    risk_very_short_lead_hours: int = 3
    risk_very_short_lead_points: int = 25
    risk_long_lead_days: int = 14
    risk_long_lead_points: int = 10
    risk_first_time_points: int = 25
    risk_new_account_days: int = 7
    risk_new_account_points: int = 10
    risk_high_price_threshold: float = 100.0
    risk_high_price_points: int = 15
    risk_no_show_points: int = 20
    risk_no_show_cap: int = 60
    risk_history_points: int = 3
    risk_history_cap: int = 30
    min_deposit_amount: float = Field(default=0.50, ge=0)

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite paths are anchored at the repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
