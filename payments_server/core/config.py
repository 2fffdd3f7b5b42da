"""Application configuration using pydantic settings with structured sections."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./payments.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None
    busy_timeout_seconds: float = Field(default=30.0, gt=0)


class SecuritySettings(BaseModel):
    secret_key: str = Field(default="change-me", min_length=8)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24


class LedgerSettings(BaseModel):
    default_currency: str = "INR"
    min_recharge_amount: int = Field(default=100_00, gt=0)


class PayoutSettings(BaseModel):
    """Payout bounds in the smallest currency unit (paise)."""

    min_amount: int = Field(default=500_00, gt=0)
    max_amount: int = Field(default=1_00_000_00, gt=0)


class GatewaySettings(BaseModel):
    base_url: str = "https://api.razorpay.com/v1"
    key_id: str = "rzp_test_key"
    key_secret: str = "rzp_test_secret"
    timeout_seconds: float = 10.0


class NotificationSettings(BaseModel):
    webhook_url: Optional[str] = None
    timeout_seconds: float = 5.0


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    project_name: str = "Consultation Payments Service"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    ledger: LedgerSettings = LedgerSettings()
    payouts: PayoutSettings = PayoutSettings()
    gateway: GatewaySettings = GatewaySettings()
    notifications: NotificationSettings = NotificationSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def secret_key(self) -> str:
        return self.security.secret_key

    @property
    def algorithm(self) -> str:
        return self.security.algorithm

    @property
    def access_token_expire_minutes(self) -> int:
        return self.security.access_token_expire_minutes

    @property
    def default_currency(self) -> str:
        return self.ledger.default_currency


@lru_cache()
def get_settings() -> Settings:
    return Settings()
