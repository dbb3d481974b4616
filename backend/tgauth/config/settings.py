# /tgauth/config/settings.py

import sys
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str
    max_pool_size: int = 10
    min_pool_size: int = 1

    # Telegram
    bot_token: str
    telegram_api_url: str = "https://api.telegram.org"
    telegram_update_mode: str = "polling"  # polling | webhook | none
    telegram_webhook_url: str | None = None
    telegram_webhook_secret: str | None = None
    telegram_poll_timeout: int = 25

    # Verification behaviour
    code_ttl_seconds: int = 300
    max_attempts: int = 5
    start_session_ttl_seconds: int = 600
    admin_action_ttl_seconds: int = 300
    otp_hash_secret: str | None = None
    otp_requests_per_phone_per_minute: int = 5

    # Security
    admin_api_key: str | None = None
    admin_telegram_id: int = 0
    api_key: str | None = None

    # Deployment
    workers: int = 4
    environment: str = "production"
    log_level: str = "INFO"
    admin_ui_dir: str = "public/admin"

    # Redis
    redis_url: str | None = "redis://localhost:6379"

    cors_allowed_origins: str = ""
    allowed_hosts: str = "*"

    # Observability
    alerting_webhook_url: str | None = None
    sentry_dsn: str | None = None
    sentry_environment: str = "production"

    # Limits
    rate_limit_per_minute: int = 100
    auth_rate_limit_per_minute: int = 30
    admin_rate_limit_per_minute: int = 30

    # ---------------- Validators ---------------- #

    @field_validator("telegram_update_mode")
    @classmethod
    def update_mode_must_be_known(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in ("polling", "webhook", "none"):
            raise ValueError("TELEGRAM_UPDATE_MODE must be one of: polling, webhook, none")
        return mode

    @field_validator("code_ttl_seconds", "start_session_ttl_seconds", "admin_action_ttl_seconds", "max_attempts")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("TTL and attempt limits must be positive")
        return v

    @model_validator(mode="after")
    def webhook_mode_needs_url(self):
        if self.telegram_update_mode == "webhook" and not self.telegram_webhook_url:
            raise ValueError("TELEGRAM_WEBHOOK_URL is required when TELEGRAM_UPDATE_MODE=webhook")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def load_settings() -> Settings:
    try:
        return Settings()
    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = load_settings()
