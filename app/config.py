from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str
    database_echo: bool = False

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Redis
    redis_url: str = ""  # Optional Redis URL for pub/sub (local: redis://localhost:6379)

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    web_app_url: str = "http://localhost:5173"

    # Logging
    log_level: str = "INFO"

    # Messaging
    sync_poll_interval_seconds: int = 30
    sync_view_ttl_seconds: int = 300  # Views not fetched for this long stop being polled
    daily_message_limit: int = 0  # 0 = unlimited
    support_desk_user_id: str = ""  # Receiver of new support requests; first support desk user if empty
    unread_reminder_check_minutes: int = 10

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
