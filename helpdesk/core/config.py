from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # JWT
    secret_key: str
    access_token_expire_minutes: int = 60
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Slot grid shown to self-service bookers (HH:MM, end exclusive)
    work_start: str = "08:30"
    work_end: str = "16:30"
    slot_interval_minutes: int = 30

    # Live notifications
    notification_heartbeat_seconds: float = 30.0
    notification_send_timeout_seconds: float = 2.0
    notification_queue_size: int = 100

    # Development accounts created by `python -m helpdesk.seed`
    seed_admin_email: str = "admin@helpdesk.example.com"
    seed_admin_password: str = "admin123"
    seed_staff_password: str = "staff123"

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
