from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    DATA_DIR, DB_FILENAME, JWT_SECRET, FRONTEND_URL, SCHEDULER_ENABLED).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Trip Planner API"
    debug: bool = False
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "app.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Bearer token verification (tokens are issued by the identity provider)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # Invite links point at the web client
    frontend_url: AnyHttpUrl = "http://localhost:3000"

    # Background jobs (scheduled notifications, expired polls)
    scheduler_enabled: bool = True
    scheduler_interval_seconds: float = 300.0

    # Paging
    notification_page_size: int = 10
    trip_page_size: int = 10

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.jwt_algorithm not in {"HS256", "HS384", "HS512"}:
            raise ValueError(
                f"Unsupported jwt_algorithm '{self.jwt_algorithm}'. Allowed: HS256, HS384, HS512"
            )
        if self.scheduler_interval_seconds <= 0:
            raise ValueError("scheduler_interval_seconds must be positive")

    @property
    def invite_base_url(self) -> str:
        return str(self.frontend_url).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
