from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "Rufaa Offline Sync"
    VERSION: str = "1.0.0"

    DATABASE_URL: str = "sqlite:///./rufaa.db"

    # Remote service. The preference store can override the base URL at runtime.
    API_BASE_URL: str = "https://patientvisitapis.intellisoftkenya.com/api/"
    API_TOKEN: Optional[str] = None

    # Sync engine
    SYNC_REQUEST_TIMEOUT_SECONDS: float = 30.0
    SYNC_PERIODIC_INTERVAL_SECONDS: float = 900.0  # 15 min backstop
    SYNC_BACKOFF_FACTOR: float = 2.0
    SYNC_BACKOFF_MAX_SECONDS: float = 6 * 3600.0
    SYNC_REQUIRE_NETWORK: bool = True
    SYNC_AUTOSTART: bool = True

    # Connectivity probe for hosts without an OS network callback
    CONNECTIVITY_PROBE_ENABLED: bool = False
    CONNECTIVITY_PROBE_INTERVAL_SECONDS: float = 30.0
    CONNECTIVITY_PROBE_TIMEOUT_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
