"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend
    api_url: str = os.getenv("HABITSYNC_API_URL", "http://localhost:5000/api")
    request_timeout: float = float(os.getenv("HABITSYNC_REQUEST_TIMEOUT", "10"))

    # Client state
    storage_path: str = os.getenv("HABITSYNC_STORAGE_PATH", "data/client.db")
    signout_timeout: float = float(
        os.getenv("HABITSYNC_SIGNOUT_TIMEOUT", "2")
    )  # seconds before a hung remote sign-out is abandoned
    notification_history: int = int(os.getenv("HABITSYNC_NOTIFICATION_HISTORY", "50"))

    # Local facade
    server_host: str = os.getenv("SERVER_HOST", "127.0.0.1")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False


settings = Settings()
