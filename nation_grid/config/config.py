from pathlib import Path
from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    # Database Configuration
    db_driver: str = Field(default="postgresql", description="Database driver (postgresql or sqlite)")
    db_host: str = Field(default="localhost", description="Database host")
    db_port: int = Field(default=5432, description="Database port")
    db_name: str = Field(default="nation_grid", description="Database name (file path for sqlite)")
    db_user: str = Field(default="postgres", description="Database user")
    db_password: str = Field(default="password", description="Database password")

    @property
    def database_url(self) -> str:
        """Construct full database URL."""
        if self.db_driver == "sqlite":
            return f"sqlite:///{self.db_name}"
        return f"{self.db_driver}://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Security Configuration
    session_secret: str = Field(default="your-secret-key-here", description="Secret used to sign session cookies")
    session_max_age_seconds: int = Field(default=7 * 24 * 60 * 60, description="Session cookie lifetime")
    session_https_only: bool = Field(default=False, description="Mark the session cookie Secure")
    bcrypt_rounds: int = Field(default=10, description="bcrypt cost factor for password hashes")
    allowed_origins: str = Field(default="http://localhost:5000", description="CORS allowed origins")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (e.g., plain, json)")

    # Territory Allocation Configuration
    territory_count: int = Field(default=100, ge=0, description="Cells granted to a new nation")
    origin_window: int = Field(default=50, ge=1, description="Minimum side of the square origins are sampled from")
    max_origin_attempts: int = Field(default=100, ge=1, description="Origin resamples before giving up")
    allocation_attempts: int = Field(default=3, ge=1, description="Allocation retries per signup")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Instantiate singleton settings object
settings = Settings()
