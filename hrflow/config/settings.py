"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import Dict, List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Persistence: "mongo" or "memory"
    storage_backend: str = "mongo"

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "hrflow_dev"
    # Multi-document transactions need a replica set; turn off only for
    # standalone development servers
    mongo_use_transactions: bool = True

    # Approver resolution
    # Static map of role -> actor ids, e.g. ROLE_ASSIGNMENTS='{"HR": ["hr@corp.com"]}'
    role_assignments: Dict[str, List[str]] = {}
    # When set, roles are checked against the HR role directory instead
    role_directory_url: str = ""
    role_directory_timeout_seconds: float = 5.0

    # Engine
    system_actor_id: str = "system"
    lock_timeout_seconds: float = 10.0

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    log_to_file: bool = True

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
