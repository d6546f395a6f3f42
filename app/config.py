"""Configuration settings for the application."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Auth0 Configuration (authentication)
    auth0_domain: str = ""
    auth0_audience: str = "https://vinetrail-api"  # API identifier in Auth0

    # Redis Configuration (route cache)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    # Route cache TTL (1 hour in seconds)
    route_cache_ttl_seconds: int = 3600

    # OSRM directions provider
    osrm_base_url: str = "https://router.project-osrm.org"
    osrm_profile: str = "driving"
    osrm_timeout: float = 10.0

    # Plan lifecycle
    max_vineyards: int = 3
    plan_ttl_minutes: Optional[int] = None  # None -> 5 min in development, 24h otherwise

    # FastAPI Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = True

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./vinetrail.db"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def plan_ttl(self) -> int:
        """Minutes a confirmed plan stays valid."""
        if self.plan_ttl_minutes is not None:
            return self.plan_ttl_minutes
        return 5 if self.environment == "development" else 1440


# Global settings instance
settings = Settings()
