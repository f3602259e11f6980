"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    testing: bool = Field(default=False)

    # Application
    app_name: str = "VenueCatalog"
    app_version: str = "0.1.0"

    # Database
    database_url: str = Field(default="sqlite:///venue_catalog.db")
    database_pool_size: int = Field(default=10, ge=1)
    database_echo: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Spatial/text query provider: auto, postgis or memory
    spatial_provider: str = Field(default="auto")

    # Single-venue duplicate lookup
    dedup_venue_radius_meters: float = Field(default=2000.0, ge=0)
    dedup_venue_min_similarity: float = Field(default=0.3, ge=0.0, le=1.0)
    dedup_venue_limit: int = Field(default=20, ge=0)

    # City-level pair and group detection
    dedup_city_radius_meters: float = Field(default=500.0, ge=0)
    dedup_city_min_similarity: float = Field(default=0.4, ge=0.0, le=1.0)
    dedup_pair_limit: int = Field(default=100, ge=0)
    dedup_group_limit: int = Field(default=50, ge=0)
    dedup_row_limit: int = Field(default=300, ge=0)

    # Strict criteria used by duplicate counts (search listing, city index)
    dedup_strict_radius_meters: float = Field(default=100.0, ge=0)
    dedup_strict_min_similarity: float = Field(default=0.6, ge=0.0, le=1.0)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @field_validator("spatial_provider")
    @classmethod
    def validate_spatial_provider(cls, v):
        allowed = ["auto", "postgis", "memory"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"spatial_provider must be one of: {allowed}")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v, info):
        if info.data.get("testing") and not v.startswith("sqlite"):
            # Force SQLite for testing
            return "sqlite:///:memory:"
        return v

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Validate production-specific settings after all fields are set"""
        if self.environment == "production" and self.database_url.startswith("sqlite"):
            raise ValueError("Production environment requires a PostgreSQL database_url")
        if self.environment == "production" and self.spatial_provider == "memory":
            raise ValueError("Production environment cannot use the in-memory spatial provider")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    def model_dump(self, **kwargs):
        """Override to mask database credentials when serializing"""
        data = super().model_dump(**kwargs)

        url = data.get("database_url")
        if url and "@" in url and "://" in url:
            scheme, rest = url.split("://", 1)
            credentials, host = rest.rsplit("@", 1)
            user = credentials.split(":", 1)[0]
            data["database_url"] = f"{scheme}://{user}:****@{host}"

        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
