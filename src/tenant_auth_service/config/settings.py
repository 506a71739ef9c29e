"""Configuration Settings for Tenant Auth Service

Manages environment variables and application configuration.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "tenant-auth-service"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT configuration
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7
    mfa_temp_token_expire_minutes: int = 5

    # Generic auth core (tenant context)
    tenant_require_email_verification: bool = True
    tenant_enable_mfa: bool = True
    tenant_max_login_attempts: int = 5
    tenant_lockout_duration_seconds: int = 30 * 60
    tenant_session_timeout_seconds: int = 24 * 60 * 60
    password_reset_expire_seconds: int = 60 * 60
    email_verification_expire_seconds: int = 24 * 60 * 60
    password_min_length: int = 8

    # Tenant orchestration
    tenant_default_role: str = "member"
    tenant_welcome_email: bool = True
    tenant_onboarding: bool = True
    tenant_analytics: bool = True
    tenant_require_profile_completion: bool = False
    platform_url: str = "https://yourplatform.com"
    support_email: str = "support@yourplatform.com"

    # CORS configuration
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
