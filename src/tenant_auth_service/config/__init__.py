"""Configuration for Tenant Auth Service"""

from tenant_auth_service.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
