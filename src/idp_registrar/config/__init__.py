"""Configuration module for the IdP registrar."""

from idp_registrar.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
