"""Keycloak client registration and realm admission service."""

__version__ = "0.1.0"
