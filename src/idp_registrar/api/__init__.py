"""HTTP API for the IdP registrar."""

from idp_registrar.api.app import create_app

__all__ = ["create_app"]
