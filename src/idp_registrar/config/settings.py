"""Application settings and configuration management."""

import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Keycloak Configuration
    keycloak_base_url: str = Field(
        default="http://localhost:8080",
        description="Keycloak base URL (without /realms or /admin suffix)",
    )
    keycloak_admin_realm: str = Field(
        default="master",
        description="Realm used to obtain admin tokens and issue admin calls",
    )
    keycloak_admin_client_id: str = Field(
        default="",
        description="Client ID used for the client_credentials admin grant",
    )
    keycloak_admin_client_secret: str = Field(
        default="",
        description="Client secret used for the client_credentials admin grant",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every identity provider request",
    )

    # Admission Configuration
    realm_deny_list: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Realm names that may never be created (comma-separated or JSON list)",
    )
    webhook_host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    webhook_port: int = Field(
        default=9443,
        description="Server port",
    )
    webhook_tls_cert_file: str | None = Field(
        default=None,
        description="TLS certificate served to the API server (PEM)",
    )
    webhook_tls_key_file: str | None = Field(
        default=None,
        description="TLS private key matching the certificate (PEM)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format",
    )

    # Development Settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # OpenTelemetry Configuration
    otel_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    otel_service_name: str = Field(
        default="idp_registrar",
        description="Service name for OpenTelemetry traces",
    )
    otel_exporter_type: Literal["otlp", "otlp-http", "console"] = Field(
        default="otlp",
        description="Telemetry exporter type",
    )
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP exporter endpoint (gRPC)",
    )
    otel_exporter_otlp_http_endpoint: str = Field(
        default="http://localhost:4318",
        description="OTLP exporter endpoint (HTTP)",
    )

    @field_validator("realm_deny_list", mode="before")
    @classmethod
    def _split_deny_list(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def keycloak_token_endpoint(self) -> str:
        """Token endpoint of the admin realm."""
        base = self.keycloak_base_url.rstrip("/")
        return f"{base}/realms/{self.keycloak_admin_realm}/protocol/openid-connect/token"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
