# topicmesh/core/config.py
import json
from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings loaded from environment variables (and .env).

    Notes
    -----
    - Every variable is prefixed with ``TOPICMESH_``, e.g. ``TOPICMESH_KAFKA_BOOTSTRAP``.
    - `known_domains` and `cors_allow_origins` accept a JSON array or a
      comma-separated string:
        TOPICMESH_KNOWN_DOMAINS='["london.hammersmith.transport"]'
      or:
        TOPICMESH_KNOWN_DOMAINS='london.hammersmith.transport,acme.payments'
    - The admin client performs no implicit retries unless
      `admin_connect_max_tries` is raised above 1.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TOPICMESH_",
        extra="ignore",
    )

    # ---------- Kafka client/admin ----------
    kafka_bootstrap: str = Field("localhost:9092")
    kafka_api_version: str | None = None
    client_id: str = "topicmesh"

    # Client timeouts (ms)
    request_timeout_ms: int = 20_000
    metadata_max_age_ms: int = 30_000
    api_version_auto_timeout_ms: int = 10_000

    # Admin connection retry (1 == connect once, no retry)
    admin_connect_max_tries: int = Field(default=1, ge=1)
    admin_connect_backoff_sec: float = 1.5

    # ---------- Security (set when using SASL/SSL) ----------
    security_protocol: str = "PLAINTEXT"   # e.g. "SASL_SSL", "SSL"
    sasl_mechanism: str | None = None
    sasl_plain_username: str | None = None
    sasl_plain_password: str | None = None
    ssl_cafile: str | None = None

    # ---------- Schema registry (optional) ----------
    schema_registry_url: str | None = None
    schema_registry_username: str | None = None
    schema_registry_password: str | None = None
    schema_registry_timeout_sec: float = 10.0

    # ---------- Domain document ----------
    spec_path: str = "api-spec.yaml"
    schema_base_path: str = "."
    known_domains: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # ---------- Telemetry ----------
    telemetry_max_workers: int = Field(default=8, ge=1, le=64)
    telemetry_query_timeout_sec: float = Field(default=30.0, gt=0)

    # ---------- API ----------
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    metrics_enabled: bool = False
    cors_allow_origins: Annotated[list[str] | None, NoDecode] = None
    log_level: str = "INFO"

    @field_validator("known_domains", mode="before")
    @classmethod
    def _parse_known_domains(cls, v):
        return _split_list(v) or []

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        return _split_list(v)


def _split_list(v):
    """Accept a list, a JSON array or a comma-separated string."""
    if v is None:
        return None
    if isinstance(v, str):
        try:
            parsed = json.loads(v)
        except ValueError:
            parsed = None
        v = parsed if isinstance(parsed, list) else v.split(",")
    return [str(s).strip() for s in v if str(s).strip()]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
