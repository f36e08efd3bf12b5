"""
Accounts Service Configuration
Centralized settings using Pydantic Settings with environment variable support.

ENVIRONMENT VARIABLES REFERENCE
===============================

All settings can be configured via environment variables (uppercase, underscore-separated).
Example: `api_host` -> `API_HOST`

APPLICATION SETTINGS:
--------------------
ENVIRONMENT             - Runtime environment: development|staging|production (default: "development")
DEBUG                   - Enable debug mode (default: false)
LOG_LEVEL               - Logging level: DEBUG|INFO|WARNING|ERROR|CRITICAL (default: "INFO")

API CONFIGURATION:
-----------------
API_HOST                - API bind host (default: "0.0.0.0")
API_PORT                - API bind port (default: 8000)
ENABLE_API_DOCS         - Enable /docs and /redoc endpoints (default: true)
CORS_ORIGINS            - Allowed CORS origins as JSON array (default: ["http://localhost:3000"])

STORAGE:
--------
STORAGE_BACKEND         - memory|bigquery (default: "memory", MUST be bigquery in production)
GCP_PROJECT_ID          - Google Cloud Project ID (default: "local-dev-project")
BIGQUERY_LOCATION       - BigQuery dataset location (default: "US")
BQ_DATASET              - Dataset holding the accounts tables (default: "accounts")
BQ_MAX_RETRY_ATTEMPTS   - Retries for transient BigQuery errors (default: 3)
BQ_QUERY_TIMEOUT_SECONDS - Per-query timeout (default: 60)

ACCOUNT ENGINE:
---------------
MAX_HIERARCHY_DEPTH             - Deepest allowed hierarchy level (default: 10)
DUPLICATE_SIMILARITY_THRESHOLD  - Weighted score at or above which accounts are duplicates (default: 0.7)
NAME_SIMILARITY_THRESHOLD       - Reserved, not read by the engine (default: 0.8)
SIMILARITY_WEIGHTS_PATH         - Optional YAML file overriding field weights
BULK_CREATE_MAX_RECORDS         - Largest accepted bulk create batch (default: 1000)
TENANT_LOCK_TIMEOUT_SECONDS     - Wait for the per-tenant write lock (default: 5.0)
CONFLICT_RETRY_ATTEMPTS         - Retries on concurrent modification (default: 3)
"""

import yaml
from typing import List, Optional, Dict
from functools import lru_cache
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module-level cache for similarity weights, keyed by YAML path
_SIMILARITY_WEIGHTS_CACHE: Dict[str, Dict[str, float]] = {}

SIMILARITY_WEIGHT_FIELDS = ("name", "website", "phone", "industry", "account_type")


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    Supports .env file loading in development.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # Application Settings
    # ============================================
    app_name: str = Field(
        default="accounts-service",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Runtime environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    # ============================================
    # API Configuration
    # ============================================
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1024, le=65535)
    enable_api_docs: bool = Field(
        default=True,
        description="Enable OpenAPI documentation (/docs and /redoc endpoints)"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins. Wildcard '*' is NOT allowed."
    )

    @field_validator('cors_origins')
    @classmethod
    def validate_cors_no_wildcard(cls, v: List[str]) -> List[str]:
        """Reject a lone wildcard origin; credentials are allowed on CORS requests."""
        if '*' in v and len(v) == 1:
            raise ValueError(
                "CORS wildcard '*' is not allowed. Specify explicit origins instead."
            )
        return v

    # ============================================
    # Storage Configuration
    # ============================================
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|bigquery)$",
        description="Account store implementation"
    )
    gcp_project_id: str = Field(default="local-dev-project", description="Google Cloud Project ID")
    bigquery_location: str = Field(default="US", description="BigQuery dataset location")
    bq_dataset: str = Field(
        default="accounts",
        pattern="^[a-zA-Z0-9_]{1,1024}$",
        description="BigQuery dataset holding accounts and account_relationships"
    )
    bq_max_retry_attempts: int = Field(default=3, ge=1, le=10)
    bq_query_timeout_seconds: int = Field(default=60, ge=1, le=600)

    # ============================================
    # Account Engine
    # ============================================
    max_hierarchy_depth: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum hierarchy level an account may reach"
    )
    duplicate_similarity_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Weighted similarity at or above which two accounts are duplicate candidates"
    )
    # Reserved knob. No code path reads it.
    name_similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    similarity_weights_path: Optional[str] = Field(
        default=None,
        description="YAML file with per-field similarity weights"
    )
    bulk_create_max_records: int = Field(default=1000, ge=1, le=100000)
    tenant_lock_timeout_seconds: float = Field(default=5.0, gt=0.0, le=300.0)
    conflict_retry_attempts: int = Field(default=3, ge=1, le=10)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    def validate_production_config(self) -> None:
        """
        Validate required settings in production environment.

        Raises:
            ValueError: If the configuration is unsafe for production
        """
        if not self.is_production:
            return

        errors = []

        if self.storage_backend != "bigquery":
            errors.append("storage_backend must be 'bigquery' in production")

        if not self.gcp_project_id or self.gcp_project_id == "local-dev-project":
            errors.append("gcp_project_id must be set in production")

        if self.debug:
            errors.append("debug must be False in production")

        if errors:
            raise ValueError("Production configuration invalid: " + "; ".join(errors))

    def load_similarity_weights(self) -> Dict[str, float]:
        """
        Load per-field similarity weights from YAML.

        The file holds a mapping under ``weights``, e.g.::

            weights:
              name: 3
              website: 2

        Fields not listed keep their default weight.

        Returns:
            Mapping of field name -> weight (empty when no file is configured)
        """
        if not self.similarity_weights_path:
            return {}

        if self.similarity_weights_path in _SIMILARITY_WEIGHTS_CACHE:
            return _SIMILARITY_WEIGHTS_CACHE[self.similarity_weights_path]

        path = Path(self.similarity_weights_path).expanduser()
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        weights = data.get("weights", {}) or {}
        unknown = set(weights) - set(SIMILARITY_WEIGHT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown similarity weight fields in {path}: {sorted(unknown)}")

        loaded = {name: float(value) for name, value in weights.items()}
        _SIMILARITY_WEIGHTS_CACHE[self.similarity_weights_path] = loaded
        return loaded


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Use LRU cache to avoid reloading environment variables.
    """
    return Settings()
