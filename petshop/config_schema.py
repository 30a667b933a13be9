"""
Config Schema Validation

Pydantic models for validating config.yaml structure.
Provides clear error messages when configuration is invalid.
"""

import warnings
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


class StorageConfig(BaseModel):
    """Remote store connection configuration"""

    owner: str = Field(default="umutcrkn", description="GitHub repository owner")
    repo: str = Field(default="PetShop-Barkod", description="GitHub repository name")
    branch: Optional[str] = Field(default=None, description="Branch to commit to (empty = default branch)")
    token: Optional[str] = Field(default=None, description="GitHub personal access token (repo scope)")
    api_url: Optional[str] = Field(
        default=None,
        description="PetShop backend URL; when set, the token is not needed",
    )
    timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: Optional[str]) -> Optional[str]:
        """Backend URL must be http(s)"""
        if v and not v.strip().startswith(("http://", "https://")):
            raise ValueError(f"Invalid api_url '{v}'. Use a full URL like 'https://petshop.example.com'")
        return v


class SyncConfig(BaseModel):
    """Retry settings for remote writes"""

    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per remote write")
    backoff_seconds: float = Field(default=0.5, ge=0, le=30, description="Delay step between attempts")


class TrialConfig(BaseModel):
    """Trial window settings"""

    days: int = Field(default=10, ge=1, le=365, description="Trial length for new companies")
    reap_on_login: bool = Field(
        default=False,
        description="Delete a company when a login finds its trial expired",
    )


class RetentionConfig(BaseModel):
    """Local working-set retention"""

    sales_days: int = Field(default=3, ge=1, le=3650, description="Days of sales kept on the device")


class CacheConfig(BaseModel):
    """Local cache database"""

    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL for the cache (empty = data/petshop_cache.db)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_to_file: bool = Field(default=True, description="Enable file logging")
    log_to_console: bool = Field(default=True, description="Enable console logging")
    retention_days: int = Field(default=7, ge=1, le=365, description="Days of rotated log files to keep")


class ApplicationConfig(BaseModel):
    """Application settings"""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class AdminConfig(BaseModel):
    """Admin (single-tenant legacy) login"""

    username: str = Field(default="admin", min_length=1, description="Admin username")
    password_hash: Optional[str] = Field(
        default=None,
        description="bcrypt password hash (leave empty for the default password)",
    )


class AppConfig(BaseModel):
    """
    Root configuration model for config.yaml

    Validates the entire configuration structure on load.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    trial: TrialConfig = Field(default_factory=TrialConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    application: ApplicationConfig = Field(default_factory=ApplicationConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)

    model_config = {"populate_by_name": True}


def validate_config(config_dict: dict) -> AppConfig:
    """
    Validate a config dictionary against the schema.

    Args:
        config_dict: Raw dictionary loaded from config.yaml

    Returns:
        Validated AppConfig instance

    Raises:
        pydantic.ValidationError: If config is invalid
    """
    return AppConfig.model_validate(config_dict)


def get_validation_errors(config_dict: dict) -> List[str]:
    """
    Get a list of validation errors for a config dictionary.

    Args:
        config_dict: Raw dictionary loaded from config.yaml

    Returns:
        List of error messages (empty if valid)
    """
    try:
        validate_config(config_dict)
        return []
    except ValidationError as e:
        return [
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]


def load_app_config(config_dict: dict | None) -> AppConfig:
    """
    Build an AppConfig, section by section.

    An invalid section falls back to its defaults with a warning, so one
    bad value does not discard the rest of the file (the storage token in
    particular).
    """
    config_dict = config_dict or {}
    sections = {}

    for name, field in AppConfig.model_fields.items():
        raw = config_dict.get(name)
        if raw is None:
            continue
        try:
            sections[name] = field.annotation.model_validate(raw)
        except ValidationError as e:
            for err in e.errors():
                location = ".".join([name, *(str(loc) for loc in err["loc"])])
                warnings.warn(f"Config validation warning: {location}: {err['msg']}", UserWarning, stacklevel=2)

    return AppConfig(**sections)
