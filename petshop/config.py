### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Configuration -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Configuration Management

Uses Pydantic Settings for process-level settings with environment variable
support, and data/config.yaml for storage, sync and tenant settings.

Config file location (in order of precedence):
1. PETSHOP_CONFIG_PATH environment variable
2. data/config.yaml (default - created with defaults if missing)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

import bcrypt
import yaml
from pydantic_settings import BaseSettings

from petshop.config_schema import AdminConfig

logger = logging.getLogger(__name__)

# Legacy single-tenant admin password, used until a hash is configured
DEFAULT_ADMIN_PASSWORD = "201812055"


def get_project_root() -> Path:
    """Get the project root directory"""
    return Path(__file__).parent.parent


def get_config_path() -> Path:
    """
    Get the path to config.yaml.

    Priority:
    1. PETSHOP_CONFIG_PATH environment variable (if set)
    2. data/config.yaml under the project root
    """
    env_path = os.environ.get("PETSHOP_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return get_project_root() / "data" / "config.yaml"


class PetShopSettings(BaseSettings):
    """Process-level settings (environment / .env)"""

    app_name: str = "PetShop Sync"
    debug: bool = False

    # Config file override (None = get_config_path())
    config_path: str | None = None

    # Logging (level and handlers come from application.logging in config.yaml)
    log_to_file: bool = True
    log_dir: str = "logs"

    # Admin fallback password; override per deployment
    admin_default_password: str = DEFAULT_ADMIN_PASSWORD

    class Config:
        env_prefix = "PETSHOP_"
        env_file = ".env"
        extra = "ignore"


DEFAULT_CONFIG = """# PetShop Sync Configuration
# Storage, sync and tenant settings for the PetShop POS app

# Remote Storage
# All shared data lives as JSON files in one GitHub repository.
storage:
  owner: "umutcrkn"
  repo: "PetShop-Barkod"
  # branch: "main"            # Leave unset to use the default branch

  # GitHub Personal Access Token with 'repo' scope
  # Settings > Developer settings > Personal access tokens > Tokens (classic)
  token: ""

  # PetShop backend URL (optional)
  # When set, requests go to {api_url}/api/file and no token is needed
  api_url: ""

  timeout: 30                 # Request timeout in seconds

# Remote Write Retries
# Conflicting or timed-out writes are re-read, re-merged and retried
sync:
  max_attempts: 3
  backoff_seconds: 0.5        # Delay before retry N is N * backoff_seconds

# Trial Settings
trial:
  days: 10                    # Trial length for newly registered companies
  reap_on_login: false        # Delete expired companies when they try to log in

# Local Retention
retention:
  sales_days: 3               # Sales older than this are dropped from the device (not from GitHub)

# Local Cache
cache:
  database_url: ""            # Empty = data/petshop_cache.db

# Application Settings
application:
  logging:
    level: "INFO"             # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_to_file: true
    log_to_console: true
    retention_days: 7         # Rotated log files kept (petshop.log.YYYY-MM-DD)

# Admin Login
# If no password_hash is configured, the default admin password is used
admin:
  username: "admin"
  # password_hash: "$2b$12$..."  # Generate with: python -c "import bcrypt; print(bcrypt.hashpw(b'YOUR_PASSWORD', bcrypt.gensalt()).decode())"
"""


def load_yaml_config(config_path: str | Path | None = None) -> dict:
    """Load configuration from YAML file, creating default if missing"""
    config_file = get_config_path() if config_path is None else Path(config_path)

    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG)
        logger.info(f"Created default configuration file: {config_file}")

    with open(config_file, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> PetShopSettings:
    """Get cached process settings instance"""
    return PetShopSettings()


class AdminSettings:
    """Admin authentication settings loaded from config.yaml"""

    def __init__(self, admin_config: AdminConfig | None = None, default_password: str = DEFAULT_ADMIN_PASSWORD):
        admin_config = admin_config or AdminConfig()

        self.username: str = admin_config.username
        self.password_hash: str | None = admin_config.password_hash

        # If no password hash set, fall back to the default password
        if not self.password_hash:
            self.password_hash = hash_password(default_password)
            self._is_default = True
        else:
            self._is_default = False

    def verify_password(self, password: str) -> bool:
        """Verify a password against the stored hash"""
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode(), self.password_hash.encode())
        except ValueError:
            logger.warning("Configured admin password hash is not a valid bcrypt hash")
            return False

    def set_password_hash(self, password_hash: str) -> None:
        """Adopt a newly stored password hash"""
        self.password_hash = password_hash
        self._is_default = False

    def is_admin_username(self, username: str) -> bool:
        return username.strip().lower() == self.username.lower()

    @property
    def is_default_password(self) -> bool:
        """Check if using default password (should prompt to change)"""
        return self._is_default


def hash_password(password: str) -> str:
    """Hash a password for storage in config.yaml"""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()
