### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Configuration Service -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Configuration Service

Provides read/write access to config.yaml while preserving comments and formatting.
Uses ruamel.yaml for comment-preserving YAML operations.
Includes Pydantic validation for config structure.

Used by the settings screen and the CLI to store the GitHub token,
backend URL and admin password hash.
"""

import warnings
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from petshop.config import DEFAULT_CONFIG, get_config_path
from petshop.config_schema import AppConfig, get_validation_errors, load_app_config
from petshop.services.remote_store import normalize_url


class ConfigService:
    """
    Service for managing config.yaml with comment preservation.

    Uses ruamel.yaml to load and save YAML while keeping all comments,
    formatting, and structure intact.
    """

    def __init__(self, config_path: str | Path | None = None):
        if config_path is None:
            self.config_path = get_config_path()
        else:
            self.config_path = Path(config_path)
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self._config: CommentedMap | None = None

        # Create default config if missing
        self._ensure_config_exists()

    def _ensure_config_exists(self) -> None:
        """Create default config file if it doesn't exist"""
        if not self.config_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                f.write(DEFAULT_CONFIG)

    def _ensure_loaded(self) -> CommentedMap:
        """Ensure config is loaded, load if not"""
        if self._config is None:
            self.reload()
        return self._config

    def reload(self, validate: bool = True) -> CommentedMap:
        """
        Reload config from disk.

        Args:
            validate: If True, warn about values that fail schema validation
        """
        self._ensure_config_exists()

        with open(self.config_path, encoding="utf-8") as f:
            self._config = self.yaml.load(f) or CommentedMap()

        if validate:
            for error in get_validation_errors(dict(self._config)):
                warnings.warn(f"Config validation warning: {error}", UserWarning, stacklevel=2)

        return self._config

    def save(self) -> None:
        """Save config to disk, preserving comments and formatting"""
        if self._config is None:
            raise ValueError("No config loaded to save")

        with open(self.config_path, "w", encoding="utf-8") as f:
            self.yaml.dump(self._config, f)

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a config value by dot-notation path.

        Example: get("storage.repo") -> "PetShop-Barkod"
        """
        config = self._ensure_loaded()
        value = config

        for key in path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, path: str, value: Any) -> None:
        """
        Set a config value by dot-notation path.

        Example: set("storage.timeout", 60)
        """
        config = self._ensure_loaded()
        keys = path.split(".")

        current = config
        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = CommentedMap()
            current = current[key]

        current[keys[-1]] = value

    def get_app_config(self) -> AppConfig:
        """Validated view of the loaded config"""
        return load_app_config(dict(self._ensure_loaded()))

    # ========================================
    # Settings Screen Operations
    # ========================================

    def set_token(self, token: str) -> None:
        """Store the GitHub personal access token"""
        self.set("storage.token", token.strip())
        self.save()

    def clear_token(self) -> None:
        """Remove the stored GitHub token"""
        self.set("storage.token", "")
        self.save()

    def has_token(self) -> bool:
        """True when a token or a backend URL is configured"""
        return bool(self.get("storage.api_url")) or bool(self.get("storage.token"))

    def set_api_url(self, url: str) -> None:
        """Store the backend URL, without trailing slash"""
        self.set("storage.api_url", normalize_url(url))
        self.save()

    def set_admin_password_hash(self, password_hash: str) -> None:
        """Store a new bcrypt hash for the admin login"""
        self.set("admin.password_hash", password_hash)
        self.save()

    def get_editable_config(self) -> dict:
        """
        Get config suitable for a settings screen.

        Secrets (token, password hash) are reported only as present/absent.
        """
        config = self.get_app_config()
        return {
            "storage": {
                "owner": config.storage.owner,
                "repo": config.storage.repo,
                "branch": config.storage.branch,
                "api_url": config.storage.api_url,
                "timeout": config.storage.timeout,
                "has_token": bool(config.storage.token),
            },
            "sync": config.sync.model_dump(),
            "trial": config.trial.model_dump(),
            "retention": config.retention.model_dump(),
            "admin": {
                "username": config.admin.username,
                "has_custom_password": bool(config.admin.password_hash),
            },
        }
