"""Configuration for the docvault-admin CLI."""

import os
from typing import Optional


class Config:
    """Connection settings, read from the environment and overridable per invocation."""

    DEFAULT_CONFIG = {
        "vault_url": os.environ.get("DOCVAULT_URL", "http://localhost:8000"),
        "timeout": float(os.environ.get("DOCVAULT_TIMEOUT", "30")),
        "max_retries": int(os.environ.get("DOCVAULT_MAX_RETRIES", "3")),
        "retry_backoff_multiplier": 2,
    }

    def __init__(self, vault_url: Optional[str] = None, timeout: Optional[float] = None, max_retries: Optional[int] = None):
        self.data = self.DEFAULT_CONFIG.copy()
        if vault_url:
            self.data["vault_url"] = vault_url
        if timeout is not None:
            self.data["timeout"] = timeout
        if max_retries is not None:
            self.data["max_retries"] = max_retries

    def get_base_url(self) -> str:
        """
        Get vault base URL.

        Returns:
            Base URL string (e.g., "http://localhost:8000")
        """
        return self.data["vault_url"].rstrip("/")

    def get_timeout(self) -> float:
        return self.data["timeout"]

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data['max_retries'],
            'retry_backoff_multiplier': self.data['retry_backoff_multiplier'],
        }
