"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No scheduling logic
- No protocol constants (see constants.py)
- No device/voice records (those live in the settings store)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed to DeviceGateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    settings_path: str
    log_dir: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool
    enable_run_log: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables (all optional)."""
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            settings_path=os.environ.get("LEDFLOW_SETTINGS_PATH", "settings.json"),
            log_dir=os.environ.get("LEDFLOW_LOG_DIR", "logs"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
            enable_run_log=os.environ.get("LEDFLOW_ENABLE_RUN_LOG", "1") == "1",
        )
