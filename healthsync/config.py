"""Process settings loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All settings come from ``HEALTHSYNC_*`` environment variables (or .env file).

    Constructed once by ``main.create_app`` and passed down explicitly.
    """

    # --- App ---
    app_name: str = "healthsync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Identity ---
    owner_id: str = "local-user"
    device_id: str = "healthsync-device"
    device_model: str | None = None
    device_manufacturer: str | None = None

    # --- Upload service ---
    api_base_url: str = "http://localhost:8000"
    api_token: str = ""  # bearer token, never logged
    upload_timeout_seconds: float = 30.0

    # --- Local data ---
    cache_dir: Path | None = None  # defaults to ~/.healthsync/cache
    export_path: Path = Path("export.xml")  # Apple Health export
    config_path: Path | None = None  # defaults to the bundled healthsync.yaml

    # --- Presets ---
    cache_preset: str = "default"  # default | aggressive | realtime
    sync_preset: str = "default"  # default | conservative | aggressive
    automatic_sync: bool = True
    device_conditions: str = "system"  # system (psutil) | static

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_prefix": "HEALTHSYNC_", "env_file": ".env", "env_file_encoding": "utf-8"}
