"""FinanceOS — Governance core configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class FinanceOSSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Storage (abstract key-value records) ───────────────────
    storage_url: str = "sqlite:///financeos.db"

    # ── Modules ────────────────────────────────────────────────
    core_module_prefix: str = "core."
    enforce_module_permissions: bool = True

    # ── Policy defaults ────────────────────────────────────────
    default_autonomy_mode: str = "suggest"
    default_max_daily_loss_pct: float = 5.0
    default_max_position_size_pct: float = 10.0
    default_max_crypto_allocation_pct: float = 30.0

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = FinanceOSSettings()
