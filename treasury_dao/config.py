"""Treasury DAO — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class DaoSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "TREASURY_DAO_",
        "extra": "ignore",
    }

    # ── Governance defaults ────────────────────────────────────
    voting_period_seconds: int = 7 * 24 * 60 * 60
    minimum_voting_quorum: int = 51
    minimum_approval_percentage: int = 51

    # ── Treasury defaults ──────────────────────────────────────
    emergency_withdraw_delay_seconds: int = 2 * 24 * 60 * 60

    # ── Notification archive (SQLAlchemy) ──────────────────────
    database_url: str = "sqlite:///treasury_dao_ledger.db"

    # ── Query API ──────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = DaoSettings()
