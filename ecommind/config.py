"""ECOMMIND — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Security ──
    encryption_key: str = ""  # >= 32 chars, AES-256 key is derived from it
    oauth_state_secret: Optional[str] = None  # falls back to encryption_key

    # ── Bling ERP ──
    bling_client_id: str = ""
    bling_client_secret: str = ""
    bling_redirect_uri: str = ""
    bling_base_url: str = "https://www.bling.com.br/Api/v3"

    # ── Mercado Livre ──
    meli_client_id: str = ""
    meli_client_secret: str = ""
    meli_redirect_uri: str = ""
    meli_base_url: str = "https://api.mercadolibre.com"
    meli_auth_url: str = "https://auth.mercadolibre.com.br/authorization"

    # ── Shopee ──
    shopee_partner_id: str = ""
    shopee_partner_key: str = ""
    shopee_redirect_uri: str = ""
    shopee_base_url: str = "https://partner.shopeemobile.com"

    # ── HTTP / Retry ──
    http_timeout: float = 30.0
    retry_max_retries: int = 5
    retry_base_delay: float = 1.0  # seconds
    retry_max_delay: float = 30.0  # seconds
    retry_multiplier: float = 2.0
    retry_after_ceiling: float = 3600.0  # seconds, upper bound on a vendor Retry-After

    # ── ETL ──
    sync_overlap_minutes: int = 30
    token_refresh_buffer_minutes: int = 5
    sync_page_limit: int = 100

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_interval_minutes: int = 60

    # ── Market Intelligence ──
    default_commissions: dict[str, float] = {
        "meli": 0.12,
        "shopee": 0.08,
        "amazon": 0.15,
        "site": 0.03,
    }
    default_margins: dict[str, float] = {"default": 0.25}
    default_tax_rate: float = 0.0673  # Simples Nacional

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/ecommind.db"
        return "sqlite:///./ecommind.db"

    @property
    def effective_state_secret(self) -> str:
        return self.oauth_state_secret or self.encryption_key

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
