# job_financials/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./job_financials.db"
    engine_version: str = "2026-10-19.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Money ----
    money_places: int = 2

    # ---- Commission defaults ----
    # Base a tiered_margin rate applies to when the plan config does not say.
    commission_tier_base: str = "contract_value"  # contract_value|net_profit

    # ---- Tenancy / auth ----
    auth_mode: str = "dev"  # dev|header
    dev_auto_provision: bool = True

    header_tenant_slug: str = "X-Tenant-Slug"
    header_user_email: str = "X-User-Email"
    header_user_role: str = "X-User-Role"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"

    def model_post_init(self, __context) -> None:
        base = (self.commission_tier_base or "").strip().lower()
        if base not in ("contract_value", "net_profit"):
            raise ValueError(f"commission_tier_base must be contract_value or net_profit, got {base!r}")
        object.__setattr__(self, "commission_tier_base", base)

        env = (self.app_env or "local").strip().lower()
        if env in ("prod", "production"):
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
