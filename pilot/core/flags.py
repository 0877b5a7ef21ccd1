"""
Central feature flags. One file controls every external dependency switch.

Set via environment variables (prefix FF_) or .env file.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_auth: bool = Field(default=True, alias="FF_USE_AUTH")
    # ON  → JWT validated via the issuer's JWKS. Needs AUTH_DOMAIN, AUTH_AUDIENCE.
    # OFF → Dev user injected (tenant_id="dev-tenant"). No token needed.

    # ── LLM vendor credentials ───────────────────────────────────────
    use_tenant_ai_providers: bool = Field(default=True, alias="FF_USE_TENANT_AI_PROVIDERS")
    # ON  → API key read per request from the tenant's active `openai` provider row.
    # OFF → OPENAI_API_KEY from the environment is used for every tenant.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
