# config parameters for the Daily I Do admin dashboard

from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel


from typing import Optional, Literal, Any

import os

# ========== 1. LLM ==========

class LLMConfig(BaseModel):
    model: str = "anthropic:claude-sonnet-4-20250514"
    """Model used for both the data chat and the weekly summary"""

    max_tokens: int = 1024
    """Fixed token budget per call"""

    temperature: float = 0.0
    """Sampling temperature"""

    api_key_env: str = "ANTHROPIC_API_KEY"
    """Environment variable holding the provider key (named in the not-configured message)"""


# ========== 2. Admin session ==========

class AuthConfig(BaseModel):
    admin_password: Optional[str] = None
    """Password accepted by /admin/api/login; login is refused while unset"""

    session_secret: Optional[str] = None
    """HS256 signing key for session tokens; a per-process random key is used when unset"""

    cookie_name: str = "admin_session"
    """Cookie carrying the session token"""

    session_max_age_seconds: int = 60 * 60 * 24 * 7
    """Session lifetime (one week)"""

    cookie_secure: bool = False
    """Send the cookie only over HTTPS (enable in production)"""

    login_path: str = "/admin/login"
    """Where the guard redirects unauthenticated requests"""

    protected_prefix: str = "/admin"
    """Everything under this prefix is guarded, except login and API paths"""

    api_prefix: str = "/admin/api"
    """API paths skipped by the guard"""


# ========== 3. Dashboard windows ==========

class DashboardConfig(BaseModel):
    timezone: str = "UTC"
    """Timezone used to bucket events into calendar days"""

    funnel_baseline: Literal["max", "first"] = "max"
    """100% reference of the onboarding funnel"""

    funnel_days: int = 30
    """Look-back window of the onboarding funnel"""

    engagement_days: int = 30
    """Look-back window of the daily engagement chart"""

    chat_recent_event_limit: int = 500
    """Newest events summarised into the chat context"""

    chat_submission_limit: int = 50
    """Newest submissions summarised into the chat context"""


# ========== 4. Aggregate ==========

_ENV_OVERRIDES = {
    ("llm", "model"): "ADMIN_LLM_MODEL",
    ("llm", "max_tokens"): "ADMIN_LLM_MAX_TOKENS",
    ("auth", "admin_password"): "ADMIN_PASSWORD",
    ("auth", "session_secret"): "ADMIN_SESSION_SECRET",
    ("auth", "cookie_secure"): "ADMIN_COOKIE_SECURE",
    ("dashboard", "timezone"): "DASHBOARD_TIMEZONE",
    ("dashboard", "funnel_baseline"): "DASHBOARD_FUNNEL_BASELINE",
}


class AdminConfig(BaseModel):
    """Configuration for the Daily I Do admin dashboard."""

    llm: LLMConfig = LLMConfig()
    auth: AuthConfig = AuthConfig()
    dashboard: DashboardConfig = DashboardConfig()

    @classmethod
    def from_runnable_config(cls, config: Optional[RunnableConfig] = None) -> "AdminConfig":
        """Create an AdminConfig from a RunnableConfig, letting environment variables win."""
        configurable = config.get("configurable", {}) if config else {}
        sections: dict[str, dict[str, Any]] = {
            name: dict(configurable.get(name) or {}) for name in cls.model_fields
        }
        for (section, field_name), env_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                sections[section][field_name] = value
        # pydantic coerces "true"/"1" and numeric strings for bool/int fields
        return cls(**{name: values for name, values in sections.items() if values})

    @classmethod
    def from_env(cls) -> "AdminConfig":
        return cls.from_runnable_config(None)
