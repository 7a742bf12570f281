import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_PKFARE_BASE_URL = "https://api.pkfare.com"


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and transport settings for the PKFare API"""
    partner_id: str
    partner_key: str
    base_url: str = DEFAULT_PKFARE_BASE_URL
    timeout_seconds: float = 60.0
    webhook_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        return cls(
            partner_id=os.getenv("PKFARE_PARTNER_ID", ""),
            partner_key=os.getenv("PKFARE_PARTNER_KEY", ""),
            base_url=os.getenv("PKFARE_BASE_URL", DEFAULT_PKFARE_BASE_URL).rstrip("/"),
            timeout_seconds=float(os.getenv("PKFARE_TIMEOUT_SECONDS", "60")),
            webhook_token=os.getenv("PKFARE_WEBHOOK_TOKEN") or None,
        )


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    use_local_redis: bool = False
    db_pool_min: int = 1
    db_pool_max: int = 10
    pricing_cache_ttl_seconds: int = 1800
    provider: ProviderConfig = field(default_factory=lambda: ProviderConfig(partner_id="", partner_key=""))

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after .env has been loaded)"""
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            redis_url=os.getenv("REDIS_URL") or None,
            use_local_redis=os.getenv("USE_LOCAL_REDIS", "false").lower() == "true",
            db_pool_min=int(os.getenv("DB_POOL_MIN", "1")),
            db_pool_max=int(os.getenv("DB_POOL_MAX", "10")),
            pricing_cache_ttl_seconds=int(os.getenv("PRICING_CACHE_TTL_SECONDS", "1800")),
            provider=ProviderConfig.from_env(),
        )
