import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

TOKEN_POLICIES = ("strict", "permissive")


@dataclass
class Settings:
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_name: str = "wagateway"
    webhook_test_url: Optional[str] = None
    webhook_prod_url: Optional[str] = None
    webhook_token: Optional[str] = None
    webhook_token_policy: str = "strict"
    webhook_timeout: float = 10.0
    bridge_url: str = "http://localhost:3001"
    client_id: str = "wagateway"
    session_reset_delay: float = 2.0
    country_code: str = "62"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    static_dir: str = "public"
    port: int = 3000

    @property
    def webhook_targets(self) -> Dict[str, str]:
        """Configured fan-out targets keyed by label, unset ones omitted."""
        targets = {}
        if self.webhook_test_url:
            targets["test"] = self.webhook_test_url
        if self.webhook_prod_url:
            targets["prod"] = self.webhook_prod_url
        return targets


def _number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> Settings:
    cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

    policy = os.getenv("WEBHOOK_TOKEN_POLICY", "strict").strip().lower()
    if policy not in TOKEN_POLICIES:
        raise ValueError(f"WEBHOOK_TOKEN_POLICY must be one of {TOKEN_POLICIES}, got {policy!r}")

    return Settings(
        mongodb_uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
        mongodb_name=os.getenv("MONGODB_NAME", "wagateway"),
        webhook_test_url=os.getenv("N8N_WEBHOOK_TEST") or None,
        webhook_prod_url=os.getenv("N8N_WEBHOOK_PROD") or None,
        webhook_token=os.getenv("WEBHOOK_TOKEN") or None,
        webhook_token_policy=policy,
        webhook_timeout=_number("WEBHOOK_TIMEOUT", "10", float),
        bridge_url=os.getenv("BRIDGE_URL", "http://localhost:3001"),
        client_id=os.getenv("CLIENT_ID", "wagateway"),
        session_reset_delay=_number("SESSION_RESET_DELAY", "2", float),
        country_code=os.getenv("DEFAULT_COUNTRY_CODE", "62"),
        cors_origins=cors_origins or ["*"],
        static_dir=os.getenv("STATIC_DIR", "public"),
        port=_number("PORT", "3000", int),
    )
