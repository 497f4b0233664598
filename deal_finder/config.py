from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping

import requests
from dotenv import load_dotenv

from .identity import DEFAULT_THRESHOLD, MANUFACTURER_DOMAINS
from .normalize import SCENT_ALIASES
from .retailers import RETAIL_DOMAINS

REQUIRED_KEYS = [
    "SEARCH_API_KEY",
]

OPTIONAL_KEYS = [
    "SEARCH_API_URL",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "BROWSERLESS_URL",
    "BROWSERLESS_TOKEN",
    "DEAL_IDENTITY_THRESHOLD",
    "DEAL_FETCH_TIMEOUT",
    "DEAL_PIPELINE_DEADLINE",
    "DEAL_FETCH_CONCURRENCY",
    "DEAL_RETAIL_DOMAINS",
    "DEAL_CACHE_TTL_HOURS",
    "DEAL_LOG_LEVEL",
]

_PLACEHOLDERS = {"PLACEHOLDER", "MASKED", ""}

INFISICAL_URL = os.environ.get("INFISICAL_URL", "http://localhost:8089")
INFISICAL_CLIENT_ID = os.environ.get("INFISICAL_CLIENT_ID", "")
INFISICAL_CLIENT_SECRET = os.environ.get("INFISICAL_CLIENT_SECRET", "")
INFISICAL_PROJECT_ID = os.environ.get("INFISICAL_PROJECT_ID", "")


@dataclass(frozen=True)
class Config:
    search_api_key: str = ""
    search_api_url: str = "https://api.tavily.com"
    supabase_url: str = ""
    supabase_key: str = ""
    browserless_url: str = ""
    browserless_token: str = ""

    identity_threshold: float = DEFAULT_THRESHOLD
    fetch_timeout_s: float = 10.0
    pipeline_deadline_s: float = 25.0
    fetch_concurrency: int = 8
    search_max_results: int = 15
    max_candidates: int = 8
    max_deals: int = 5
    cache_ttl_hours: float = 24.0
    log_level: str = "INFO"

    retail_domains: tuple[str, ...] = RETAIL_DOMAINS
    manufacturer_domains: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(MANUFACTURER_DOMAINS)
    )
    scent_aliases: dict[str, str] = field(default_factory=lambda: dict(SCENT_ALIASES))

    @property
    def cache_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def browser_enabled(self) -> bool:
        return bool(self.browserless_url and self.browserless_token)

    def with_overrides(self, **changes) -> "Config":
        return replace(self, **changes)

    @staticmethod
    def load_from_env() -> "Config":
        load_dotenv()
        return _from_mapping(os.environ)

    @staticmethod
    def load_from_infisical(*, env: str = "dev") -> "Config":
        token = _infisical_login()
        secrets = _infisical_list_secrets(token, env=env)
        for k in REQUIRED_KEYS:
            if k not in secrets:
                raise RuntimeError(f"Missing Infisical secret: {k}")
        return _from_mapping(secrets)


def _from_mapping(values: Mapping[str, str]) -> Config:
    for k in REQUIRED_KEYS:
        val = values.get(k)
        if val is None or val.strip() in _PLACEHOLDERS:
            raise RuntimeError(f"Config value {k} is missing or still a placeholder")

    def opt(key: str) -> str:
        val = (values.get(key) or "").strip()
        return "" if val in _PLACEHOLDERS else val

    base = Config()
    domains = opt("DEAL_RETAIL_DOMAINS")
    return Config(
        search_api_key=values["SEARCH_API_KEY"].strip(),
        search_api_url=(opt("SEARCH_API_URL") or base.search_api_url).rstrip("/"),
        supabase_url=opt("SUPABASE_URL").rstrip("/"),
        supabase_key=opt("SUPABASE_SERVICE_KEY"),
        browserless_url=opt("BROWSERLESS_URL").rstrip("/"),
        browserless_token=opt("BROWSERLESS_TOKEN"),
        identity_threshold=_number(opt("DEAL_IDENTITY_THRESHOLD"), base.identity_threshold, "DEAL_IDENTITY_THRESHOLD"),
        fetch_timeout_s=_number(opt("DEAL_FETCH_TIMEOUT"), base.fetch_timeout_s, "DEAL_FETCH_TIMEOUT"),
        pipeline_deadline_s=_number(opt("DEAL_PIPELINE_DEADLINE"), base.pipeline_deadline_s, "DEAL_PIPELINE_DEADLINE"),
        fetch_concurrency=int(_number(opt("DEAL_FETCH_CONCURRENCY"), base.fetch_concurrency, "DEAL_FETCH_CONCURRENCY")),
        cache_ttl_hours=_number(opt("DEAL_CACHE_TTL_HOURS"), base.cache_ttl_hours, "DEAL_CACHE_TTL_HOURS"),
        log_level=(opt("DEAL_LOG_LEVEL") or base.log_level).upper(),
        retail_domains=tuple(d.strip().lower() for d in domains.split(",") if d.strip()) if domains else base.retail_domains,
    )


def _number(raw: str, default: float, key: str) -> float:
    if not raw:
        return default
    try:
        val = float(raw)
    except ValueError:
        raise RuntimeError(f"Config value {key} is not a number: {raw!r}")
    if val <= 0:
        raise RuntimeError(f"Config value {key} must be positive: {raw!r}")
    return val


def _infisical_login() -> str:
    """Get an access token via Universal Auth."""
    resp = requests.post(
        f"{INFISICAL_URL}/api/v1/auth/universal-auth/login",
        json={"clientId": INFISICAL_CLIENT_ID, "clientSecret": INFISICAL_CLIENT_SECRET},
        timeout=15,
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"Infisical login failed with {resp.status_code}")
    return resp.json()["accessToken"]


def _infisical_list_secrets(token: str, *, env: str = "dev") -> dict[str, str]:
    resp = requests.get(
        f"{INFISICAL_URL}/api/v4/secrets",
        params={"projectId": INFISICAL_PROJECT_ID, "environment": env, "secretPath": "/"},
        headers={"Authorization": f"Bearer {token}"},
        timeout=15,
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"Infisical secrets request failed with {resp.status_code}")
    return {s["secretKey"]: s["secretValue"] for s in resp.json().get("secrets", [])}
