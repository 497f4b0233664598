import pytest

from deal_finder import config as config_mod
from deal_finder.config import Config, _from_mapping
from deal_finder.retailers import RETAIL_DOMAINS


def test_defaults_from_minimal_mapping():
    cfg = _from_mapping({"SEARCH_API_KEY": "k"})
    assert cfg.search_api_key == "k"
    assert cfg.search_api_url == "https://api.tavily.com"
    assert cfg.identity_threshold == 4.0
    assert cfg.fetch_timeout_s == 10.0
    assert cfg.fetch_concurrency == 8
    assert cfg.retail_domains == RETAIL_DOMAINS
    assert not cfg.cache_enabled
    assert not cfg.browser_enabled


def test_placeholder_required_key_rejected():
    with pytest.raises(RuntimeError):
        _from_mapping({"SEARCH_API_KEY": "PLACEHOLDER"})
    with pytest.raises(RuntimeError):
        _from_mapping({})


def test_overrides_parsed():
    cfg = _from_mapping(
        {
            "SEARCH_API_KEY": "k",
            "SUPABASE_URL": "https://abc.supabase.co/",
            "SUPABASE_SERVICE_KEY": "svc",
            "DEAL_IDENTITY_THRESHOLD": "4.5",
            "DEAL_FETCH_CONCURRENCY": "4",
            "DEAL_RETAIL_DOMAINS": "Amazon.com, ulta.com ,",
            "DEAL_LOG_LEVEL": "debug",
        }
    )
    assert cfg.supabase_url == "https://abc.supabase.co"
    assert cfg.cache_enabled
    assert cfg.identity_threshold == 4.5
    assert cfg.fetch_concurrency == 4
    assert cfg.retail_domains == ("amazon.com", "ulta.com")
    assert cfg.log_level == "DEBUG"


def test_bad_number_rejected():
    with pytest.raises(RuntimeError):
        _from_mapping({"SEARCH_API_KEY": "k", "DEAL_FETCH_TIMEOUT": "soon"})
    with pytest.raises(RuntimeError):
        _from_mapping({"SEARCH_API_KEY": "k", "DEAL_PIPELINE_DEADLINE": "0"})


def test_load_from_env(monkeypatch):
    monkeypatch.setattr(config_mod, "load_dotenv", lambda: False)
    monkeypatch.setenv("SEARCH_API_KEY", "env-key")
    monkeypatch.setenv("BROWSERLESS_URL", "http://browserless:3000")
    monkeypatch.setenv("BROWSERLESS_TOKEN", "tok")
    cfg = Config.load_from_env()
    assert cfg.search_api_key == "env-key"
    assert cfg.browser_enabled


def test_with_overrides_keeps_tables_independent():
    a = Config(search_api_key="k")
    b = a.with_overrides(identity_threshold=5.0)
    assert b.identity_threshold == 5.0
    assert a.identity_threshold == 4.0
    assert a.manufacturer_domains is not Config().manufacturer_domains
