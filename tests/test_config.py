import json

import pytest

from telentir_core import ObjectManagerConfig, PreconditionError
from telentir_core.cache import FsKeyCache, InMemoryKeyCache, StorageKeyCache, load_key_cache


def test_key_cache_factory_modes(monkeypatch, tmp_path):
    """load_key_cache returns the backend named by TELENTIR_KEY_CACHE."""
    monkeypatch.delenv("TELENTIR_KEY_CACHE", raising=False)
    assert load_key_cache() is None

    monkeypatch.setenv("TELENTIR_KEY_CACHE", "memory")
    monkeypatch.setenv("TELENTIR_KEY_CACHE_MAX_ENTRIES", "5")
    cache = load_key_cache()
    assert isinstance(cache, InMemoryKeyCache)
    assert cache.max_entries == 5

    monkeypatch.setenv("TELENTIR_KEY_CACHE", "fs")
    monkeypatch.setenv("TELENTIR_KEY_CACHE_DIR", str(tmp_path / "keys"))
    assert isinstance(load_key_cache(), FsKeyCache)

    monkeypatch.setenv("TELENTIR_KEY_CACHE", "sqlite")
    monkeypatch.setenv("TELENTIR_KEY_CACHE_DB", str(tmp_path / "db" / "cache.db"))
    assert isinstance(load_key_cache(), StorageKeyCache)


def test_key_cache_config_overrides_env(monkeypatch):
    monkeypatch.setenv("TELENTIR_KEY_CACHE", "fs")
    cache = load_key_cache({"provider": "memory", "ttl_ms": 500})
    assert isinstance(cache, InMemoryKeyCache)
    assert cache.ttl_ms == 500


def test_unknown_key_cache_provider():
    with pytest.raises(ValueError):
        load_key_cache({"provider": "redis"})


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("TELENTIR_API_KEY", "acct-key")
    monkeypatch.setenv("TELENTIR_API_URL", "https://staging.example.com/api/")
    monkeypatch.setenv("TELENTIR_TIMEOUT", "2.5")
    monkeypatch.setenv("TELENTIR_LOCAL_AUTH", json.dumps([{"publicKey": "pub", "privateKey": "priv"}]))

    config = ObjectManagerConfig.from_env({"provider": "memory"})

    assert config.api_key == "acct-key"
    assert config.api == "https://staging.example.com/api"
    assert config.timeout == 2.5
    assert [(a.public_key, a.private_key) for a in config.local_auth] == [("pub", "priv")]
    assert isinstance(config.key_cache, InMemoryKeyCache)


def test_config_from_env_requires_api_key(monkeypatch):
    monkeypatch.delenv("TELENTIR_API_KEY", raising=False)
    with pytest.raises(PreconditionError):
        ObjectManagerConfig.from_env()
