"""Tests for conclave/provider_configs.py."""

import dataclasses
from pathlib import Path

from conclave.models import Agent, ProviderType
from conclave.provider_configs import ProviderConfigStore, default_provider_config, resolve_secret


def test_default_config_is_unvalidated():
    config = default_provider_config(ProviderType.ANTHROPIC, secret_key="sk-ant")
    assert config.name == "Anthropic Claude"
    assert config.base_url == "https://api.anthropic.com"
    assert config.is_validated is False


def test_resolve_secret_literal(validated_config):
    assert resolve_secret(validated_config) == "sk-test"


def test_resolve_secret_from_env(validated_config, monkeypatch):
    monkeypatch.setenv("CONCLAVE_TEST_KEY", "sk-from-env")
    config = dataclasses.replace(validated_config, secret_key="env:CONCLAVE_TEST_KEY")
    assert resolve_secret(config) == "sk-from-env"


def test_resolve_secret_missing_env(validated_config, monkeypatch):
    monkeypatch.delenv("CONCLAVE_MISSING_KEY", raising=False)
    config = dataclasses.replace(validated_config, secret_key="env:CONCLAVE_MISSING_KEY")
    assert resolve_secret(config) == ""


def test_store_persists_to_yaml(tmp_path: Path, validated_config):
    path = tmp_path / "api-configs.yaml"
    ProviderConfigStore(path).upsert(validated_config)
    assert ProviderConfigStore(path).get("cfg") == validated_config


def test_upsert_replaces_by_id(validated_config):
    store = ProviderConfigStore()
    store.upsert(validated_config)
    store.upsert(dataclasses.replace(validated_config, name="Renamed"))
    assert [c.name for c in store.list_configs()] == ["Renamed"]


def test_verified_lists_only_validated(validated_config):
    store = ProviderConfigStore()
    store.upsert(validated_config)
    assert store.verified() == (validated_config,)
    store.upsert(dataclasses.replace(validated_config, is_validated=False, last_validated=None))
    assert store.verified() == ()


def test_agent_usable_only_with_validated_config(validated_config):
    store = ProviderConfigStore()
    agent = Agent(id="a", name="A", provider_config_id="cfg")
    assert store.is_agent_usable(agent) is False
    store.upsert(dataclasses.replace(validated_config, is_validated=False))
    assert store.is_agent_usable(agent) is False
    store.upsert(validated_config)
    assert store.is_agent_usable(agent) is True


def test_remove(validated_config):
    store = ProviderConfigStore()
    store.upsert(validated_config)
    assert store.remove("cfg") == ()
