"""Unit tests for conclave/healthcheck.py. No real API calls."""

import dataclasses

from conclave import healthcheck
from conclave.healthcheck import run_health_checks, validate_config
from conclave.provider_configs import ProviderConfigStore
from conclave.providers.base import ProviderError

from tests.conftest import MockProvider


async def test_validate_success_records_models(validated_config):
    config = dataclasses.replace(validated_config, is_validated=False, last_validated=None)
    provider = MockProvider(models=["gpt-4o", "gpt-4o-mini", "gpt-3.5"])

    updated, err = await validate_config(config, provider)

    assert err == ""
    assert updated.is_validated is True
    assert updated.last_validated is not None
    assert updated.available_models == ("gpt-3.5", "gpt-4o", "gpt-4o-mini")


async def test_validate_failure_clears_validation(validated_config):
    provider = MockProvider(error=ProviderError("cfg", "401 Unauthorized"))

    updated, err = await validate_config(validated_config, provider)

    assert updated.is_validated is False
    assert updated.last_validated is None
    assert "401" in err


async def test_validate_missing_key_fails(validated_config):
    updated, err = await validate_config(dataclasses.replace(validated_config, secret_key=""))
    assert updated.is_validated is False
    assert "Missing API key" in err


async def test_run_health_checks_saves_results(validated_config, monkeypatch):
    """One configuration passes, the other fails; both outcomes are stored."""
    store = ProviderConfigStore()
    store.upsert(dataclasses.replace(validated_config, is_validated=False))
    store.upsert(dataclasses.replace(validated_config, id="bad", name="Broken"))
    providers = {
        "cfg": MockProvider(models=["m1"]),
        "bad": MockProvider(error=ProviderError("Broken", "403 Forbidden")),
    }
    monkeypatch.setattr(healthcheck, "build_provider", lambda config, **kwargs: providers[config.id])

    results = await run_health_checks(store)

    assert results["Test OpenAI"] == (True, "")
    ok, err = results["Broken"]
    assert ok is False and "403" in err
    assert store.get("cfg").is_validated is True
    assert store.get("cfg").available_models == ("m1",)
    assert store.get("bad").is_validated is False


async def test_run_health_checks_filters_ids(validated_config, monkeypatch):
    store = ProviderConfigStore()
    store.upsert(validated_config)
    store.upsert(dataclasses.replace(validated_config, id="other", name="Other"))
    monkeypatch.setattr(healthcheck, "build_provider", lambda config, **kwargs: MockProvider())

    results = await run_health_checks(store, ["other"])

    assert list(results) == ["Other"]


async def test_empty_store():
    assert await run_health_checks(ProviderConfigStore()) == {}
