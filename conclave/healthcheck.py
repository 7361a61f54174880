"""Provider validation: reach each configuration and mark it validated."""

import asyncio
import dataclasses
import logging

from conclave.clock import now_ms
from conclave.models import ProviderConfig
from conclave.provider_configs import ProviderConfigStore
from conclave.providers.base import AIProvider
from conclave.providers.factory import build_provider

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def validate_config(
    config: ProviderConfig,
    provider: AIProvider | None = None,
    timeout_sec: float = _TIMEOUT_SEC,
) -> tuple[ProviderConfig, str]:
    """List the configuration's models. Returns (updated_config, error_message).

    Success sets ``is_validated``, ``last_validated`` and ``available_models``;
    failure clears validation. error_message is "" on success.
    """
    try:
        provider = provider or build_provider(config, timeout_sec=int(timeout_sec))
        models = await asyncio.wait_for(provider.list_models(), timeout=timeout_sec)
    except Exception as exc:
        logger.warning("Validation failed for %s: %s", config.name, exc)
        return dataclasses.replace(config, is_validated=False, last_validated=None), str(exc)

    logger.info("Validated %s: %d models", config.name, len(models))
    return (
        dataclasses.replace(
            config,
            is_validated=True,
            last_validated=now_ms(),
            available_models=tuple(sorted(models)),
        ),
        "",
    )


async def run_health_checks(
    store: ProviderConfigStore,
    config_ids: list[str] | None = None,
) -> dict[str, tuple[bool, str]]:
    """Validate configurations in parallel and save the outcome.

    Returns:
        Dict mapping configuration name -> (ok, error_message).
    """
    configs = [c for c in store.list_configs() if config_ids is None or c.id in config_ids]
    results = await asyncio.gather(*(validate_config(c) for c in configs))
    for updated, _ in results:
        store.upsert(updated)
    return {updated.name: (updated.is_validated, err) for updated, err in results}
