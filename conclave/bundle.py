"""YAML export and import of configuration and session bundles.

Imports regenerate every id, remap agent -> configuration references, force
re-validation and drop ephemeral agent state.
"""

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import yaml

from conclave.clock import new_id
from conclave.models import Agent, AgentRole, Message, ProviderConfig, SessionInfo
from conclave.records import (
    agent_from_record,
    agent_to_record,
    message_from_record,
    message_to_record,
    provider_config_from_record,
    provider_config_to_record,
)
from conclave.registry import EXCLUSIVE_ROLES

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "1.0.0"


class BundleError(Exception):
    """Raised when a bundle cannot be parsed or lacks required fields."""


@dataclass
class ConfigBundle:
    agents: tuple[Agent, ...]
    provider_configs: tuple[ProviderConfig, ...]


@dataclass
class SessionBundle:
    session_id: str
    title: str
    messages: tuple[Message, ...]
    agents: tuple[Agent, ...]
    provider_configs: tuple[ProviderConfig, ...]


def _header() -> dict[str, Any]:
    return {
        "version": BUNDLE_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }


def _dump(payload: dict[str, Any]) -> str:
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)


def export_config(agents: Sequence[Agent], configs: Sequence[ProviderConfig]) -> str:
    """Agents (without session state) and provider configurations, secrets included."""
    payload = _header()
    payload["agents"] = [agent_to_record(a) for a in agents]
    payload["apiConfigs"] = [provider_config_to_record(c) for c in configs]
    return _dump(payload)


def export_session(
    session: SessionInfo,
    messages: Sequence[Message],
    agents: Sequence[Agent],
    configs: Sequence[ProviderConfig],
) -> str:
    payload = _header()
    payload["sessionId"] = session.id
    payload["title"] = session.title
    payload["messages"] = [message_to_record(m) for m in messages]
    payload["agents"] = [agent_to_record(a) for a in agents]
    payload["apiConfigs"] = [provider_config_to_record(c) for c in configs]
    return _dump(payload)


def _load(text: str) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise BundleError(f"Invalid YAML format: {exc}") from exc
    if not isinstance(parsed, dict):
        raise BundleError("Invalid YAML format")
    return parsed


def _single_holders(agents: list[Agent]) -> list[Agent]:
    """Keep the first holder of each exclusive role; later holders become Observers."""
    seen: set[AgentRole] = set()
    result: list[Agent] = []
    for agent in agents:
        if agent.role in EXCLUSIVE_ROLES:
            if agent.role in seen:
                agent = dataclasses.replace(agent, role=AgentRole.OBSERVER)
            else:
                seen.add(agent.role)
        result.append(agent)
    return result


def _regenerate(
    agents_raw: list[Any],
    configs_raw: list[Any],
) -> tuple[tuple[Agent, ...], tuple[ProviderConfig, ...], dict[str, str]]:
    """Fresh ids for everything. Returns (agents, configs, old_agent_id -> new_agent_id)."""
    try:
        config_ids: dict[str, str] = {}
        configs: list[ProviderConfig] = []
        for raw in configs_raw:
            config = provider_config_from_record(raw)
            fresh = dataclasses.replace(config, id=new_id(), is_validated=False, last_validated=None)
            config_ids[config.id] = fresh.id
            configs.append(fresh)

        agent_ids: dict[str, str] = {}
        agents: list[Agent] = []
        for raw in agents_raw:
            agent = agent_from_record(raw)
            fresh = dataclasses.replace(
                agent,
                id=new_id(),
                provider_config_id=config_ids.get(agent.provider_config_id, agent.provider_config_id),
            )
            agent_ids[agent.id] = fresh.id
            agents.append(fresh)
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise BundleError(f"Invalid bundle entry: {exc}") from exc
    return tuple(_single_holders(agents)), tuple(configs), agent_ids


def import_config(text: str) -> ConfigBundle:
    """Parse a configuration bundle.

    Raises:
        BundleError: If the YAML is malformed or agents/apiConfigs are not lists.
    """
    parsed = _load(text)
    if not isinstance(parsed.get("agents"), list):
        raise BundleError("Invalid configuration: agents must be a list")
    if not isinstance(parsed.get("apiConfigs"), list):
        raise BundleError("Invalid configuration: apiConfigs must be a list")
    agents, configs, _ = _regenerate(parsed["agents"], parsed["apiConfigs"])
    logger.info("Imported %d agents and %d provider configurations", len(agents), len(configs))
    return ConfigBundle(agents=agents, provider_configs=configs)


def import_session(text: str) -> SessionBundle:
    """Parse a session bundle under a fresh session id.

    Raises:
        BundleError: If the YAML is malformed or sessionId/title/messages are missing.
    """
    parsed = _load(text)
    if not parsed.get("sessionId") or not parsed.get("title") or not isinstance(parsed.get("messages"), list):
        raise BundleError("Invalid session format: missing required fields")
    agents_raw = parsed.get("agents") if isinstance(parsed.get("agents"), list) else []
    configs_raw = parsed.get("apiConfigs") if isinstance(parsed.get("apiConfigs"), list) else []
    agents, configs, agent_ids = _regenerate(agents_raw, configs_raw)
    try:
        messages = tuple(message_from_record(raw) for raw in parsed["messages"])
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise BundleError(f"Invalid message entry: {exc}") from exc
    messages = tuple(
        dataclasses.replace(m, agent_id=agent_ids[m.agent_id]) if m.agent_id in agent_ids else m
        for m in messages
    )
    return SessionBundle(
        session_id=new_id(),
        title=str(parsed["title"]),
        messages=messages,
        agents=agents,
        provider_configs=configs,
    )


def import_bundle(text: str) -> ConfigBundle | SessionBundle:
    """Import either bundle kind; a ``sessionId`` key marks a session bundle."""
    if "sessionId" in _load(text):
        return import_session(text)
    return import_config(text)
