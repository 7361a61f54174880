"""Conversion between model dataclasses and the plain dicts kept at rest.

At-rest keys are camelCase so stored sessions, rosters and export bundles keep
one shape regardless of which backend or file wrote them.
"""

from typing import Any

from conclave.models import (
    Agent,
    AgentParams,
    AgentRole,
    AgentSessionState,
    AgentStatus,
    ChatState,
    Message,
    MessageRole,
    Participation,
    PendingMessage,
    ProviderConfig,
    ProviderType,
    SessionInfo,
)


def pending_to_record(pending: PendingMessage) -> dict[str, Any]:
    return {"id": pending.id, "content": pending.content, "timestamp": pending.timestamp}


def pending_from_record(raw: dict[str, Any]) -> PendingMessage:
    return PendingMessage(id=str(raw["id"]), content=str(raw["content"]), timestamp=int(raw["timestamp"]))


def message_to_record(message: Message) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp,
    }
    if message.agent_id is not None:
        record["agentId"] = message.agent_id
    if message.agent_name is not None:
        record["agentName"] = message.agent_name
    if message.agent_color is not None:
        record["agentColor"] = message.agent_color
    if message.is_error:
        record["isError"] = True
    if not message.visible_in_chat:
        record["visibleInChat"] = False
    return record


def message_from_record(raw: dict[str, Any]) -> Message:
    return Message(
        id=str(raw["id"]),
        role=MessageRole(raw["role"]),
        content=str(raw.get("content", "")),
        timestamp=int(raw["timestamp"]),
        agent_id=raw.get("agentId"),
        agent_name=raw.get("agentName"),
        agent_color=raw.get("agentColor"),
        is_error=bool(raw.get("isError", False)),
        visible_in_chat=raw.get("visibleInChat", True) is not False,
    )


def session_to_record(session: SessionInfo) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "createdAt": session.created_at,
        "lastActive": session.last_active,
    }


def session_from_record(raw: dict[str, Any]) -> SessionInfo:
    return SessionInfo(
        id=str(raw["id"]),
        title=str(raw["title"]),
        created_at=int(raw["createdAt"]),
        last_active=int(raw["lastActive"]),
    )


def chat_state_to_record(state: ChatState) -> dict[str, Any]:
    return {
        "sessionId": state.session_id,
        "messages": [message_to_record(m) for m in state.messages],
        "model": state.model,
        "isProcessing": state.is_processing,
    }


def chat_state_from_record(raw: dict[str, Any]) -> ChatState:
    return ChatState(
        session_id=str(raw["sessionId"]),
        messages=tuple(message_from_record(m) for m in raw.get("messages", [])),
        model=str(raw.get("model", "")),
        is_processing=bool(raw.get("isProcessing", False)),
    )


def agent_state_to_record(state: AgentSessionState) -> dict[str, Any]:
    return {
        "status": state.status.value,
        "pendingMessages": [pending_to_record(p) for p in state.pending_messages],
        "handRaiseCount": state.hand_raise_count,
    }


def agent_state_from_record(raw: dict[str, Any]) -> AgentSessionState:
    return AgentSessionState(
        status=AgentStatus(raw.get("status") or AgentStatus.READY.value),
        pending_messages=tuple(pending_from_record(p) for p in raw.get("pendingMessages") or []),
        hand_raise_count=int(raw.get("handRaiseCount") or 0),
    )


def agent_states_to_record(session_id: str, states: dict[str, AgentSessionState]) -> dict[str, Any]:
    return {
        "sessionId": session_id,
        "agentStates": {agent_id: agent_state_to_record(s) for agent_id, s in states.items()},
    }


def agent_states_from_record(raw: dict[str, Any] | None) -> dict[str, AgentSessionState]:
    if not raw:
        return {}
    return {agent_id: agent_state_from_record(s) for agent_id, s in (raw.get("agentStates") or {}).items()}


def agent_to_record(agent: Agent) -> dict[str, Any]:
    """Durable roster record. Ephemeral session fields are never written."""
    return {
        "id": agent.id,
        "name": agent.name,
        "icon": agent.icon,
        "color": agent.color,
        "personality": agent.personality,
        "systemPrompt": agent.system_prompt,
        "isActive": agent.is_active,
        "role": agent.role.value,
        "model": agent.model,
        "apiConfigId": agent.provider_config_id,
        "config": {
            "formality": agent.params.formality,
            "detail": agent.params.detail,
            "approach": agent.params.approach,
            "creativity": agent.params.creativity,
            "participation": agent.params.participation.value,
        },
    }


def agent_from_record(raw: dict[str, Any]) -> Agent:
    params_raw = raw.get("config") or {}
    return Agent(
        id=str(raw["id"]),
        name=str(raw["name"]),
        role=AgentRole(raw.get("role", AgentRole.OBSERVER.value)),
        is_active=raw.get("isActive", True) is not False,
        personality=str(raw.get("personality", "")),
        system_prompt=raw.get("systemPrompt"),
        icon=str(raw.get("icon", "Bot")),
        color=str(raw.get("color", "bg-indigo-500")),
        model=str(raw.get("model", "")),
        provider_config_id=str(raw.get("apiConfigId", "")),
        params=AgentParams(
            formality=int(params_raw.get("formality", 50)),
            detail=int(params_raw.get("detail", 50)),
            approach=int(params_raw.get("approach", 50)),
            creativity=int(params_raw.get("creativity", 50)),
            participation=Participation(params_raw.get("participation", Participation.RELEVANT.value)),
        ),
    )


def provider_config_to_record(config: ProviderConfig) -> dict[str, Any]:
    return {
        "id": config.id,
        "name": config.name,
        "type": config.provider_type.value,
        "baseURL": config.base_url,
        "apiKey": config.secret_key,
        "endpoint": config.endpoint_template,
        "isValidated": config.is_validated,
        "lastValidated": config.last_validated,
        "models": list(config.available_models),
    }


def provider_config_from_record(raw: dict[str, Any]) -> ProviderConfig:
    last_validated = raw.get("lastValidated")
    return ProviderConfig(
        id=str(raw["id"]),
        name=str(raw.get("name", "")),
        provider_type=ProviderType(raw["type"]),
        base_url=str(raw.get("baseURL", "")),
        secret_key=str(raw.get("apiKey", "")),
        endpoint_template=str(raw.get("endpoint") or ""),
        is_validated=bool(raw.get("isValidated", False)),
        last_validated=int(last_validated) if last_validated is not None else None,
        available_models=tuple(str(m) for m in raw.get("models") or []),
    )
