"""Pure dataclasses and enums for the Conclave chat engine. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class AgentRole(str, Enum):
    PRIMARY = "Primary"
    OBSERVER = "Observer"
    SUMMARIZER = "Summarizer"


class AgentStatus(str, Enum):
    READY = "Ready"
    THINKING = "Thinking"
    PAUSED = "Paused"
    HAS_FEEDBACK = "Has Feedback"
    HAND_RAISED = "Hand Raised"


class Participation(str, Enum):
    ALWAYS = "Always"
    RELEVANT = "Relevant"
    ON_DEMAND = "OnDemand"


class Severity(str, Enum):
    NONE = "NONE"
    MINOR = "MINOR"
    IMPORTANT = "IMPORTANT"
    CRITICAL = "CRITICAL"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ProviderType(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class TurnOutcome(str, Enum):
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AgentParams:
    formality: int = 50     # 0-100 sliders
    detail: int = 50
    approach: int = 50
    creativity: int = 50
    participation: Participation = Participation.RELEVANT


@dataclass(frozen=True)
class PendingMessage:
    id: str
    content: str
    timestamp: int          # epoch ms


@dataclass(frozen=True)
class Agent:
    id: str
    name: str
    role: AgentRole = AgentRole.OBSERVER
    is_active: bool = True
    personality: str = ""
    system_prompt: str | None = None
    icon: str = "Bot"
    color: str = "bg-indigo-500"
    model: str = ""
    provider_config_id: str = ""
    params: AgentParams = field(default_factory=AgentParams)
    # Session-scoped overlay, never part of the durable roster
    status: AgentStatus = AgentStatus.READY
    pending_messages: tuple[PendingMessage, ...] = ()
    hand_raise_count: int = 0


@dataclass(frozen=True)
class AgentSessionState:
    status: AgentStatus = AgentStatus.READY
    pending_messages: tuple[PendingMessage, ...] = ()
    hand_raise_count: int = 0


@dataclass(frozen=True)
class Message:
    id: str
    role: MessageRole
    content: str
    timestamp: int          # epoch ms
    agent_id: str | None = None
    agent_name: str | None = None
    agent_color: str | None = None
    is_error: bool = False
    visible_in_chat: bool = True


@dataclass(frozen=True)
class SessionInfo:
    id: str
    title: str
    created_at: int         # epoch ms
    last_active: int        # epoch ms


@dataclass(frozen=True)
class ChatState:
    session_id: str
    messages: tuple[Message, ...] = ()
    model: str = ""
    is_processing: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    name: str
    provider_type: ProviderType
    base_url: str
    secret_key: str = ""
    endpoint_template: str = ""
    is_validated: bool = False
    last_validated: int | None = None
    available_models: tuple[str, ...] = ()


@dataclass
class TurnResult:
    outcome: TurnOutcome
    added_messages: list[Message] = field(default_factory=list)
    skipped_agents: list[str] = field(default_factory=list)  # agent names
    error: str | None = None
