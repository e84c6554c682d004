"""Core records exchanged between the chat orchestrator and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Tuple

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"

DISPLAY_ROLES = frozenset({USER_ROLE, ASSISTANT_ROLE})

KIND_USER = "user"
KIND_SYSTEM = "system"
KIND_ASSISTANT = "assistant"
KIND_STORY_PLAN = "story_plan"
KIND_STORY = "story"
KIND_ERROR = "error"


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Render a local wall-clock time as ``HH:MM``."""

    return (moment or datetime.now()).strftime("%H:%M")


def _check_counter(name: str, value: Optional[int]) -> None:
    if value is not None and value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True, slots=True)
class DisplayMessage:
    """Immutable transcript entry rendered by the chat front-end."""

    role: str
    text: str
    kind: Optional[str] = None
    language: Optional[str] = None
    timestamp: Optional[str] = None
    confidence: Optional[float] = None
    latency_ms: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    model_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role not in DISPLAY_ROLES:
            raise ValueError(f"Unsupported display role: {self.role}")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"confidence must be within [0, 1], got {self.confidence}"
            )
        _check_counter("latency_ms", self.latency_ms)
        _check_counter("prompt_tokens", self.prompt_tokens)
        _check_counter("completion_tokens", self.completion_tokens)
        _check_counter("total_tokens", self.total_tokens)

    @property
    def is_error(self) -> bool:
        return self.kind == KIND_ERROR


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """Role-tagged message as understood by the model transport."""

    role: str
    content: str


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counters reported by the model endpoint."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ConversationRequest:
    """Unit of work sent to the model transport."""

    model_endpoint_id: str
    messages: Tuple[ChatMessage, ...]
    temperature: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ChatCompletion:
    """Transport response: completions plus optional usage counters."""

    messages: Tuple[ChatMessage, ...] = field(default_factory=tuple)
    usage: Optional[TokenUsage] = None

    @property
    def content(self) -> str:
        """Text of the last assistant completion, or an empty string."""

        for message in reversed(self.messages):
            if message.role == ASSISTANT_ROLE:
                return message.content
        if self.messages:
            return self.messages[-1].content
        return ""


class TransportError(RuntimeError):
    """Raised when a model call fails (network, HTTP status, decoding)."""


class TransportTimeout(TransportError):
    """Raised when a model call exceeds the configured timeout."""


class TurnCancelled(TransportError):
    """Raised when the active turn is cancelled at a call boundary."""


class ChatTransport(Protocol):
    """Anything able to execute a chat completion request."""

    async def send(self, request: ConversationRequest) -> ChatCompletion:
        ...
