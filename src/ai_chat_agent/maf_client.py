"""Thin wrappers around Microsoft Agent Framework chat completion clients.

This module centralizes the integration with the Microsoft Agent Framework
(MAF) so the rest of the application can stay framework-agnostic. It loads
the appropriate client implementation at runtime based on the configured
provider and exposes it through the :class:`~.models.ChatTransport`
protocol. Every failure raised by the underlying client is reported as a
:class:`~.models.TransportError`.
"""

from __future__ import annotations

import logging
from importlib import import_module
from typing import Any, Iterable, List, Optional

from agent_framework import ChatMessage as MAFChatMessage, Role

from .config import ModelSettings
from .models import (
    ASSISTANT_ROLE,
    ChatCompletion,
    ChatMessage,
    ConversationRequest,
    TokenUsage,
    TransportError,
)

logger = logging.getLogger(__name__)


def _coerce_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError as exc:
        raise ValueError(
            "Unsupported role for MAF chat message: {role}".format(role=role)
        ) from exc


def _role_name(role: Any) -> str:
    value = getattr(role, "value", role)
    return str(value) if value is not None else ASSISTANT_ROLE


class MAFIntegrationError(RuntimeError):
    """Raised when the MAF client cannot be initialized."""


class MAFChatClient:
    """Transport that dispatches chat completion calls through MAF clients."""

    def __init__(self, settings: ModelSettings) -> None:
        self._settings = settings
        self._client = self._create_client(settings)

    @staticmethod
    def _create_client(settings: ModelSettings):
        provider = settings.provider.lower()
        try:
            if provider in {"azure-openai", "azure_openai", "azure"}:
                module = import_module("agent_framework.azure")
                client_cls = getattr(module, "AzureOpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    deployment_name=settings.default_model_id,
                    endpoint=settings.endpoint,
                    api_version=settings.api_version,
                )
            if provider in {"openai", "oai", "yandex"}:
                module = import_module("agent_framework.openai")
                client_cls = getattr(module, "OpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    model_id=settings.default_model_id,
                    base_url=settings.endpoint,
                )
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                "Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
                .format(missing=missing)
            ) from exc
        raise MAFIntegrationError(
            f"Unsupported MAF provider '{settings.provider}'."
        )

    @staticmethod
    def _merge_consecutive_roles(
        messages: Iterable[ChatMessage],
    ) -> List[ChatMessage]:
        """Combine adjacent user/assistant messages that share a role.

        Chat templates expect user and assistant turns to alternate. A
        replayed transcript can hold several assistant records in a row (a
        story plan followed by the story, or an error notice), so their
        contents are merged to keep the alternation. System messages are
        never merged.
        """

        merged: List[ChatMessage] = []
        for message in messages:
            if (
                merged
                and merged[-1].role == message.role
                and message.role != "system"
            ):
                previous = merged[-1]
                merged[-1] = ChatMessage(
                    role=previous.role,
                    content=f"{previous.content}\n\n{message.content}".strip(),
                )
                continue
            merged.append(message)
        return merged

    @staticmethod
    def _to_usage(details: Any) -> Optional[TokenUsage]:
        if details is None:
            return None
        return TokenUsage(
            prompt_tokens=getattr(details, "input_token_count", None),
            completion_tokens=getattr(details, "output_token_count", None),
            total_tokens=getattr(details, "total_token_count", None),
        )

    @classmethod
    def _to_completion(cls, response: Any) -> ChatCompletion:
        messages = tuple(
            ChatMessage(role=_role_name(message.role), content=message.text or "")
            for message in (getattr(response, "messages", None) or [])
        )
        if not messages:
            messages = (
                ChatMessage(
                    role=ASSISTANT_ROLE,
                    content=getattr(response, "text", "") or "",
                ),
            )
        return ChatCompletion(
            messages=messages,
            usage=cls._to_usage(getattr(response, "usage_details", None)),
        )

    async def send(self, request: ConversationRequest) -> ChatCompletion:
        """Execute a chat completion call through the underlying MAF client."""

        merged_messages = self._merge_consecutive_roles(request.messages)
        payload: List[MAFChatMessage] = [
            MAFChatMessage(role=_coerce_role(msg.role), text=msg.content)
            for msg in merged_messages
        ]
        # Agent Framework chat clients expose an async `get_response` method
        # returning a ChatResponse with `messages` and `usage_details`.
        try:
            response = await self._client.get_response(
                messages=payload,
                model_id=request.model_endpoint_id,
                temperature=request.temperature,
                max_tokens=self._settings.max_output_tokens,
            )
        except Exception as exc:
            logger.warning(
                "Chat completion via %s failed: %s",
                request.model_endpoint_id,
                exc,
            )
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        return self._to_completion(response)
