from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional, Sequence, Union

import pytest

from ai_chat_agent.config import build_model_catalog
from ai_chat_agent.models import (
    ASSISTANT_ROLE,
    ChatCompletion,
    ChatMessage,
    ConversationRequest,
    TokenUsage,
)
from ai_chat_agent.orchestrator import ConversationOrchestrator

Reply = Union[str, ChatCompletion, Exception]

FIXED_NOW = datetime(2024, 5, 17, 14, 32)


class FakeTransport:
    """Scripted transport: replies are consumed in order, requests recorded."""

    def __init__(
        self,
        replies: Sequence[Reply] = (),
        *,
        usage: Optional[TokenUsage] = None,
    ) -> None:
        self.replies: List[Reply] = list(replies)
        self.requests: List[ConversationRequest] = []
        self.usage = usage
        self.gate: Optional[asyncio.Event] = None

    async def send(self, request: ConversationRequest) -> ChatCompletion:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if not self.replies:
            raise AssertionError("FakeTransport ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ChatCompletion):
            return reply
        return ChatCompletion(
            messages=(ChatMessage(role=ASSISTANT_ROLE, content=reply),),
            usage=self.usage,
        )


@pytest.fixture
def catalog():
    return build_model_catalog("folder-1")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_orchestrator(catalog, transport):
    def _make(**overrides) -> ConversationOrchestrator:
        options = {
            "max_input_length": 8000,
            "request_timeout": 5.0,
            "clock": lambda: FIXED_NOW,
        }
        options.update(overrides)
        return ConversationOrchestrator(transport, catalog, **options)

    return _make
