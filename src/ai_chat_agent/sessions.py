"""Shared session orchestration for chat front-ends."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .config import AppSettings, ModelSpec
from .models import ChatTransport, DisplayMessage
from .orchestrator import ConversationOrchestrator, TurnToken
from .transcript import TranscriptListener

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatSession:
    """One conversation: serializes turns and owns the orchestrator.

    Front-ends may call :meth:`send_message` from any number of tasks;
    turns are processed strictly one at a time in arrival order, so the
    transcript never interleaves records of different turns.
    """

    orchestrator: ConversationOrchestrator
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _active_token: Optional[TurnToken] = field(default=None, init=False)
    _pending: int = field(default=0, init=False)

    @classmethod
    def create(
        cls,
        settings: AppSettings,
        transport: Optional[ChatTransport] = None,
    ) -> "ChatSession":
        if transport is None:
            from .maf_client import MAFChatClient

            transport = MAFChatClient(settings.model)
        return cls(
            orchestrator=ConversationOrchestrator.from_settings(
                settings,
                transport,
            )
        )

    @property
    def busy(self) -> bool:
        return self._pending > 0

    @property
    def messages(self) -> Tuple[DisplayMessage, ...]:
        return self.orchestrator.transcript.snapshot()

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        return self.orchestrator.transcript.subscribe(listener)

    async def send_message(self, user_text: str) -> List[DisplayMessage]:
        """Queue a turn behind any running one and return its records."""

        if not user_text or not user_text.strip():
            return []
        token = TurnToken()
        self._pending += 1
        try:
            async with self._lock:
                self._active_token = token
                try:
                    return await self.orchestrator.send_message(
                        user_text,
                        token=token,
                    )
                finally:
                    self._active_token = None
        finally:
            self._pending -= 1

    def cancel(self) -> bool:
        """Cancel the turn currently talking to the model, if any."""

        if self._active_token is None:
            return False
        logger.info("Cancelling the active turn")
        self._active_token.cancel()
        return True

    async def new_chat(self) -> None:
        """Cancel the running turn, then start from an empty transcript."""

        self.cancel()
        async with self._lock:
            self.orchestrator.new_chat()

    def select_model(self, name: str) -> ModelSpec:
        return self.orchestrator.select_model(name)

    def set_temperature(self, value: float) -> None:
        self.orchestrator.temperature = value

    def set_chain_of_thought(self, enabled: bool) -> None:
        self.orchestrator.chain_of_thought = enabled
