"""Append-only conversation transcript shared with the display layer."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Optional, Tuple

from .models import ChatMessage, DisplayMessage

logger = logging.getLogger(__name__)

# Receives each appended record, or ``None`` when the transcript is cleared.
TranscriptListener = Callable[[Optional[DisplayMessage]], None]


class Transcript:
    """Ordered display records of one chat session.

    Records are only ever appended at the tail; ``clear`` exists for the
    "new chat" action and drops the whole sequence at once.
    """

    def __init__(self) -> None:
        self._messages: List[DisplayMessage] = []
        self._listeners: List[TranscriptListener] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[DisplayMessage]:
        return iter(self.snapshot())

    def append(self, message: DisplayMessage) -> None:
        self._messages.append(message)
        self._notify(message)

    def clear(self) -> None:
        self._messages = []
        self._notify(None)

    def snapshot(self) -> Tuple[DisplayMessage, ...]:
        """Immutable view of the records appended so far."""

        return tuple(self._messages)

    def as_chat_messages(self) -> List[ChatMessage]:
        """Flatten the transcript into role/content pairs for the model."""

        return [
            ChatMessage(role=message.role, content=message.text)
            for message in self.snapshot()
        ]

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        """Register a display sink; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, message: Optional[DisplayMessage]) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Transcript listener failed")
