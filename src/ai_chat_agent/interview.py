"""Keyword-driven tracker for the mock technical interview mode."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)

# Whole-utterance confirmations that start the interview.
START_TOKENS = frozenset({"да", "готов", "поехали", "начинай"})

# Substrings that stop it, wherever they appear.
STOP_TOKENS = ("останови", "заверши", "прекрати", "хватит")


class InterviewState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


def _normalize(utterance: str) -> str:
    return utterance.strip().casefold()


class InterviewTracker:
    """Two-state machine fed with every regular-chat utterance.

    The flag is advisory: it only changes the system prompt, the model is
    expected to follow the guidance. Starting requires an exact match
    against a start token, stopping only needs a stop token anywhere in
    the utterance.
    """

    def __init__(self) -> None:
        self._state = InterviewState.INACTIVE

    @property
    def state(self) -> InterviewState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is InterviewState.ACTIVE

    def track(self, utterance: str) -> InterviewState:
        normalized = _normalize(utterance)
        if any(token in normalized for token in STOP_TOKENS):
            self._transition(InterviewState.INACTIVE)
        elif normalized in START_TOKENS:
            self._transition(InterviewState.ACTIVE)
        return self._state

    def reset(self) -> None:
        self._state = InterviewState.INACTIVE

    def _transition(self, target: InterviewState) -> None:
        if target is not self._state:
            logger.info(
                "Interview state %s -> %s",
                self._state.value,
                target.value,
            )
        self._state = target
