"""AI chat agent: interviews, stories and structured Q&A over hosted LLMs."""

from __future__ import annotations

from typing import Optional

from .models import DisplayMessage
from .orchestrator import ConversationOrchestrator
from .transcript import Transcript

__all__ = [
    "ConversationOrchestrator",
    "DisplayMessage",
    "Transcript",
    "run_cli",
]


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Proxy to :mod:`ai_chat_agent.cli.run_cli` for convenience."""

    from .cli import run_cli as _run_cli_impl

    _run_cli_impl(argv)
