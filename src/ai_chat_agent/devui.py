"""DevUI integration for the AI chat agent."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

import agent_framework.devui as maf_devui

from .config import AppSettings
from .framework_agent import ChatFrameworkAgent
from .workflow_visualization import build_turn_workflow


def run_devui(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    auto_open: bool = True,
    tracing_enabled: bool = False,
) -> None:
    """Launch the DevUI server with the chat agent and its turn workflow."""

    entities = [ChatFrameworkAgent(settings=settings), build_turn_workflow()]
    maf_devui.serve(
        entities=entities,
        host=host,
        port=port,
        auto_open=auto_open,
        tracing_enabled=tracing_enabled,
    )


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m ai_chat_agent.devui",
        description="Launch the AI chat agent in the Agent Framework DevUI.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the DevUI server (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the DevUI server (default: 8080).",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not auto-open the DevUI in a browser window.",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Enable OpenTelemetry tracing for the DevUI server.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc
    run_devui(
        settings=settings,
        host=args.host,
        port=args.port,
        auto_open=not args.no_browser,
        tracing_enabled=args.tracing,
    )


if __name__ == "__main__":
    main()
