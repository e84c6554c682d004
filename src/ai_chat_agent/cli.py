"""Command line entry-point for the AI chat agent."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Set

from .config import AppSettings, resolve_model
from .models import KIND_ERROR, KIND_SYSTEM, USER_ROLE, DisplayMessage
from .sessions import ChatSession

QUIT_COMMANDS = {"/quit", "/exit", "/q"}

HELP_TEXT = """Команды:
  /new               начать новый чат
  /models            список моделей
  /model <название>  выбрать модель
  /temp <значение>   задать температуру
  /cot on|off        режим рассуждений (chain-of-thought)
  /cancel            отменить текущий запрос
  /quit              выход"""


def format_message(message: DisplayMessage) -> str:
    """Render a transcript record as a single console block."""

    stamp = f"[{message.timestamp}] " if message.timestamp else ""
    if message.role == USER_ROLE:
        return f"{stamp}Вы: {message.text}"
    if message.kind == KIND_SYSTEM:
        return f"{stamp}ℹ️  {message.text}"
    if message.kind == KIND_ERROR:
        return f"{stamp}❌ {message.text}"
    details: List[str] = []
    if message.kind:
        details.append(message.kind)
    if message.language:
        details.append(message.language)
    if message.confidence is not None:
        details.append(f"уверенность {message.confidence:.2f}")
    if message.latency_ms is not None:
        details.append(f"{message.latency_ms} мс")
    if message.total_tokens is not None:
        details.append(
            "токены {prompt}/{completion}/{total}".format(
                prompt=message.prompt_tokens if message.prompt_tokens is not None else "?",
                completion=(
                    message.completion_tokens
                    if message.completion_tokens is not None
                    else "?"
                ),
                total=message.total_tokens,
            )
        )
    speaker = message.model_name or "Ассистент"
    suffix = f" ({', '.join(details)})" if details else ""
    return f"{stamp}{speaker}{suffix}:\n{message.text}"


def _print_record(message: Optional[DisplayMessage]) -> None:
    if message is None:
        print("--- новый чат ---")  # noqa: T201 - CLI output
        return
    if message.role == USER_ROLE:
        return
    print()  # noqa: T201
    print(format_message(message))  # noqa: T201


def handle_command(session: ChatSession, command_line: str) -> Optional[str]:
    """Apply a slash command; returns the text to show, or None to quit."""

    command, _, argument = command_line.strip().partition(" ")
    command = command.lower()
    argument = argument.strip()
    orchestrator = session.orchestrator
    if command in QUIT_COMMANDS:
        return None
    if command == "/models":
        lines = []
        for spec in orchestrator.catalog:
            marker = "*" if spec == orchestrator.model else " "
            temperatures = ", ".join(
                f"{value:g}" for value in spec.allowed_temperatures
            )
            lines.append(f"{marker} {spec.display_name} [{temperatures}]")
        return "\n".join(lines)
    if command == "/model":
        try:
            spec = session.select_model(argument)
        except ValueError as exc:
            return str(exc)
        return (
            f"Модель: {spec.display_name}, "
            f"температура {orchestrator.temperature:g}"
        )
    if command == "/temp":
        try:
            session.set_temperature(float(argument))
        except ValueError as exc:
            return str(exc)
        return f"Температура: {orchestrator.temperature:g}"
    if command == "/cot":
        if argument.lower() not in {"on", "off"}:
            return "Использование: /cot on|off"
        session.set_chain_of_thought(argument.lower() == "on")
        state = "включён" if orchestrator.chain_of_thought else "выключен"
        return f"Режим рассуждений {state}"
    if command == "/cancel":
        return "Запрос отменён" if session.cancel() else "Нет активного запроса"
    return HELP_TEXT


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def chat_loop(
    session: ChatSession,
    read_line: Callable[[str], Awaitable[str]] = _read_line,
) -> None:
    """Read commands and utterances until the user quits or closes stdin.

    Turns run as background tasks so that ``/cancel`` typed while the model
    is answering reaches the running turn. Unfinished turns are cancelled
    on exit.
    """

    turns: Set[asyncio.Task] = set()
    try:
        while True:
            try:
                user_text = await read_line("\nВы: ")
            except EOFError:
                break
            stripped = user_text.strip()
            if not stripped:
                continue
            if stripped == "/new":
                await session.new_chat()
                continue
            if stripped.startswith("/"):
                reply = handle_command(session, stripped)
                if reply is None:
                    break
                print(reply)  # noqa: T201
                continue
            turn = asyncio.create_task(session.send_message(user_text))
            turns.add(turn)
            turn.add_done_callback(turns.discard)
    finally:
        for turn in list(turns):
            turn.cancel()
        if turns:
            await asyncio.gather(*turns, return_exceptions=True)


async def run_chat(settings: AppSettings) -> None:
    """Interactive terminal chat until the user quits or closes stdin."""

    session = ChatSession.create(settings)
    session.subscribe(_print_record)
    orchestrator = session.orchestrator
    print(  # noqa: T201 - CLI output
        f"Модель: {orchestrator.model.display_name}, "
        f"температура {orchestrator.temperature:g}. /help — список команд."
    )
    await chat_loop(session)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ai-chat-agent",
        description="Chat with hosted LLMs: interviews, stories and Q&A",
    )
    parser.add_argument(
        "--model",
        help="Initial model display name (overrides MAF_MODEL).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        help="Initial temperature; must be allowed by the selected model.",
    )
    parser.add_argument(
        "--chain-of-thought",
        action="store_true",
        help="Ask the model to reason step by step.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print debug logs to stderr.",
    )
    parser.add_argument(
        "--devui",
        action="store_true",
        help="Launch the Microsoft Agent Framework DevUI instead of the CLI.",
    )
    parser.add_argument(
        "--agui",
        action="store_true",
        help="Serve the agent over AG-UI (FastAPI) instead of the CLI.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for DevUI/AG-UI (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="TCP port for DevUI (default 8080) or AG-UI (default 8081)",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not automatically launch a browser window for the DevUI.",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Enable OpenTelemetry tracing for the DevUI or AG-UI server.",
    )
    return parser.parse_args(argv)


def _apply_overrides(
    settings: AppSettings,
    args: argparse.Namespace,
) -> AppSettings:
    if args.model:
        model = resolve_model(settings.catalog, args.model)
        temperature = model.nearest_temperature(settings.initial_temperature)
        settings = replace(
            settings,
            initial_model=model,
            initial_temperature=temperature,
            model=replace(settings.model, default_model_id=model.endpoint_id),
        )
    if args.temperature is not None:
        if not settings.initial_model.allows(args.temperature):
            raise ValueError(
                f"Temperature {args.temperature:g} is not allowed for "
                f"{settings.initial_model.display_name}"
            )
        settings = replace(settings, initial_temperature=args.temperature)
    if args.chain_of_thought:
        settings = replace(settings, chain_of_thought=True)
    return settings


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Entry-point invoked from ``python -m ai_chat_agent``."""

    arg_list = list(argv) if argv is not None else sys.argv[1:]
    if arg_list and arg_list[0] in {"workflow-viz", "workflowviz", "workflow_viz"}:
        from .workflow_visualization import run_workflow_visualization_cli

        run_workflow_visualization_cli(arg_list[1:])
        return

    args = _parse_args(arg_list)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    try:
        settings = _apply_overrides(AppSettings.load(), args)
    except (RuntimeError, ValueError) as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc

    if args.devui:
        from .devui import run_devui

        run_devui(
            settings=settings,
            host=args.host,
            port=args.port or 8080,
            auto_open=not args.no_browser,
            tracing_enabled=args.tracing,
        )
        return
    if args.agui:
        from .agui import run_agui_server

        run_agui_server(
            settings=settings,
            host=args.host,
            port=args.port or 8081,
            tracing_enabled=args.tracing,
        )
        return

    asyncio.run(run_chat(settings))


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
