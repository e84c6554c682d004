import asyncio

import pytest

from ai_chat_agent.cli import HELP_TEXT, chat_loop, format_message, handle_command
from ai_chat_agent.models import KIND_ERROR, KIND_USER, DisplayMessage
from ai_chat_agent.sessions import ChatSession


@pytest.fixture
def session(make_orchestrator):
    return ChatSession(orchestrator=make_orchestrator())


def test_format_user_message():
    message = DisplayMessage(role="user", text="привет", timestamp="09:05")
    assert format_message(message) == "[09:05] Вы: привет"


def test_format_assistant_message_with_metadata():
    message = DisplayMessage(
        role="assistant",
        text="hi",
        kind="chat",
        language="ru",
        confidence=0.8,
        latency_ms=120,
        prompt_tokens=5,
        completion_tokens=2,
        total_tokens=7,
        model_name="Qwen3 235B",
    )
    rendered = format_message(message)
    assert rendered.startswith("Qwen3 235B (chat, ru, уверенность 0.80, 120 мс")
    assert "токены 5/2/7" in rendered
    assert rendered.endswith(":\nhi")


def test_format_error_message():
    message = DisplayMessage(role="assistant", text="Ошибка: x", kind="error")
    assert "❌" in format_message(message)


def test_models_command_marks_selected(session):
    listing = handle_command(session, "/models")
    lines = listing.splitlines()
    assert lines[0].startswith("* Qwen3 235B")
    assert len(lines) == 3


def test_model_and_temperature_commands(session):
    assert "GPT OSS 120B" in handle_command(session, "/model gpt oss")
    assert handle_command(session, "/temp 0.7") == "Температура: 0.7"
    assert handle_command(session, "/temp 1") == "Температура: 1"
    assert "not allowed" in handle_command(session, "/temp 0.5")
    assert "could not convert" in handle_command(session, "/temp abc")


def test_chain_of_thought_command(session):
    assert handle_command(session, "/cot on") == "Режим рассуждений включён"
    assert session.orchestrator.chain_of_thought
    assert handle_command(session, "/cot maybe") == "Использование: /cot on|off"


def test_quit_cancel_and_help(session):
    assert handle_command(session, "/quit") is None
    assert handle_command(session, "/cancel") == "Нет активного запроса"
    assert handle_command(session, "/unknown") == HELP_TEXT


def _scripted_reader(steps):
    """Feed input lines; a callable step is awaited first to sync with the turn."""

    pending = list(steps)

    async def read_line(_prompt):
        if not pending:
            raise EOFError
        step = pending.pop(0)
        if callable(step):
            await step()
            step = pending.pop(0)
        return step

    return read_line


async def test_cancel_command_reaches_running_turn(session, transport, capsys):
    transport.gate = asyncio.Event()
    transport.replies = ['{"type":"chat","content":"ok"}']

    async def turn_in_flight():
        while not transport.requests:
            await asyncio.sleep(0)

    async def turn_finished():
        while session.busy:
            await asyncio.sleep(0)

    reader = _scripted_reader(
        ["привет", turn_in_flight, "/cancel", turn_finished, "/quit"]
    )
    await chat_loop(session, read_line=reader)

    assert "Запрос отменён" in capsys.readouterr().out
    assert [message.kind for message in session.messages] == [KIND_USER, KIND_ERROR]
    assert "отменён" in session.messages[-1].text


async def test_chat_loop_cancels_unfinished_turns_on_eof(session, transport):
    transport.gate = asyncio.Event()
    transport.replies = ['{"type":"chat","content":"ok"}']

    async def turn_in_flight():
        while not transport.requests:
            await asyncio.sleep(0)

    await chat_loop(session, read_line=_scripted_reader(["привет", turn_in_flight, ""]))

    assert not session.busy
    assert [message.kind for message in session.messages] == [KIND_USER]
