import asyncio
import json

import pytest

from ai_chat_agent.config import ModelSpec
from ai_chat_agent.models import (
    KIND_ERROR,
    KIND_STORY,
    KIND_STORY_PLAN,
    KIND_SYSTEM,
    KIND_USER,
    ChatCompletion,
    ChatMessage,
    TokenUsage,
    TransportError,
)
from ai_chat_agent.orchestrator import (
    ConversationOrchestrator,
    TurnToken,
    is_story_request,
)
from ai_chat_agent.prompts import (
    INTERVIEW_ACTIVE_NOTE,
    build_planner_prompt,
    build_summarizer_prompt,
    build_writer_prompt,
)

PLAN = json.dumps(
    {"type": "story_plan", "title": "Сова", "plotPoints": ["лес", "ночь"]},
    ensure_ascii=False,
)
CHAT_REPLY = '{"type":"chat","content":"hi","language":"ru","confidence":0.8}'


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("напиши рассказ о сове", True),
        ("Напиши РАССКАЗ о сове", True),
        ("  напиши рассказ о море", True),
        ("расскажи про сову", False),
        ("пожалуйста, напиши рассказ о сове", False),
    ],
)
def test_story_request_detection(text, expected):
    assert is_story_request(text) is expected


@pytest.mark.parametrize("utterance", ["", "   ", "\n\t"])
async def test_blank_input_is_noop(make_orchestrator, transport, utterance):
    orchestrator = make_orchestrator()
    assert await orchestrator.send_message(utterance) == []
    assert len(orchestrator.transcript) == 0
    assert transport.requests == []


async def test_regular_chat_appends_user_and_reply(make_orchestrator, transport):
    transport.replies = [CHAT_REPLY]
    transport.usage = TokenUsage(prompt_tokens=12, completion_tokens=3, total_tokens=15)
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("привет")

    assert [record.kind for record in records] == [KIND_USER, "chat"]
    assert orchestrator.transcript.snapshot() == tuple(records)
    user, reply = records
    assert user.text == "привет"
    assert user.timestamp == "14:32"
    assert reply.text == "hi"
    assert reply.confidence == 0.8
    assert reply.model_name == orchestrator.model.display_name
    assert reply.prompt_tokens == 12
    assert reply.completion_tokens == 3
    assert reply.total_tokens == 15
    assert reply.latency_ms is not None and reply.latency_ms >= 0

    (request,) = transport.requests
    assert request.model_endpoint_id == orchestrator.model.endpoint_id
    assert request.temperature == orchestrator.temperature
    assert request.messages[0].role == "system"
    assert request.messages[-1] == ChatMessage(role="user", content="привет")


async def test_unstructured_reply_is_shown_verbatim(make_orchestrator, transport):
    transport.replies = ["просто текст"]
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("вопрос")

    assert records[-1].kind == "assistant"
    assert records[-1].text == "просто текст"


async def test_history_is_replayed_before_new_utterance(make_orchestrator, transport):
    transport.replies = [CHAT_REPLY, CHAT_REPLY]
    orchestrator = make_orchestrator()

    await orchestrator.send_message("первый")
    await orchestrator.send_message("второй")

    second = transport.requests[1]
    assert [message.role for message in second.messages] == [
        "system",
        "user",
        "assistant",
        "user",
    ]
    assert second.messages[1].content == "первый"
    assert second.messages[2].content == "hi"
    assert second.messages[3].content == "второй"


async def test_interview_state_shapes_system_prompt(make_orchestrator, transport):
    transport.replies = [CHAT_REPLY]
    orchestrator = make_orchestrator()

    await orchestrator.send_message("Да")

    assert orchestrator.interview_active
    assert INTERVIEW_ACTIVE_NOTE in transport.requests[0].messages[0].content


@pytest.mark.parametrize(("length", "summarized"), [(10, False), (11, True)])
async def test_long_input_is_summarized_first(
    make_orchestrator, transport, length, summarized
):
    transport.replies = ["краткий пересказ", CHAT_REPLY] if summarized else [CHAT_REPLY]
    orchestrator = make_orchestrator(max_input_length=10)
    utterance = "ы" * length

    records = await orchestrator.send_message(utterance)

    if summarized:
        assert len(transport.requests) == 2
        summarizer, chat = transport.requests
        assert summarizer.messages[0].content == build_summarizer_prompt()
        assert summarizer.messages[1].content == utterance
        assert summarizer.temperature == 0.0
        assert chat.messages[-1].content == "краткий пересказ"
        assert [record.kind for record in records] == [KIND_USER, KIND_SYSTEM, "chat"]
        assert records[0].text == utterance
    else:
        assert len(transport.requests) == 1
        assert [record.kind for record in records] == [KIND_USER, "chat"]


async def test_empty_summary_ends_turn_with_error(make_orchestrator, transport):
    transport.replies = ["   "]
    orchestrator = make_orchestrator(max_input_length=5)

    records = await orchestrator.send_message("очень длинный текст")

    assert [record.kind for record in records] == [KIND_USER, KIND_SYSTEM, KIND_ERROR]
    assert len(transport.requests) == 1


async def test_story_pipeline_uses_planner_and_writer_models(
    make_orchestrator, transport, catalog
):
    transport.replies = [PLAN, "Сова\nЖила-была сова."]
    transport.usage = TokenUsage(prompt_tokens=40, completion_tokens=200, total_tokens=240)
    orchestrator = make_orchestrator(model=catalog[2])

    records = await orchestrator.send_message("Напиши РАССКАЗ о сове")

    planner_request, writer_request = transport.requests
    assert planner_request.model_endpoint_id == catalog[0].endpoint_id
    assert planner_request.messages[0].content == build_planner_prompt()
    assert writer_request.model_endpoint_id == catalog[1].endpoint_id
    assert writer_request.messages[0].content == build_writer_prompt()
    assert writer_request.messages[1].content == PLAN

    assert [record.kind for record in records] == [KIND_USER, KIND_STORY_PLAN, KIND_STORY]
    plan_record, story_record = records[1:]
    assert "Сова" in plan_record.text
    assert "1. лес" in plan_record.text
    assert story_record.text == "Сова\nЖила-была сова."
    assert story_record.model_name == "GPT OSS 120B"
    assert story_record.total_tokens == 240
    assert story_record.latency_ms is not None


async def test_story_pipeline_does_not_touch_interview_state(
    make_orchestrator, transport
):
    transport.replies = [PLAN, "история"]
    orchestrator = make_orchestrator()

    await orchestrator.send_message("напиши рассказ о том, как хватит спать")

    assert not orchestrator.interview_active


async def test_unparseable_plan_skips_writer(make_orchestrator, transport):
    transport.replies = ["план: сова летит"]
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("напиши рассказ о сове")

    assert len(transport.requests) == 1
    assert [record.kind for record in records] == [KIND_USER, KIND_ERROR]
    assert "план: сова летит" in records[-1].text


async def test_writer_failure_keeps_plan_record(make_orchestrator, transport):
    transport.replies = [PLAN, TransportError("HTTP 503")]
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("напиши рассказ о сове")

    assert [record.kind for record in records] == [KIND_USER, KIND_STORY_PLAN, KIND_ERROR]
    assert "HTTP 503" in records[-1].text


async def test_transport_error_yields_single_error_record(make_orchestrator, transport):
    transport.replies = [TransportError("connection reset")]
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("привет")

    assert [record.kind for record in records] == [KIND_USER, KIND_ERROR]
    assert records[-1].is_error
    assert records[-1].text == "Ошибка: connection reset"
    assert len(orchestrator.transcript) == 2


async def test_slow_call_times_out(make_orchestrator, transport):
    transport.gate = asyncio.Event()
    transport.replies = [CHAT_REPLY]
    orchestrator = make_orchestrator(request_timeout=0.05)

    records = await orchestrator.send_message("привет")

    assert [record.kind for record in records] == [KIND_USER, KIND_ERROR]
    assert "0.05" in records[-1].text


async def test_cancelled_token_stops_turn(make_orchestrator, transport):
    transport.gate = asyncio.Event()
    transport.replies = [CHAT_REPLY]
    orchestrator = make_orchestrator()
    token = TurnToken()

    turn = asyncio.create_task(orchestrator.send_message("привет", token=token))
    while not transport.requests:
        await asyncio.sleep(0)
    token.cancel()
    records = await turn

    assert [record.kind for record in records] == [KIND_USER, KIND_ERROR]
    assert "отменён" in records[-1].text


async def test_pre_cancelled_token_makes_no_call(make_orchestrator, transport):
    orchestrator = make_orchestrator()
    token = TurnToken()
    token.cancel()

    records = await orchestrator.send_message("привет", token=token)

    assert transport.requests == []
    assert records[-1].kind == KIND_ERROR


async def test_completion_without_usage_leaves_counters_empty(
    make_orchestrator, transport
):
    transport.replies = [
        ChatCompletion(messages=(ChatMessage(role="assistant", content=CHAT_REPLY),))
    ]
    orchestrator = make_orchestrator()

    records = await orchestrator.send_message("привет")

    assert records[-1].total_tokens is None
    assert records[-1].prompt_tokens is None


async def test_new_chat_resets_transcript_and_interview(make_orchestrator, transport):
    transport.replies = [CHAT_REPLY]
    orchestrator = make_orchestrator()
    await orchestrator.send_message("готов")

    orchestrator.new_chat()

    assert len(orchestrator.transcript) == 0
    assert not orchestrator.interview_active


def test_temperature_must_be_allowed(make_orchestrator):
    orchestrator = make_orchestrator()
    orchestrator.temperature = 0.6
    assert orchestrator.temperature == 0.6
    with pytest.raises(ValueError):
        orchestrator.temperature = 0.5


def test_switching_model_snaps_temperature(make_orchestrator):
    orchestrator = make_orchestrator()
    orchestrator.temperature = 0.6
    spec = orchestrator.select_model("gpt oss")
    assert spec.display_name == "GPT OSS 120B"
    assert orchestrator.temperature == 0.7


def test_unknown_model_is_rejected(make_orchestrator):
    orchestrator = make_orchestrator()
    with pytest.raises(ValueError):
        orchestrator.select_model("llama")


async def test_long_story_request_yields_notice_plan_and_story(
    make_orchestrator, transport, catalog
):
    transport.replies = ["напиши рассказ о сове в лесу", PLAN, "Сова\nЖила-была сова."]
    orchestrator = make_orchestrator(max_input_length=20)
    utterance = "напиши рассказ о сове, которая жила в старом лесу и любила звёзды"

    records = await orchestrator.send_message(utterance)

    assert [record.kind for record in records] == [
        KIND_USER,
        KIND_SYSTEM,
        KIND_STORY_PLAN,
        KIND_STORY,
    ]
    summarizer, planner, writer = transport.requests
    assert summarizer.messages[1].content == utterance
    assert planner.model_endpoint_id == catalog[0].endpoint_id
    assert planner.messages[1].content == "напиши рассказ о сове в лесу"
    assert writer.model_endpoint_id == catalog[1].endpoint_id


async def test_story_pipeline_falls_back_to_selected_model(transport):
    mistral = ModelSpec("Mistral Large", "gpt://f/mistral/latest", (0.0, 0.5))
    orchestrator = ConversationOrchestrator(
        transport,
        [mistral],
        max_input_length=8000,
        request_timeout=5.0,
    )
    transport.replies = [PLAN, "история"]

    records = await orchestrator.send_message("напиши рассказ о сове")

    assert [request.model_endpoint_id for request in transport.requests] == [
        mistral.endpoint_id,
        mistral.endpoint_id,
    ]
    assert [request.temperature for request in transport.requests] == [0.5, 0.5]
    assert records[-1].kind == KIND_STORY
    assert records[-1].model_name == "Mistral Large"
