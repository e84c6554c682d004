import pytest

from ai_chat_agent.prompts import (
    CHAIN_OF_THOUGHT_NOTE,
    DIRECT_ANSWER_NOTE,
    INTERVIEW_ACTIVE_NOTE,
    INTERVIEW_IDLE_NOTE,
    AgentRole,
    build_agent_prompt,
    build_planner_prompt,
    build_summarizer_prompt,
    build_system_prompt,
    build_writer_prompt,
)


def test_system_prompt_describes_json_envelope():
    prompt = build_system_prompt()
    for key in ('"type"', '"content"', '"language"', '"confidence"'):
        assert key in prompt
    assert "{envelope}" not in prompt


def test_system_prompt_is_deterministic():
    assert build_system_prompt(True, True) == build_system_prompt(True, True)


@pytest.mark.parametrize(
    ("interview_active", "expected", "unexpected"),
    [
        (True, INTERVIEW_ACTIVE_NOTE, INTERVIEW_IDLE_NOTE),
        (False, INTERVIEW_IDLE_NOTE, INTERVIEW_ACTIVE_NOTE),
    ],
)
def test_interview_guidance_follows_state(interview_active, expected, unexpected):
    prompt = build_system_prompt(interview_active=interview_active)
    assert expected in prompt
    assert unexpected not in prompt


def test_idle_prompt_asks_for_interview_domain():
    prompt = build_system_prompt(interview_active=False)
    assert "в какой области" in prompt


def test_chain_of_thought_toggle():
    assert CHAIN_OF_THOUGHT_NOTE in build_system_prompt(chain_of_thought=True)
    assert DIRECT_ANSWER_NOTE in build_system_prompt(chain_of_thought=False)
    assert CHAIN_OF_THOUGHT_NOTE not in build_system_prompt(chain_of_thought=False)


def test_agent_role_prompts_are_distinct():
    prompts = {
        build_summarizer_prompt(),
        build_planner_prompt(),
        build_writer_prompt(),
    }
    assert len(prompts) == 3
    assert "plotPoints" in build_planner_prompt()


def test_agent_prompt_accepts_role_names():
    assert build_agent_prompt("planner") == build_agent_prompt(AgentRole.PLANNER)


def test_unknown_agent_role_is_rejected():
    with pytest.raises(ValueError):
        build_agent_prompt("critic")
