"""Decoding of structured model replies with explicit fallbacks."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .models import ASSISTANT_ROLE, KIND_ASSISTANT, DisplayMessage, format_timestamp
from .prompts import STORY_PLAN_HEADER

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)

ModelT = TypeVar("ModelT", bound=BaseModel)


class AgentPayload(BaseModel):
    """JSON envelope the model is prompted to return on ordinary turns."""

    model_config = ConfigDict(extra="ignore")

    type: str
    content: str
    language: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class StoryPlan(BaseModel):
    """Intermediate artifact produced by the planner stage."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    title: str
    plot_points: List[str] = Field(
        validation_alias=AliasChoices("plotPoints", "plot_points"),
        min_length=1,
    )


@dataclass(frozen=True, slots=True)
class PayloadDecoded:
    payload: AgentPayload


@dataclass(frozen=True, slots=True)
class PlanDecoded:
    plan: StoryPlan


@dataclass(frozen=True, slots=True)
class SchemaError:
    """The model's reply did not match the expected envelope."""

    raw: str
    reason: str


PayloadResult = PayloadDecoded | SchemaError
PlanResult = PlanDecoded | SchemaError


def _strip_fences(text: str) -> str:
    match = _FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    return text


def _extract_json_object(
    raw: str,
    *,
    allow_surrounding_text: bool = False,
) -> Tuple[Optional[Dict[str, Any]], str]:
    """Return the JSON object in ``raw`` and a failure reason.

    Only a bare or fenced object is accepted unless ``allow_surrounding_text``
    is set, in which case the first ``{`` to last ``}`` slice is tried.
    """

    text = _strip_fences(raw.strip())
    if not text:
        return None, "пустой ответ"
    candidate = text
    if not candidate.startswith("{"):
        if not allow_surrounding_text:
            return None, "ответ не является JSON-объектом"
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            return None, "ответ не содержит JSON-объекта"
        candidate = text[start:end + 1]
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return None, f"некорректный JSON: {exc.msg}"
    if not isinstance(payload, dict):
        return None, "ожидался JSON-объект"
    return payload, ""


def _describe_validation_error(exc: ValidationError) -> str:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "root"
        details.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(details)


def _decode(
    raw: str,
    model: Type[ModelT],
    *,
    allow_surrounding_text: bool = False,
) -> Tuple[Optional[ModelT], str]:
    data, reason = _extract_json_object(
        raw,
        allow_surrounding_text=allow_surrounding_text,
    )
    if data is None:
        return None, reason
    try:
        return model.model_validate(data), ""
    except ValidationError as exc:
        return None, _describe_validation_error(exc)


def decode_agent_payload(raw: str) -> PayloadResult:
    """Decode a raw reply into :class:`AgentPayload` without raising."""

    payload, reason = _decode(raw, AgentPayload)
    if payload is None:
        logger.debug("Agent payload rejected (%s): %r", reason, raw)
        return SchemaError(raw=raw, reason=reason)
    return PayloadDecoded(payload=payload)


def decode_story_plan(raw: str) -> PlanResult:
    """Decode the planner reply into :class:`StoryPlan` without raising.

    Planner output is an intermediate artifact, so a plan wrapped in a
    sentence of prose is still accepted.
    """

    plan, reason = _decode(raw, StoryPlan, allow_surrounding_text=True)
    if plan is None:
        logger.debug("Story plan rejected (%s): %r", reason, raw)
        return SchemaError(raw=raw, reason=reason)
    return PlanDecoded(plan=plan)


def parse_assistant_reply(
    raw: str,
    *,
    timestamp: Optional[str] = None,
) -> DisplayMessage:
    """Turn a raw model reply into a display record, falling back to raw text."""

    stamp = timestamp if timestamp is not None else format_timestamp()
    match decode_agent_payload(raw):
        case PayloadDecoded(payload=payload):
            return DisplayMessage(
                role=ASSISTANT_ROLE,
                kind=payload.type,
                text=payload.content,
                language=payload.language,
                confidence=payload.confidence,
                timestamp=stamp,
            )
        case SchemaError():
            return DisplayMessage(
                role=ASSISTANT_ROLE,
                kind=KIND_ASSISTANT,
                text=raw,
                timestamp=stamp,
            )


def render_story_plan(plan: StoryPlan) -> str:
    """Readable summary of a story plan: title followed by numbered points."""

    lines = [STORY_PLAN_HEADER.format(title=plan.title.strip())]
    lines.extend(
        f"{index}. {point.strip()}"
        for index, point in enumerate(plan.plot_points, start=1)
    )
    return "\n".join(lines)
