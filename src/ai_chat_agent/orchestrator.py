"""Conversation orchestration: routing, model calls and transcript updates."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .config import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TEMPERATURE,
    AppSettings,
    ModelSpec,
    find_model,
    resolve_model,
)
from .interview import InterviewTracker
from .models import (
    ASSISTANT_ROLE,
    KIND_ERROR,
    KIND_STORY,
    KIND_STORY_PLAN,
    KIND_SYSTEM,
    KIND_USER,
    SYSTEM_ROLE,
    USER_ROLE,
    ChatCompletion,
    ChatMessage,
    ChatTransport,
    ConversationRequest,
    DisplayMessage,
    TokenUsage,
    TransportError,
    TransportTimeout,
    TurnCancelled,
    format_timestamp,
)
from .parsing import (
    PlanDecoded,
    SchemaError,
    decode_story_plan,
    parse_assistant_reply,
    render_story_plan,
)
from .prompts import (
    CANCELLED_REASON,
    ERROR_PREFIX,
    PLAN_PARSE_ERROR,
    TIMEOUT_REASON,
    TRUNCATION_NOTICE,
    build_planner_prompt,
    build_summarizer_prompt,
    build_system_prompt,
    build_writer_prompt,
)
from .transcript import Transcript

logger = logging.getLogger(__name__)

STORY_PREFIX = "напиши рассказ о"
PLANNER_MODEL_PREFIX = "Qwen3"
WRITER_MODEL_PREFIX = "GPT OSS"
SUMMARIZER_TEMPERATURE = 0.0


def is_story_request(text: str) -> bool:
    """Story requests start with "напиши рассказ о", in any letter case."""

    return text.strip().casefold().startswith(STORY_PREFIX)


class TurnToken:
    """Cancellation token checked at every model-call boundary of a turn."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class TurnFailure(Exception):
    """A pipeline step failed; the turn ends with a single error record."""

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


def _usage_fields(usage: Optional[TokenUsage]) -> dict:
    if usage is None:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class ConversationOrchestrator:
    """Turns user utterances into model calls and transcript records.

    A turn appends the user record first, optionally summarizes over-long
    input, then runs either the planner/writer story pipeline or a regular
    chat call. Transport failures end the turn with exactly one error
    record; records appended earlier in the turn are kept.
    """

    def __init__(
        self,
        transport: ChatTransport,
        catalog: Sequence[ModelSpec],
        *,
        max_input_length: int,
        model: Optional[ModelSpec] = None,
        temperature: Optional[float] = None,
        chain_of_thought: bool = False,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transcript: Optional[Transcript] = None,
        tracker: Optional[InterviewTracker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not catalog:
            raise ValueError("Model catalog must not be empty.")
        if max_input_length < 1:
            raise ValueError("max_input_length must be at least 1")
        if request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self._transport = transport
        self._catalog: Tuple[ModelSpec, ...] = tuple(catalog)
        self._model = model or self._catalog[0]
        if temperature is None:
            temperature = self._model.nearest_temperature(DEFAULT_TEMPERATURE)
        self._temperature = 0.0
        self.temperature = temperature
        self._chain_of_thought = chain_of_thought
        self._max_input_length = max_input_length
        self._request_timeout = request_timeout
        self._transcript = transcript if transcript is not None else Transcript()
        self._tracker = tracker if tracker is not None else InterviewTracker()
        self._clock = clock or datetime.now

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        transport: ChatTransport,
    ) -> "ConversationOrchestrator":
        return cls(
            transport,
            settings.catalog,
            model=settings.initial_model,
            temperature=settings.initial_temperature,
            chain_of_thought=settings.chain_of_thought,
            max_input_length=settings.max_input_length,
            request_timeout=settings.request_timeout,
        )

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def catalog(self) -> Tuple[ModelSpec, ...]:
        return self._catalog

    @property
    def model(self) -> ModelSpec:
        return self._model

    @model.setter
    def model(self, spec: ModelSpec) -> None:
        self._model = spec
        if not spec.allows(self._temperature):
            snapped = spec.nearest_temperature(self._temperature)
            logger.info(
                "Temperature %s not allowed for %s; using %s",
                self._temperature,
                spec.display_name,
                snapped,
            )
            self._temperature = snapped

    def select_model(self, name: str) -> ModelSpec:
        """Switch the active model by display name."""

        self.model = resolve_model(self._catalog, name)
        return self._model

    @property
    def temperature(self) -> float:
        return self._temperature

    @temperature.setter
    def temperature(self, value: float) -> None:
        if not self._model.allows(value):
            allowed = ", ".join(
                f"{candidate:g}" for candidate in self._model.allowed_temperatures
            )
            raise ValueError(
                f"Temperature {value:g} is not allowed for "
                f"{self._model.display_name} (allowed: {allowed})"
            )
        self._temperature = float(value)

    @property
    def chain_of_thought(self) -> bool:
        return self._chain_of_thought

    @chain_of_thought.setter
    def chain_of_thought(self, enabled: bool) -> None:
        self._chain_of_thought = bool(enabled)

    @property
    def interview_active(self) -> bool:
        return self._tracker.active

    @property
    def max_input_length(self) -> int:
        return self._max_input_length

    def new_chat(self) -> None:
        """Drop the transcript and leave interview mode."""

        self._transcript.clear()
        self._tracker.reset()
        logger.info("Started a new chat")

    async def send_message(
        self,
        utterance: str,
        *,
        token: Optional[TurnToken] = None,
    ) -> List[DisplayMessage]:
        """Process one user utterance; returns the records this turn appended."""

        if not utterance or not utterance.strip():
            return []
        token = token or TurnToken()
        history = self._transcript.as_chat_messages()
        appended: List[DisplayMessage] = []

        def emit(message: DisplayMessage) -> None:
            self._transcript.append(message)
            appended.append(message)

        emit(
            DisplayMessage(
                role=USER_ROLE,
                kind=KIND_USER,
                text=utterance,
                timestamp=self._timestamp(),
            )
        )
        try:
            working = await self._triage(utterance, token, emit)
            if is_story_request(working):
                logger.info("Routing turn to the story pipeline")
                await self._run_story_pipeline(working, token, emit)
            else:
                logger.info("Routing turn to regular chat")
                await self._run_regular_chat(working, history, token, emit)
        except TurnFailure as failure:
            logger.warning("Turn failed during %s: %s", failure.stage, failure.cause)
            emit(self._error_record(ERROR_PREFIX.format(reason=failure.cause)))
        return appended

    async def _triage(
        self,
        utterance: str,
        token: TurnToken,
        emit: Callable[[DisplayMessage], None],
    ) -> str:
        length = len(utterance)
        if length <= self._max_input_length:
            return utterance
        logger.info(
            "Input of %d chars exceeds %d; summarizing first",
            length,
            self._max_input_length,
        )
        emit(
            DisplayMessage(
                role=ASSISTANT_ROLE,
                kind=KIND_SYSTEM,
                text=TRUNCATION_NOTICE.format(
                    length=length,
                    limit=self._max_input_length,
                ),
                timestamp=self._timestamp(),
            )
        )
        completion, _ = await self._call_model(
            stage="summarizer",
            model=self._model,
            system_prompt=build_summarizer_prompt(),
            messages=[ChatMessage(role=USER_ROLE, content=utterance)],
            temperature=SUMMARIZER_TEMPERATURE,
            token=token,
        )
        summary = completion.content.strip()
        if not summary:
            raise TurnFailure(
                "summarizer",
                TransportError("модель вернула пустой пересказ"),
            )
        return summary

    async def _run_story_pipeline(
        self,
        prompt: str,
        token: TurnToken,
        emit: Callable[[DisplayMessage], None],
    ) -> None:
        planner = find_model(self._catalog, PLANNER_MODEL_PREFIX, self._model)
        writer = find_model(self._catalog, WRITER_MODEL_PREFIX, self._model)
        assert planner is not None and writer is not None  # fallback given

        completion, _ = await self._call_model(
            stage="planner",
            model=planner,
            system_prompt=build_planner_prompt(),
            messages=[ChatMessage(role=USER_ROLE, content=prompt)],
            temperature=planner.nearest_temperature(self._temperature),
            token=token,
        )
        raw_plan = completion.content
        match decode_story_plan(raw_plan):
            case SchemaError(reason=reason):
                logger.warning("Planner output is not a valid story plan: %s", reason)
                emit(
                    self._error_record(
                        PLAN_PARSE_ERROR.format(reason=reason, raw=raw_plan),
                        model_name=planner.display_name,
                    )
                )
                return
            case PlanDecoded(plan=plan):
                emit(
                    DisplayMessage(
                        role=ASSISTANT_ROLE,
                        kind=KIND_STORY_PLAN,
                        text=render_story_plan(plan),
                        timestamp=self._timestamp(),
                        model_name=planner.display_name,
                    )
                )

        completion, latency_ms = await self._call_model(
            stage="writer",
            model=writer,
            system_prompt=build_writer_prompt(),
            messages=[ChatMessage(role=USER_ROLE, content=raw_plan)],
            temperature=writer.nearest_temperature(self._temperature),
            token=token,
        )
        emit(
            DisplayMessage(
                role=ASSISTANT_ROLE,
                kind=KIND_STORY,
                text=completion.content.strip(),
                timestamp=self._timestamp(),
                latency_ms=latency_ms,
                model_name=writer.display_name,
                **_usage_fields(completion.usage),
            )
        )

    async def _run_regular_chat(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        token: TurnToken,
        emit: Callable[[DisplayMessage], None],
    ) -> None:
        self._tracker.track(prompt)
        system_prompt = build_system_prompt(
            chain_of_thought=self._chain_of_thought,
            interview_active=self._tracker.active,
        )
        messages = list(history)
        messages.append(ChatMessage(role=USER_ROLE, content=prompt))
        completion, latency_ms = await self._call_model(
            stage="chat",
            model=self._model,
            system_prompt=system_prompt,
            messages=messages,
            temperature=self._temperature,
            token=token,
        )
        reply = parse_assistant_reply(
            completion.content,
            timestamp=self._timestamp(),
        )
        emit(
            replace(
                reply,
                latency_ms=latency_ms,
                model_name=self._model.display_name,
                **_usage_fields(completion.usage),
            )
        )

    async def _call_model(
        self,
        *,
        stage: str,
        model: ModelSpec,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        token: TurnToken,
    ) -> Tuple[ChatCompletion, int]:
        request = ConversationRequest(
            model_endpoint_id=model.endpoint_id,
            messages=(
                ChatMessage(role=SYSTEM_ROLE, content=system_prompt),
                *messages,
            ),
            temperature=temperature,
        )
        logger.debug(
            "Calling %s for %s with %d message(s)",
            model.display_name,
            stage,
            len(request.messages),
        )
        started = time.perf_counter()
        try:
            completion = await self._await_call(request, token)
        except TransportError as exc:
            raise TurnFailure(stage, exc) from exc
        latency_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "%s answered %s in %d ms",
            model.display_name,
            stage,
            latency_ms,
        )
        return completion, latency_ms

    async def _await_call(
        self,
        request: ConversationRequest,
        token: TurnToken,
    ) -> ChatCompletion:
        if token.cancelled:
            raise TurnCancelled(CANCELLED_REASON)
        call = asyncio.ensure_future(self._transport.send(request))
        cancel_wait = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {call, cancel_wait},
                timeout=self._request_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_wait.cancel()
            if not call.done():
                call.cancel()
        if call in done:
            return call.result()
        if token.cancelled:
            raise TurnCancelled(CANCELLED_REASON)
        raise TransportTimeout(TIMEOUT_REASON.format(seconds=self._request_timeout))

    def _error_record(
        self,
        text: str,
        *,
        model_name: Optional[str] = None,
    ) -> DisplayMessage:
        return DisplayMessage(
            role=ASSISTANT_ROLE,
            kind=KIND_ERROR,
            text=text,
            timestamp=self._timestamp(),
            model_name=model_name,
        )

    def _timestamp(self) -> str:
        return format_timestamp(self._clock())
