"""Agent Framework adapter that exposes chat sessions to DevUI and AG-UI."""

from __future__ import annotations

from typing import AsyncIterator, Iterable, Mapping, Optional, Sequence
from weakref import WeakKeyDictionary

from agent_framework import (
    AgentRunResponse,
    AgentRunResponseUpdate,
    AgentThread,
    ChatMessage as FrameworkChatMessage,
    Role,
    TextContent,
)

from .cli import format_message
from .config import AppSettings
from .models import USER_ROLE
from .sessions import ChatSession

MessageInput = (
    str
    | FrameworkChatMessage
    | Sequence[str | FrameworkChatMessage]
    | None
)

NEW_CHAT_COMMAND = "/new"


class ChatFrameworkAgent:
    """Streams chat turns of a per-thread :class:`ChatSession`."""

    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings
        self._id = "ai-chat-agent"
        self._name = "AI Chat Agent"
        self._description = (
            "Conversational assistant with mock technical interviews and a "
            "planner/writer story pipeline."
        )
        self._sessions: WeakKeyDictionary[AgentThread, ChatSession] = (
            WeakKeyDictionary()
        )

    # Properties required by AgentProtocol
    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def get_new_thread(self, **_: object) -> AgentThread:
        return AgentThread()

    def session_for(self, thread: AgentThread) -> ChatSession:
        session = self._sessions.get(thread)
        if session is None:
            session = ChatSession.create(settings=self._settings)
            self._sessions[thread] = session
        return session

    async def run(
        self,
        messages: MessageInput = None,
        *,
        thread: AgentThread | None = None,
        **_: object,
    ) -> AgentRunResponse:
        updates: list[AgentRunResponseUpdate] = []
        async for update in self.run_stream(messages, thread=thread):
            updates.append(update)
        if updates:
            return AgentRunResponse.from_agent_run_response_updates(updates)
        return AgentRunResponse()

    async def run_stream(
        self,
        messages: MessageInput = None,
        *,
        thread: AgentThread | None = None,
        **_: object,
    ) -> AsyncIterator[AgentRunResponseUpdate]:
        thread = thread or self.get_new_thread()
        session = self.session_for(thread)
        user_text = self._extract_user_text(messages)
        if not user_text:
            return

        if user_text == NEW_CHAT_COMMAND:
            await session.new_chat()
            return

        await self._append_message(thread, Role.USER, user_text)
        records = await session.send_message(user_text)
        for record in records:
            if record.role == USER_ROLE:
                continue
            text = format_message(record)
            await self._append_message(thread, Role.ASSISTANT, text)
            yield self._as_update(text)

    @staticmethod
    async def _append_message(thread: AgentThread, role: Role, text: str) -> None:
        if not text:
            return
        await thread.on_new_messages(FrameworkChatMessage(role=role, text=text))

    @staticmethod
    def _as_update(text: str) -> AgentRunResponseUpdate:
        return AgentRunResponseUpdate(contents=[TextContent(text=text)])

    def _extract_user_text(self, messages: MessageInput) -> str:
        if messages is None:
            return ""
        if isinstance(messages, str):
            return messages.strip()
        if isinstance(messages, FrameworkChatMessage):
            if messages.role == Role.USER:
                if messages.text:
                    return messages.text.strip()
                return self._coalesce_contents(messages.contents)
            return ""
        if isinstance(messages, Mapping):
            role = str(messages.get("role", "")).strip().lower()
            content = messages.get("content")
            if role in {"", Role.USER.value} and isinstance(content, str):
                return content.strip()
            return ""
        if isinstance(messages, (list, tuple)):
            for item in reversed(messages):
                text = self._extract_user_text(item)
                if text:
                    return text
        return ""

    @staticmethod
    def _coalesce_contents(contents: Optional[Iterable[object]]) -> str:
        fragments: list[str] = []
        for content in contents or ():
            text = getattr(content, "text", None)
            if isinstance(text, str):
                fragments.append(text)
        return " ".join(fragment.strip() for fragment in fragments if fragment)
