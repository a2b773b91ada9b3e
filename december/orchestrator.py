"""
Two-phase conversational turn.

    ingest -> contextualize -> primary call -> tool-call check
           -> (augmentation call) -> command execution -> finalize

``send_message`` runs a turn buffered; ``send_message_stream`` yields
``user``, ``assistant``*, ``tool_processing``, ``assistant``*, ``done`` events.
Only a finalized assistant message is ever stored in the session. Turns on
one session run one at a time under the session's ``turn_lock``.
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from december.context_selector import AssembledPrompt, ContextSelector
from december.executor import process_response
from december.llm_clients import LanguageModelClient, ModelCallError
from december.sandbox import Sandbox
from december.sessions import Attachment, Message, Session, SessionStore, new_message_id
from december.tool_calls import ToolCall, ToolProcessing, process_tool_calls, strip_tool_calls

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_FALLBACK = "Sorry, I could not generate a response."
DYNAMIC_SECTION = "DYNAMICALLY LOADED EXAMPLES AND CONTEXT"
TOOL_PROCESSING_MESSAGE = "Loading additional examples and context..."

USER = "user"
ASSISTANT = "assistant"
TOOL_PROCESSING = "tool_processing"
DONE = "done"


def build_message_content(text: str, attachments=()) -> str | list[dict]:
    """Plain text, or OpenAI-style parts when there are attachments."""
    if not attachments:
        return text
    parts: list[dict] = [{"type": "text", "text": text}]
    for attachment in attachments:
        if attachment.type == "image":
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.data}"},
            })
        elif attachment.type == "document":
            parts.append({
                "type": "text",
                "text": f'\n\nDocument "{attachment.name}" content:\n{attachment.decoded_text()}',
            })
    return parts


def history_entries(messages: list[Message]) -> list[dict]:
    return [
        {"role": m.role, "content": build_message_content(m.content, m.attachments)}
        for m in messages
    ]


@dataclass(frozen=True)
class TurnEvent:
    type: str
    data: Any
    detail: dict = field(default_factory=dict)


@dataclass
class TurnResult:
    user_message: Message
    assistant_message: Message
    commands_executed: int = 0
    command_errors: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_errors: list[str] = field(default_factory=list)


@dataclass
class _Turn:
    """Per-turn state fixed at ingest."""
    session: Session
    user_message: Message
    prior: list[Message]
    prompt: AssembledPrompt
    assistant_id: str


class Orchestrator:
    def __init__(
        self,
        client: LanguageModelClient,
        sandbox: Sandbox,
        selector: ContextSelector,
        sessions: SessionStore,
        *,
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ):
        self.client = client
        self.sandbox = sandbox
        self.selector = selector
        self.sessions = sessions
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def _options(self) -> dict:
        return {"temperature": self.temperature, "max_tokens": self.max_tokens}

    # -- phases ---------------------------------------------------------

    async def _ingest(self, session: Session, environment_id: str, text: str, attachments) -> _Turn:
        user_message = Message(
            id=new_message_id(USER),
            role=USER,
            content=text,
            timestamp=self.sessions.clock(),
            attachments=tuple(_coerce_attachments(attachments)),
        )
        history = self.sessions.append(session, user_message)
        prompt = await self._contextualize(environment_id, text)
        return _Turn(
            session=session,
            user_message=user_message,
            prior=history[:-1],
            prompt=prompt,
            assistant_id=new_message_id(ASSISTANT),
        )

    async def _contextualize(self, environment_id: str, text: str) -> AssembledPrompt:
        prompt = self.selector.assemble(text)
        try:
            snapshot = await self.sandbox.get_snapshot(environment_id)
        except OSError as e:
            logger.warning("Could not snapshot environment %s: %s", environment_id, e)
            snapshot = []
        prompt = prompt.with_codebase(json.dumps(snapshot, indent=2))
        logger.info("System prompt length: %d characters", len(prompt.text))
        return prompt

    def _primary_messages(self, turn: _Turn) -> list[dict]:
        return history_entries(turn.prior + [turn.user_message])

    def _augmented(self, turn: _Turn, first_text: str, tools: ToolProcessing):
        """System prompt and messages for the second call, or None when nothing loaded."""
        loaded = tools.loaded_content
        if not loaded:
            logger.info("Tool calls loaded no content, keeping first response")
            return None
        logger.info("Loaded %d characters of additional context", len(loaded))
        enhanced = turn.prompt.with_section(DYNAMIC_SECTION, loaded)

        messages = self._primary_messages(turn)
        cleaned = strip_tool_calls(first_text)
        if cleaned:
            messages.append({"role": ASSISTANT, "content": cleaned})
        logger.info(
            "Enhanced request with %d messages, prompt length %d characters",
            len(messages),
            len(enhanced.text),
        )
        return enhanced, messages

    async def _finalize(
        self,
        turn: _Turn,
        environment_id: str,
        text: str,
        tools: ToolProcessing | None,
    ) -> TurnResult:
        processed = await process_response(text, self.sandbox, environment_id)
        if processed.commands_executed:
            logger.info("Executed %d commands", processed.commands_executed)

        assistant_message = Message(
            id=turn.assistant_id,
            role=ASSISTANT,
            content=processed.cleaned_response,
            timestamp=self.sessions.clock(),
        )
        self.sessions.append(turn.session, assistant_message)
        return TurnResult(
            user_message=turn.user_message,
            assistant_message=assistant_message,
            commands_executed=processed.commands_executed,
            command_errors=processed.errors,
            tool_calls=tools.tool_calls if tools else [],
            tool_errors=tools.errors if tools else [],
        )

    # -- buffered -------------------------------------------------------

    async def send_message(self, environment_id: str, text: str, attachments=()) -> TurnResult:
        session = self.sessions.get_or_create(environment_id)
        async with session.turn_lock:
            turn = await self._ingest(session, environment_id, text, attachments)

            first_text = await self.client.complete(
                turn.prompt.text, self._primary_messages(turn), **self._options
            )
            final_text = first_text

            tools = process_tool_calls(first_text, self.selector.store)
            if tools.has_tool_calls:
                logger.info("Assistant requested %d tool calls", len(tools.tool_calls))
                augmented = self._augmented(turn, first_text, tools)
                if augmented is not None:
                    enhanced, messages = augmented
                    try:
                        second_text = await self.client.complete(enhanced.text, messages, **self._options)
                    except ModelCallError as e:
                        logger.error("Enhanced request failed, keeping first response: %s", e)
                        second_text = ""
                    final_text = second_text or first_text

            return await self._finalize(turn, environment_id, final_text or EMPTY_RESPONSE_FALLBACK, tools)

    # -- streamed -------------------------------------------------------

    async def _stream_phase(self, system: str, messages: list[dict]) -> AsyncIterator[str]:
        """Yield the growing text of one streamed model call."""
        text = ""
        async with aclosing(self.client.stream(system, messages, **self._options)) as deltas:
            async for delta in deltas:
                if not delta:
                    continue
                text += delta
                yield text

    def _partial(self, turn: _Turn, text: str) -> TurnEvent:
        return TurnEvent(
            ASSISTANT,
            Message(id=turn.assistant_id, role=ASSISTANT, content=text, timestamp=self.sessions.clock()),
        )

    async def send_message_stream(
        self, environment_id: str, text: str, attachments=()
    ) -> AsyncIterator[TurnEvent]:
        """Stream one turn.

        The session's turn lock is held until the generator finishes or is
        closed, so consumers should drain it or call ``aclose()``.
        """
        session = self.sessions.get_or_create(environment_id)
        async with session.turn_lock:
            turn = await self._ingest(session, environment_id, text, attachments)
            yield TurnEvent(USER, turn.user_message)

            first_text = ""
            async with aclosing(
                self._stream_phase(turn.prompt.text, self._primary_messages(turn))
            ) as growing:
                async for first_text in growing:
                    yield self._partial(turn, first_text)
            final_text = first_text

            tools = process_tool_calls(first_text, self.selector.store)
            if tools.has_tool_calls:
                logger.info("Assistant requested %d tool calls", len(tools.tool_calls))
                yield TurnEvent(
                    TOOL_PROCESSING,
                    {
                        "message": TOOL_PROCESSING_MESSAGE,
                        "tool_calls": [call.to_dict() for call in tools.tool_calls],
                    },
                )
                augmented = self._augmented(turn, first_text, tools)
                if augmented is not None:
                    enhanced, messages = augmented
                    second_text = ""
                    try:
                        async with aclosing(self._stream_phase(enhanced.text, messages)) as growing:
                            async for second_text in growing:
                                yield self._partial(turn, second_text)
                    except ModelCallError as e:
                        logger.error("Enhanced stream failed, keeping first response: %s", e)
                        second_text = ""
                    final_text = second_text or first_text

            result = await self._finalize(turn, environment_id, final_text or EMPTY_RESPONSE_FALLBACK, tools)
        logger.info("Streaming completed successfully")
        yield TurnEvent(
            DONE,
            result.assistant_message,
            {
                "commands_executed": result.commands_executed,
                "errors": result.command_errors,
                "tool_errors": result.tool_errors,
            },
        )


def _coerce_attachments(attachments) -> list[Attachment]:
    return [a if isinstance(a, Attachment) else Attachment.from_dict(a) for a in attachments or ()]
