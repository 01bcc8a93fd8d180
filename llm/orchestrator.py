"""
Turn coordinator for the chat backend.

Runs one conversational turn: binds the session, reloads the transcript,
streams the model reply to an output sink fragment by fragment and commits
the human input and the reply to the transcript store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Protocol

from .conversation_store import ConversationTranscript, TranscriptStore
from .errors import PersistenceError, TransportError, is_content_policy_violation, require_fields
from .messages import ChatMessage
from .prompt_templates import PromptTemplate, build_chat_prompt
from .providers.base import TextGenerator
from .session_registry import SessionBinding, SessionRegistry

logger = logging.getLogger(__name__)

CONTENT_FILTER_APOLOGY = (
    "I apologize, but I can't respond to that request as it triggered the content filter. "
    "Please try rephrasing your question."
)
GENERIC_APOLOGY = (
    "I apologize, but I encountered an error processing your request. Please try again later."
)


class TurnState(Enum):
    """Lifecycle of a single turn."""
    VALIDATING = "validating"
    BOUND = "bound"
    GENERATING = "generating"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class OutputSink(Protocol):
    """Where streamed fragments go. Writes raise TransportError on a broken connection."""

    async def open(self) -> None:
        """Commit response framing; errors after this point go into the body."""
        ...

    async def write(self, fragment: str) -> None:
        ...

    async def flush(self) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass
class TurnOutcome:
    """What a finished turn reports. The reply text itself is not kept."""
    state: TurnState
    fragments: int = 0
    reply_chars: int = 0
    partial: bool = False
    disconnected: bool = False
    duration_ms: float = 0.0


class TurnCoordinator:
    """
    Coordinates conversational turns.

    Pipeline:
    1. Validate user, session and input
    2. Bind the session (get-or-create in the registry)
    3. Take the session's turn lock
    4. Reload the transcript and render the prompt
    5. Relay fragments to the sink, flushing each one
    6. Commit the human message, then the reply (partial replies included)
    """

    def __init__(
        self,
        store: TranscriptStore,
        generator: TextGenerator,
        registry: Optional[SessionRegistry] = None,
        template: Optional[PromptTemplate] = None,
    ):
        self.store = store
        self.generator = generator
        self.registry = registry if registry is not None else SessionRegistry()
        self.template = template or PromptTemplate()

    def make_binding(self, user_id: str, session_id: str) -> SessionBinding:
        """Wire a fresh generation context for a session."""
        return SessionBinding(
            user_id=user_id,
            session_id=session_id,
            template=self.template,
            generator=self.generator,
            transcript=ConversationTranscript(self.store, user_id, session_id),
        )

    def bind(self, user_id: str, session_id: str) -> SessionBinding:
        return self.registry.get_or_create(user_id, session_id, self.make_binding)

    async def run_turn(self, user_id: str, session_id: str, message: str, sink: OutputSink) -> TurnOutcome:
        """
        Run one turn end to end.

        Raises ValidationError before any side effect, and PersistenceError
        if the transcript cannot be loaded (the sink is not opened yet in
        either case). Once the sink is open, failures are reported through it.
        """
        start_time = time.time()

        require_fields(UserID=user_id, SessionID=session_id, Message=message)
        binding = self.bind(user_id, session_id)

        async with binding.turn_lock:
            history = await binding.transcript.messages()
            prompt = build_chat_prompt(binding.template, history, message)

            await sink.open()
            try:
                outcome = await self._relay(binding, prompt, message, sink)
            finally:
                await _close_sink(sink)

        outcome.duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(
            f"Turn {binding.key} {outcome.state.value}: {outcome.fragments} fragments, "
            f"{outcome.reply_chars} chars in {outcome.duration_ms}ms"
        )
        return outcome

    async def _relay(self, binding: SessionBinding, prompt: str, message: str, sink: OutputSink) -> TurnOutcome:
        fragments = []
        error: Optional[BaseException] = None
        outcome = TurnOutcome(state=TurnState.GENERATING)

        try:
            stream = binding.generator.stream(prompt)
            try:
                async for fragment in stream:
                    if not fragment:
                        continue
                    await sink.write(fragment)
                    await sink.flush()
                    fragments.append(fragment)
            finally:
                await _close_stream(stream)
        except TransportError as e:
            logger.warning(f"Client connection lost for {binding.key}: {e}")
            outcome.disconnected = True
        except asyncio.CancelledError:
            logger.info(f"Turn {binding.key} cancelled after {len(fragments)} fragments")
            await self._commit_to_completion(binding.transcript, message, "".join(fragments))
            raise
        except Exception as e:
            logger.error(f"Error streaming response for {binding.key}: {e}")
            error = e

        reply = "".join(fragments)
        outcome.fragments = len(fragments)
        outcome.reply_chars = len(reply)

        if error is not None and not fragments:
            # Headers are already committed, so the failure goes into the body
            apology = CONTENT_FILTER_APOLOGY if is_content_policy_violation(error) else GENERIC_APOLOGY
            try:
                await sink.write(apology)
                await sink.flush()
            except TransportError as e:
                logger.warning(f"Could not deliver error message for {binding.key}: {e}")
            outcome.state = TurnState.FAILED
        else:
            outcome.partial = error is not None
            outcome.state = TurnState.COMMITTING

        await self._commit_to_completion(binding.transcript, message, reply)
        if outcome.state == TurnState.COMMITTING:
            outcome.state = TurnState.DONE
        return outcome

    async def _commit_to_completion(self, transcript: ConversationTranscript, message: str, reply: str) -> None:
        """
        Run the commit without letting a cancellation cut it short.

        A cancel that arrives meanwhile is re-raised once both messages are
        stored, and the turn lock stays held until then.
        """
        commit = asyncio.ensure_future(self._commit(transcript, message, reply))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            await asyncio.wait({commit})
            raise

    async def _commit(self, transcript: ConversationTranscript, message: str, reply: str) -> None:
        """Append human then AI. Not atomic; failures are logged since the reply was already sent."""
        try:
            await transcript.add(ChatMessage.human(message))
            if reply:
                await transcript.add(ChatMessage.ai(reply))
        except PersistenceError as e:
            logger.error(
                f"Failed to save turn for {transcript.user_id}:{transcript.session_id}: {e}"
            )


async def _close_stream(stream: AsyncIterator[str]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def _close_sink(sink: OutputSink) -> None:
    try:
        await sink.close()
    except TransportError as e:
        logger.warning(f"Closing output stream failed: {e}")
