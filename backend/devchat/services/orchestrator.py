"""Conversation turns: persistence, generation, classification and relay.

Per-turn states:

    Pending -> Generating -> Classifying -> Persisted
    Pending/Generating/Classifying -> Failed
    Pending/Generating -> Cancelled

A continuation starts from the Persisted assistant turn it extends and
re-enters Generating. A turn that failed while persisting keeps its generated
text and may move from Failed to Persisted through ``retry_persistence``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from devchat.core.config import settings
from devchat.core.errors import ChatEngineError, NotFound, StoreUnavailable, user_message
from devchat.core.identifiers import IdentifierAllocator, IdKind, require
from devchat.models.chat import ChatMessage, CodeArtifact, FileAttachment
from devchat.services.artifacts import extract_code_blocks
from devchat.services.completion import CompletionClassifier, Verdict
from devchat.services.context import ContextBuilder
from devchat.services.llm.base import BaseGenerator, GenerationChunk, GenerationOptions, Message, options_from_settings
from devchat.services.relay import (
    StreamEvent,
    StreamRelay,
    completion_event,
    continuation_event,
    done_event,
    error_event,
    replay,
    session_event,
)
from devchat.services.repository import ChatRepository
from devchat.services.store.base import BaseStore

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    CLASSIFYING = "classifying"
    PERSISTED = "persisted"
    FAILED = "failed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[TurnState, set[TurnState]] = {
    TurnState.PENDING: {TurnState.GENERATING, TurnState.FAILED, TurnState.CANCELLED},
    TurnState.GENERATING: {TurnState.CLASSIFYING, TurnState.FAILED, TurnState.CANCELLED},
    TurnState.CLASSIFYING: {TurnState.PERSISTED, TurnState.FAILED},
    TurnState.PERSISTED: {TurnState.GENERATING},
    TurnState.FAILED: {TurnState.PERSISTED},
    TurnState.CANCELLED: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class TurnHandle:
    session_id: str
    user_message_id: str | None = None
    assistant_message_id: str | None = None
    is_continuation: bool = False
    prior_text: str = ""
    state: TurnState = TurnState.PENDING
    verdict: Verdict | None = None
    text: str = ""
    artifact_ids: list[str] = field(default_factory=list)
    error: Exception | None = None
    stream: AsyncIterator[StreamEvent] | None = field(default=None, repr=False)
    _cancelled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def transition(self, target: TurnState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        logger.debug(f"Turn {self.session_id}/{self.assistant_message_id or self.user_message_id}: "
                     f"{self.state.value} -> {target.value}")
        self.state = target

    def fail(self, error: Exception) -> None:
        self.error = error
        self.transition(TurnState.FAILED)

    def cancel(self) -> None:
        """Stop forwarding content; nothing further is persisted for this turn."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def cancel_event(self) -> asyncio.Event:
        """Set once the turn is cancelled; shared with the relay draining the stream."""
        return self._cancelled

    @property
    def full_text(self) -> str:
        return self.prior_text + self.text if self.is_continuation else self.text


class ConversationOrchestrator:
    def __init__(
        self,
        store: BaseStore,
        generator: BaseGenerator,
        classifier: CompletionClassifier | None = None,
        context_builder: ContextBuilder | None = None,
        allocator: IdentifierAllocator | None = None,
        options: GenerationOptions | None = None,
        relay_mode: str | None = None,
        pace_every: int | None = None,
        pace_delay: float | None = None,
    ):
        self.repository = ChatRepository(store)
        self.generator = generator
        self.classifier = classifier or CompletionClassifier()
        self.context_builder = context_builder or ContextBuilder()
        self.allocator = allocator or IdentifierAllocator(store)
        self.options = options or options_from_settings()
        self.relay_mode = relay_mode or settings.relay_mode
        self.pace_every = pace_every
        self.pace_delay = pace_delay

    # --- Public operations ---

    async def start_turn(
        self,
        session_id: str | None,
        user_text: str,
        files: list[FileAttachment] | None = None,
    ) -> TurnHandle:
        """Persist the user turn and return a handle whose stream drives generation.

        The user message is durable before the generator is contacted, so a
        failed or aborted turn never loses the user's input.
        """
        # Everything that can reject the turn runs before a sequence number is taken
        if not isinstance(user_text, str):
            raise TypeError(f"Message text must be a string, not {type(user_text).__name__}")
        files = [FileAttachment.model_validate(f) for f in files or []]
        if session_id:
            require(session_id, IdKind.SESSION)
        else:
            session_id = self.allocator.new_session_id()
        self.repository.ensure_session(session_id)

        descriptors = [f.descriptor() for f in files]
        user_message_id = self.allocator.next_message_id(session_id, "user")
        self.repository.save_message(
            ChatMessage(
                id=user_message_id,
                session_id=session_id,
                role="user",
                content=user_text,
                attached_files=descriptors,
            )
        )

        history = self.repository.list_messages(session_id, limit=self.context_builder.limit)
        context = self.context_builder.build(history, files)

        handle = TurnHandle(session_id=session_id, user_message_id=user_message_id)
        handle.stream = self._run(handle, context)
        logger.info(f"Started turn {user_message_id} in {session_id} ({len(user_text)} chars, {len(files)} file(s))")
        return handle

    async def continue_turn(self, session_id: str, prior_partial_text: str) -> TurnHandle:
        """Extend the chat's latest assistant message in place.

        The target is always the most recent assistant message; no
        client-supplied message id is consulted.
        """
        require(session_id, IdKind.SESSION)
        target = self.repository.latest_assistant_message(session_id)
        if target is None:
            raise NotFound(f"No assistant message to continue in {session_id}")

        prior = prior_partial_text or target.content
        history = self.repository.list_messages(session_id)
        context = self.context_builder.build_continuation(history, prior)

        handle = TurnHandle(
            session_id=session_id,
            assistant_message_id=target.id,
            is_continuation=True,
            prior_text=prior,
            state=TurnState.PERSISTED,
        )
        handle.stream = self._run(handle, context)
        logger.info(f"Continuing {target.id} in {session_id} from {len(prior)} chars")
        return handle

    def retry_persistence(self, handle: TurnHandle) -> TurnHandle:
        """Persist a turn whose generation succeeded but whose final write failed."""
        if handle.state is not TurnState.FAILED or handle.verdict is None:
            raise ValueError("Turn has no generated response awaiting persistence")
        self._persist(handle)
        return handle

    # --- Turn pipeline ---

    async def _chunks(self, context: list[Message]) -> AsyncIterator[GenerationChunk]:
        if self.relay_mode == "incremental":
            async for chunk in self.generator.stream(context, self.options):
                yield chunk
            return

        result = await self.generator.generate(context, self.options)
        logger.info(f"Generator returned {len(result.text)} chars in {len(result.chunks)} chunk(s)")
        async for chunk in replay(result.chunks):
            yield chunk

    async def _run(self, handle: TurnHandle, context: list[Message]) -> AsyncIterator[StreamEvent]:
        yield session_event(handle.session_id)
        handle.transition(TurnState.GENERATING)

        relay = StreamRelay(pace_every=self.pace_every, pace_delay=self.pace_delay, cancelled=handle.cancel_event)
        try:
            async for event in relay.relay(self._chunks(context)):
                yield event
        except (GeneratorExit, asyncio.CancelledError):
            handle.transition(TurnState.CANCELLED)
            logger.info(f"Client went away during turn in {handle.session_id}")
            raise
        except ChatEngineError as e:
            handle.fail(e)
            logger.error(f"Generation failed in {handle.session_id}: {e}")
            yield error_event(user_message(e), getattr(e, "category", None))
            return
        except Exception as e:
            handle.fail(e)
            logger.exception(f"Unexpected error during generation in {handle.session_id}")
            yield error_event(user_message(e))
            return

        if handle.cancelled:
            handle.transition(TurnState.CANCELLED)
            logger.info(f"Turn in {handle.session_id} aborted after {relay.chunk_count} chunk(s)")
            return

        handle.text = relay.text
        handle.transition(TurnState.CLASSIFYING)
        handle.verdict = self.classifier.classify(handle.full_text, relay.done, relay.done_reason)

        try:
            self._persist(handle)
        except StoreUnavailable as e:
            handle.fail(e)
            logger.error(f"Could not persist assistant turn in {handle.session_id}: {e}")
            yield error_event(user_message(e), "storage")
            return

        yield completion_event(
            handle.verdict,
            message_id=handle.assistant_message_id,
            artifact_ids=handle.artifact_ids,
        )
        if handle.verdict.is_truncated:
            yield continuation_event(handle.session_id, handle.assistant_message_id)
        yield done_event()

    def _persist(self, handle: TurnHandle) -> None:
        session_id = handle.session_id
        if handle.assistant_message_id is None:
            handle.assistant_message_id = self.allocator.next_message_id(session_id, "assistant")
        message_id = handle.assistant_message_id

        text = handle.full_text
        existing = self.repository.get_message(session_id, message_id) if handle.is_continuation else None
        handle.artifact_ids = self._save_artifacts(session_id, message_id, text)

        message = ChatMessage(
            id=message_id,
            session_id=session_id,
            role="assistant",
            content=text,
            artifact_ids=handle.artifact_ids,
        )
        if existing is not None:
            message.created_at = existing.created_at
        self.repository.save_message(message)
        handle.transition(TurnState.PERSISTED)

        logger.info(
            f"Persisted {message_id} in {session_id}: {len(text)} chars, "
            f"{len(handle.artifact_ids)} artifact(s), verdict={handle.verdict.status.value if handle.verdict else None}"
        )

    def _save_artifacts(self, session_id: str, message_id: str, text: str) -> list[str]:
        """Write the message's code blocks, replacing earlier extractions in place."""
        blocks = extract_code_blocks(message_id, text)
        for block in blocks:
            self.repository.save_artifact(
                CodeArtifact(
                    id=block.id,
                    parent_id=message_id,
                    session_id=session_id,
                    language=block.language,
                    code=block.code,
                    metadata=block.metadata,
                )
            )

        current = {block.id for block in blocks}
        for stale in self.repository.list_artifacts(session_id, parent_id=message_id):
            if stale.id not in current:
                self.repository.delete_artifact(session_id, stale.id)
                logger.info(f"Removed artifact {stale.id} no longer present in {message_id}")

        return [block.id for block in blocks]
