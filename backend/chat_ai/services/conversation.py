"""Conversation controller.

Holds the ordered, append-only message list for one session and drives one
completion request per submit:

    idle --submit--> pending --reply or failure--> idle

A submit always grows the list by exactly two messages: the user message,
appended synchronously, and later either the assistant reply or the fixed
error placeholder. Failures never propagate out of the exchange.

The controller does not reject a submit while another is in flight; callers
must serialise (the HTTP layer answers 409 while `pending`). `pending` is
backed by an in-flight counter so it is never true with nothing outstanding.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Set, Tuple

from ..errors import ChatError, MessageNotFound, ValidationError
from ..schemas.chat import ChatMessage, ConversationState
from .completion import ImageInput, clean_image_uri, to_image_data_url
from .export import export_transcript
from .speech import Capability, Unavailable, require

logger = logging.getLogger(__name__)

ERROR_PLACEHOLDER = "⚠️ No response from AI."
DEFAULT_IMAGE_PROMPT = "What's in this image?"

Listener = Callable[[ConversationState], None]


class Completer(Protocol):
    async def complete(self, prompt: str, image: Optional[ImageInput] = None) -> str: ...


class ConversationController:
    def __init__(
        self,
        completer: Completer,
        recognizer: Optional[Capability] = None,
        synthesizer: Optional[Capability] = None,
        default_image_prompt: str = DEFAULT_IMAGE_PROMPT,
    ):
        self.completer = completer
        self.recognizer: Capability = recognizer if recognizer is not None else Unavailable()
        self.synthesizer: Capability = synthesizer if synthesizer is not None else Unavailable()
        self.default_image_prompt = default_image_prompt
        self._messages: List[ChatMessage] = []
        self._in_flight = 0
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []

    # --- state -------------------------------------------------------------

    @property
    def pending(self) -> bool:
        return self._in_flight > 0

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ConversationState:
        return ConversationState(messages=list(self._messages), pending=self.pending)

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        for msg in self._messages:
            if msg.id == message_id:
                return msg
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a state snapshot after every change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("[conversation] State listener failed")

    def reset(self) -> None:
        """Start a fresh session."""
        if self.pending:
            raise ValidationError("Cannot reset while a reply is pending")
        self._messages.clear()
        logger.info("[conversation] Session reset")
        self._notify()

    # --- exchange ----------------------------------------------------------

    def submit(self, text: str, image: Optional[ImageInput] = None) -> Optional[Awaitable[ChatMessage]]:
        """Append the user message and schedule the completion call.

        Returns an awaitable for the exchange outcome, or None when the input
        was empty (nothing appended, no network call). Cancelling the
        returned awaitable does not cancel the exchange itself. A string
        image must be a data: or http(s) URI; a blank one counts as absent.
        Must be called from a running event loop.
        """
        if isinstance(image, str):
            image = clean_image_uri(image)
        prompt = (text or "").strip()
        if not prompt and not image:
            logger.debug("[conversation] Ignoring empty submit")
            return None
        loop = asyncio.get_running_loop()

        image_uri = to_image_data_url(image) if image else None
        if image_uri:
            user_msg = ChatMessage(role="user", type="image", content=image_uri)
            prompt = prompt or self.default_image_prompt
        else:
            user_msg = ChatMessage(role="user", content=prompt)

        self._messages.append(user_msg)
        self._in_flight += 1
        logger.info(
            "[conversation] Submitted %s message id=%s (in_flight=%d)",
            user_msg.type, user_msg.id, self._in_flight,
        )
        self._notify()

        task = loop.create_task(self._exchange(prompt, image_uri))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return asyncio.shield(task)

    async def join(self) -> None:
        """Wait until every outstanding exchange has appended its reply."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _exchange(self, prompt: str, image_uri: Optional[str]) -> ChatMessage:
        try:
            try:
                reply = await self.completer.complete(prompt, image_uri)
                assistant = ChatMessage(role="assistant", content=reply)
            except asyncio.CancelledError:
                # Loop shutdown; the user message still gets its answer entry
                logger.warning("[conversation] Exchange cancelled before a reply arrived")
                self._messages.append(ChatMessage(role="assistant", content=ERROR_PLACEHOLDER))
                raise
            except ChatError as e:
                logger.warning("[conversation] Completion failed (%s): %s", type(e).__name__, e.message)
                assistant = ChatMessage(role="assistant", content=ERROR_PLACEHOLDER)
            except Exception:
                logger.exception("[conversation] Unexpected completion failure")
                assistant = ChatMessage(role="assistant", content=ERROR_PLACEHOLDER)
            self._messages.append(assistant)
            return assistant
        finally:
            self._in_flight -= 1
            self._notify()

    # --- auxiliary ---------------------------------------------------------

    async def capture_voice(self, audio: bytes, filename: str = "audio.webm") -> str:
        """Transcribe one spoken utterance; the caller decides whether to submit it."""
        recognizer = require(self.recognizer, "Voice capture")
        if not audio:
            raise ValidationError("Empty audio data")
        return await recognizer.transcribe(audio, filename)

    async def speak(self, message_id: str) -> bytes:
        """Synthesize speech for an assistant message. Leaves the conversation untouched."""
        synthesizer = require(self.synthesizer, "Text-to-speech")
        msg = self.get_message(message_id)
        if msg is None:
            raise MessageNotFound(f"Unknown message {message_id}")
        if msg.role != "assistant" or msg.type != "text":
            raise ValidationError("Only assistant text messages can be spoken")
        return await synthesizer.synthesize(msg.content)

    def export(self) -> str:
        return export_transcript(self._messages)
