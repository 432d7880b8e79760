"""Plain-text export of a conversation."""

from typing import Iterable

from ..schemas.chat import ChatMessage

EXPORT_FILENAME = "chat_history.txt"
IMAGE_TOKEN = "[Image]"

_PREFIXES = {"user": "User: ", "assistant": "Assistant: "}


def export_transcript(messages: Iterable[ChatMessage]) -> str:
    """One entry per message, in order, separated by a blank line."""
    entries = []
    for msg in messages:
        body = msg.content if msg.type == "text" else IMAGE_TOKEN
        entries.append(_PREFIXES[msg.role] + body)
    return "\n\n".join(entries)
