"""FastAPI dependencies resolving the per-process objects stored on `app.state`."""

from fastapi.requests import HTTPConnection

from .services.completion import CompletionClient
from .services.conversation import ConversationController


def get_completion_client(conn: HTTPConnection) -> CompletionClient:
    return conn.app.state.completion_client


def get_conversation(conn: HTTPConnection) -> ConversationController:
    return conn.app.state.conversation
