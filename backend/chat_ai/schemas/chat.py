from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Literal
from uuid import uuid4

MessageRole = Literal['user', 'assistant']
MessageType = Literal['text', 'image']


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: MessageRole
    content: str
    type: MessageType = 'text'


class ConversationState(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    pending: bool = False


class CompletionRequest(BaseModel):
    """Single-turn request; the image, when present, travels inline."""

    prompt: str
    image: Optional[str] = None

    def to_messages(self) -> List[Dict[str, Any]]:
        if not self.image:
            return [{"role": "user", "content": self.prompt}]
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt},
                    {"type": "image_url", "image_url": {"url": self.image}},
                ],
            }
        ]


class SubmitRequest(BaseModel):
    text: str = ''
    image: Optional[str] = None


class ProxyReply(BaseModel):
    reply: str


class ErrorResponse(BaseModel):
    error: str
