from chat_ai.schemas.chat import ChatMessage
from chat_ai.services.export import export_transcript


def test_two_message_export_has_two_prefixed_entries() -> None:
    messages = [
        ChatMessage(role="user", content="Hello"),
        ChatMessage(role="assistant", content="Hello back"),
    ]

    text = export_transcript(messages)

    entries = text.split("\n\n")
    assert entries == ["User: Hello", "Assistant: Hello back"]


def test_image_entries_use_placeholder_token() -> None:
    messages = [
        ChatMessage(role="user", type="image", content="data:image/png;base64,AAAA"),
        ChatMessage(role="assistant", content="A cat."),
    ]

    assert export_transcript(messages) == "User: [Image]\n\nAssistant: A cat."


def test_empty_conversation_exports_empty_document() -> None:
    assert export_transcript([]) == ""
