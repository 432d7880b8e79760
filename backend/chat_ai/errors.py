"""Error taxonomy shared by the completion client, the controller and the routers."""

from typing import Optional


class ChatError(Exception):
    """Base class; `message` is always safe to show to a user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(ChatError):
    """The API credential (or another required setting) is missing."""


class ValidationError(ChatError):
    """Input rejected before any network activity."""


class UpstreamError(ChatError):
    """Non-success status or malformed body from the completion API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ChatError):
    """The request never produced a response (connection failure, timeout)."""


class CapabilityUnavailable(ChatError):
    pass


class MessageNotFound(ChatError):
    pass


# Names used by the completion client contract
AuthError = ConfigError
NetworkError = TransportError
