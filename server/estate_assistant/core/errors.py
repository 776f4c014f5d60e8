from __future__ import annotations


class EstateAssistantError(Exception):
    """Base class for errors raised by this package."""


class MalformedRequest(EstateAssistantError):
    """The request body does not match any supported chat shape."""


class ProviderError(EstateAssistantError):
    """The completion provider failed. Detail stays in the server log."""


class ProviderNotConfigured(ProviderError):
    """No API key is configured for the completion provider."""


class ChatApiError(EstateAssistantError):
    """Client side: the chat or upload endpoint answered with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamTruncated(ChatApiError):
    """Client side: the completion stream ended without its sentinel."""
