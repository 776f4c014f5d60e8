from __future__ import annotations
from typing import AsyncIterator, Protocol

from estate_assistant.prompting.assembler import CompletionPayload, TextCompletion


class CompletionProvider(Protocol):
    id: str

    def stream(self, payload: TextCompletion) -> AsyncIterator[str]:
        """Yield text deltas as the model produces them."""
        ...

    async def generate(self, payload: CompletionPayload) -> str:
        """Return the full response text of a non-streaming call."""
        ...
