from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, FrozenSet, List, Optional, Tuple

from estate_assistant.schemas.conversation import Conversation, Message
from estate_assistant.schemas.upload import UploadedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatState:
    """Everything a presentation layer renders. Replaced whole on every change."""

    messages: Tuple[Message, ...] = ()
    conversations: Tuple[Conversation, ...] = ()
    active_conversation_id: Optional[str] = None
    streaming_message: Optional[Message] = None
    in_flight: FrozenSet[str] = field(default_factory=frozenset)
    uploaded_files: Tuple[UploadedFile, ...] = ()
    sign_in_required: bool = False

    @property
    def is_loading(self) -> bool:
        return bool(self.in_flight)


Subscriber = Callable[[ChatState], Any]
Reducer = Callable[[ChatState], ChatState]


class StateStore:
    """Holds the current ChatState and notifies subscribers after each change."""

    def __init__(self, initial: Optional[ChatState] = None) -> None:
        self._state = initial or ChatState()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> ChatState:
        return self._state

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def dispatch(self, reducer: Reducer) -> ChatState:
        self._state = reducer(self._state)
        for subscriber in list(self._subscribers):
            try:
                subscriber(self._state)
            except Exception:
                logger.exception("State subscriber failed")
        return self._state

    def update(self, **changes: Any) -> ChatState:
        return self.dispatch(lambda s: replace(s, **changes))

    def reset(self) -> ChatState:
        return self.dispatch(lambda _: ChatState())
