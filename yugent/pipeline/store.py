"""
Append-only conversation log.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from yugent.errors import NotFoundError
from yugent.models import Message, Role


class MessageStore:
    """
    Ordered, append-only log of conversation messages.

    The order of entries is the context sent to the LLM, so entries are
    never reordered, replaced or deleted. history() hands out tuple
    snapshots; layers can read them but cannot mutate the store.
    """

    def __init__(self, messages: Iterable[Message] | None = None):
        self._messages: list[Message] = []
        if messages:
            self.extend(messages)

    def append(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def latest(self, role: Role | str | None = None) -> Message:
        """
        Return the most recent message, optionally the most recent with `role`.

        Raises:
            NotFoundError: If the store is empty or holds no message with `role`
        """
        if role is None:
            if not self._messages:
                raise NotFoundError("Message store is empty")
            return self._messages[-1]

        role = Role(role)
        for message in reversed(self._messages):
            if message.role == role:
                return message
        raise NotFoundError(f"No message with role '{role.value}'")

    def history(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.history())
