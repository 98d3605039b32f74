"""Chat history store - append-only log of messages per conversation."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from api.models.messages import Message

logger = logging.getLogger(__name__)


class HistoryStore(ABC):
    """Append-only message log keyed by conversation id."""

    @abstractmethod
    async def append(self, conversation_id: str, message: Message) -> int:
        """Append a message, returning its position in the conversation."""
        ...

    @abstractmethod
    async def list_since(self, conversation_id: str, since: int = 0) -> List[Message]:
        """List messages from position ``since`` onwards (empty for unknown ids)."""
        ...

    async def extend(self, conversation_id: str, messages: List[Message]) -> None:
        for message in messages:
            await self.append(conversation_id, message)


class InMemoryHistoryStore(HistoryStore):
    """In-process history store.

    Stored messages are deep copies, so once persisted a message cannot be
    changed through the caller's reference; reads also hand out copies.
    """

    def __init__(self):
        self._conversations: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()

    async def append(self, conversation_id: str, message: Message) -> int:
        async with self._lock:
            log = self._conversations.setdefault(conversation_id, [])
            log.append(message.model_copy(deep=True))
            position = len(log) - 1
        logger.debug(f"Appended {message.role} message to {conversation_id} at {position}")
        return position

    async def list_since(self, conversation_id: str, since: int = 0) -> List[Message]:
        async with self._lock:
            log = self._conversations.get(conversation_id, [])
            return [m.model_copy(deep=True) for m in log[max(since, 0):]]

    def conversation_ids(self) -> List[str]:
        return list(self._conversations.keys())
