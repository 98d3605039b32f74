"""REPL state management."""

import uuid
from datetime import datetime
from typing import List, Optional

from api.models.messages import Message


class REPLState:
    """REPL state management."""

    def __init__(self, max_steps: Optional[int] = None):
        self.conversation_id: str = uuid.uuid4().hex
        self.max_steps = max_steps
        self.model: Optional[str] = None  # server default when None
        self.messages: List[Message] = []
        self.last_prompt: Optional[str] = None
        self.last_error_retryable = False
        self.conversation_history: list = [
            {"conversation_id": self.conversation_id, "created_at": datetime.now().isoformat()}
        ]

    def begin_turn(self, prompt: str) -> List[Message]:
        """Record the user message and return the list the consumer appends to.

        Args:
            prompt: User prompt
        """
        self.last_prompt = prompt
        self.last_error_retryable = False
        self.messages.append(Message.user(prompt))
        return self.messages

    def new_conversation(self):
        """Start a new conversation."""
        self.conversation_id = uuid.uuid4().hex
        self.messages = []
        self.last_prompt = None
        self.last_error_retryable = False
        self.conversation_history.append({
            "conversation_id": self.conversation_id,
            "created_at": datetime.now().isoformat()
        })
