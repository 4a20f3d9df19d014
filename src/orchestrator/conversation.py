"""Conversation state for one chat session.

An append-only transcript seeded with a single system message. The
orchestrator owns it; the LLM only ever sees snapshots.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Iterator, Optional

from shared.config import DEFAULT_SYSTEM_PROMPT
from shared.logging import get_logger
from shared.models import ConversationMessage, MessageRole

logger = get_logger(__name__)


def render_system_prompt(template: str = DEFAULT_SYSTEM_PROMPT, today: Optional[date] = None) -> str:
    """Substitute ``{today}`` in the template with the current (UTC) date; other braces are kept."""
    today = today or datetime.now(timezone.utc).date()
    return template.replace("{today}", today.isoformat())


class ConversationState:
    """
    Ordered log of the messages sent to the LLM on every turn.

    Supports only appending and snapshotting: no deletion, reordering or
    mutation of existing entries. The system message is inserted once, at
    construction.
    """

    def __init__(self, system_prompt: str) -> None:
        self.id = str(uuid.uuid4())
        self._messages: list[ConversationMessage] = [ConversationMessage.system(system_prompt)]

    def append(self, message: ConversationMessage) -> None:
        """
        Append a message.

        Raises:
            ValueError: For system messages, which only the seed may be
        """
        if message.role == MessageRole.SYSTEM:
            raise ValueError("System message can only be set at construction")
        self._messages.append(message)

    def snapshot(self) -> list[ConversationMessage]:
        """Copy of the transcript, in order."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ConversationMessage]:
        return iter(self.snapshot())
