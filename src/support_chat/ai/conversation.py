"""Convert stored messages into completion-service input."""

from __future__ import annotations

from typing import Any

from support_chat.core.types import MessageRole
from support_chat.storage.models import Conversation, Message


def build_system_prompt(template: str, conversation: Conversation) -> str:
    """Fill the customer's identity into the system instruction template.

    Only the ``{user_name}`` and ``{user_email}`` placeholders are replaced;
    other braces in the template are left alone.
    """
    return template.replace("{user_name}", conversation.user_name).replace(
        "{user_email}", conversation.user_email
    )


def build_messages(history: list[Message]) -> list[dict[str, Any]]:
    """Map the ordered log onto alternating user/assistant API turns.

    Consecutive messages from the same side are merged, since both backends
    expect turns to alternate and a failed reply can leave two user messages
    in a row.
    """
    messages: list[dict[str, Any]] = []
    for record in history:
        role = "user" if record.role == MessageRole.USER else "assistant"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + record.content
        else:
            messages.append({"role": role, "content": record.content})
    return messages
