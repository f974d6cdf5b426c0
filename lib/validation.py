"""Validation helpers shared across services and entrypoints."""

from __future__ import annotations

from utils.errors import ValidationError

MAX_USER_MESSAGE_CHARS = 16000


def validate_user_message(message: str, *, max_length: int = MAX_USER_MESSAGE_CHARS) -> str:
    """
    Validate the latest user message before it reaches the agent.

    Args:
        message: Text of the most recent user turn.
        max_length: Optional cap to guard against oversized prompts.

    Returns:
        Message trimmed of surrounding whitespace.

    Raises:
        ValidationError: If the message is empty or exceeds the configured limit.
    """
    if not isinstance(message, str):
        raise ValidationError("Message must be a string.")

    cleaned = message.strip()
    if not cleaned:
        raise ValidationError("Conversation must end with a non-empty user message.")

    if len(cleaned) > max_length:
        raise ValidationError(f"Message exceeds {max_length} characters.")

    return cleaned
