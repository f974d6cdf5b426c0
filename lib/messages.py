"""Conversion between chat-UI messages and provider messages."""
from __future__ import annotations

import json
from typing import Any, Dict, List

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    convert_to_openai_messages,
)

_ROLE_TO_MESSAGE = {
    "user": HumanMessage,
    "human": HumanMessage,
    "assistant": AIMessage,
    "ai": AIMessage,
    "system": SystemMessage,
}


def _ui_message_text(message: Dict[str, Any]) -> str:
    """Text of a UI message: either ``content`` or the text ``parts``."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    parts = message.get("parts") if content is None else content
    if not isinstance(parts, list):
        return ""
    texts: List[str] = []
    for part in parts:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
            texts.append(part["text"])
    return "".join(texts)


def to_chat_messages(ui_messages: List[Dict[str, Any]]) -> List[BaseMessage]:
    """Convert UI messages to LangChain messages, dropping empty or unknown turns."""
    converted: List[BaseMessage] = []
    for message in ui_messages or []:
        if not isinstance(message, dict):
            continue
        factory = _ROLE_TO_MESSAGE.get(str(message.get("role", "")).lower())
        text = _ui_message_text(message)
        if factory is None or not text.strip():
            continue
        converted.append(factory(content=text))
    return converted


def to_provider_messages(messages: List[BaseMessage]) -> List[Dict[str, Any]]:
    """OpenAI-style dicts for the chat completions API."""
    return convert_to_openai_messages(messages)


def latest_user_text(messages: List[BaseMessage]) -> str:
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            return message.content if isinstance(message.content, str) else str(message.content)
    return ""


def serialize_prompt(system_prompt: str, provider_messages: List[Dict[str, Any]]) -> str:
    """Full prompt as sent, for the run log."""
    payload = [{"role": "system", "content": system_prompt}, *provider_messages]
    return json.dumps(payload, ensure_ascii=False, default=str)
