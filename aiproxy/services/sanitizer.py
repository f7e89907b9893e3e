"""
Message content sanitizer.

Upstream providers accept only string message content, so multi-part and
structured content is flattened to text before forwarding.
"""
import json
from typing import Any, List, Mapping, Optional, Sequence

from aiproxy.api.schemas import ChatMessage


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _part_to_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if (
        isinstance(part, Mapping)
        and part.get("type") == "text"
        and isinstance(part.get("text"), str)
    ):
        return part["text"]
    return _to_json(part)


def sanitize_content(content: Any) -> Optional[str]:
    """
    Reduce message content to a plain string.

    Strings are returned unchanged. Lists are converted part by part and
    joined with newlines in their original order: strings verbatim, text
    parts as their text, other objects as compact JSON. Anything else is
    described textually. ``None`` stays ``None``.
    """
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, Sequence) and not isinstance(content, (bytes, bytearray)):
        return "\n".join(_part_to_text(part) for part in content)
    if isinstance(content, Mapping):
        return _to_json(content)
    return str(content)


def sanitize_messages(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Return copies of ``messages`` with string-only content."""
    return [
        message.model_copy(update={"content": sanitize_content(message.content)})
        for message in messages
    ]
