"""
OpenAI-compatible chat-completion request models.

The proxy only inspects the fields it redacts (message content, choice
content, streamed deltas). Every model allows extra fields so that
provider-specific parameters survive the round trip untouched.
"""

from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """Single chat message; content is a string or a list of typed parts."""

    model_config = ConfigDict(extra="allow")

    role: str = Field(..., description="system, developer, user, assistant or tool")
    content: Optional[Union[str, list[dict[str, Any]]]] = Field(
        default=None,
        description="Plain text or a list of content parts ({'type': 'text', 'text': ...})",
    )


class ChatCompletionRequest(BaseModel):
    """Incoming chat-completion request body."""

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = Field(default=None, description="Upstream model name")
    messages: list[ChatMessage] = Field(..., description="Conversation so far")
    stream: bool = Field(default=False, description="Request an SSE response")


TextRedactor = Callable[[str], Awaitable[str]]


async def redact_message_content(
    content: Union[str, list[dict[str, Any]], None],
    redact_text: TextRedactor,
) -> Union[str, list[dict[str, Any]], None]:
    """
    Apply a text redactor to message content.

    Strings are redacted directly. In part lists only {'type': 'text'}
    parts are touched; images, audio and other parts pass through.
    """
    if content is None:
        return None

    if isinstance(content, str):
        return await redact_text(content)

    redacted_parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
            redacted_parts.append({**part, "text": await redact_text(part["text"])})
        else:
            redacted_parts.append(part)
    return redacted_parts
