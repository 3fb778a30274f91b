"""
call-ai - Request Models

Pydantic models for call options, chat messages and response schemas.
"""

from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================
# Messages
# ============================================================

class ImageUrl(BaseModel):
    url: str
    detail: Optional[Literal["auto", "low", "high"]] = None


class ContentPart(BaseModel):
    """One part of a multi-part message (text or image)."""
    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageUrl] = None


class Message(BaseModel):
    """A chat message."""
    role: Literal["system", "user", "assistant"]
    content: Union[str, List[ContentPart]]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


Prompt = Union[str, Sequence[Union[Message, Dict[str, Any]]]]


def normalize_messages(prompt: Prompt) -> List[Message]:
    """Turn a prompt string or a message list into Message objects."""
    if isinstance(prompt, str):
        return [Message(role="user", content=prompt)]

    messages = [
        message if isinstance(message, Message) else Message.model_validate(message)
        for message in prompt
    ]
    if not messages:
        raise ValueError("prompt must contain at least one message")
    return messages


# ============================================================
# Schema
# ============================================================

class Schema(BaseModel):
    """
    Requested response structure.

    Unknown keys are kept and forwarded as extra JSON Schema keywords.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    required: Optional[List[str]] = None
    additional_properties: Optional[bool] = Field(default=None, alias="additionalProperties")

    @property
    def extra_keywords(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def required_fields(self) -> List[str]:
        if self.required is not None:
            return list(self.required)
        return list(self.properties)


# ============================================================
# Call options
# ============================================================

class CallOptions(BaseModel):
    """
    Options for one call.

    Unknown keyword options are passed through to the request body.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_key: Optional[str] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None
    chat_url: Optional[str] = None
    stream: bool = False
    schema_: Optional[Schema] = Field(default=None, alias="schema")

    # Sampling (sent only when set)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    stop: Optional[Union[str, List[str]]] = None
    response_format: Optional[Literal["json"]] = None

    # Transport
    headers: Dict[str, str] = Field(default_factory=dict)
    referer: Optional[str] = None
    title: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)

    # Behaviour
    skip_retry: bool = False
    debug: Optional[bool] = None

    @field_validator("stop")
    @classmethod
    def validate_stop(cls, value):
        if isinstance(value, list) and len(value) > 4:
            raise ValueError("at most 4 stop sequences are allowed")
        return value

    @property
    def extra_body(self) -> Dict[str, Any]:
        """Unrecognized options, forwarded verbatim in the request body."""
        return dict(self.model_extra or {})
