"""
Request/response schemas using Pydantic models.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


# ============================================================================
# Chat Completion Schemas (OpenAI compatible)
# ============================================================================

class ChatMessage(BaseModel):
    """
    Chat message with open content.

    ``content`` is a plain string, a list of string/object parts, or any
    other JSON value; the sanitizer reduces all of them to a string before
    forwarding. Fields other than ``role`` and ``content`` pass through.
    """
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Any] = None


class ChatCompletionRequest(BaseModel):
    """Chat completion request; unknown fields are forwarded untouched."""
    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[ChatMessage]
    stream: Optional[bool] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None

    def to_upstream_payload(self) -> Dict[str, Any]:
        """Serialize for the provider, dropping unset optional fields."""
        return self.model_dump(exclude_none=True)


# ============================================================================
# Models Endpoint Schemas
# ============================================================================

class Model(BaseModel):
    """Model information."""
    id: str
    object: str = "model"
    created: int
    owned_by: str
    name: str


class ModelsListResponse(BaseModel):
    """Models list response."""
    object: str = "list"
    data: List[Model]


# ============================================================================
# Health and Error Schemas
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    timestamp: str


class ErrorDetail(BaseModel):
    """Error detail."""
    message: str
    type: str = "api_error"


class ErrorResponse(BaseModel):
    """Error response envelope."""
    error: ErrorDetail
