"""
Gateway error taxonomy.

Each exception maps onto one HTTP outcome at the connection handler; only
``ServerStartError`` escapes to the caller of ``ProxyServer.start``.
"""
from typing import Optional


class GatewayError(Exception):
    """Base class for gateway errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ServerStartError(GatewayError):
    """Every candidate port failed to bind."""

    def __init__(self, message: str, port: Optional[int] = None):
        super().__init__(message)
        self.port = port


class RequestDecodeError(GatewayError):
    """The received bytes are not a usable HTTP request."""

    status_code = 400


class BodyDecodeError(GatewayError):
    """The chat-completion body is missing or malformed."""

    status_code = 400


class ModelNotFoundError(GatewayError):
    """No enabled model configuration matches the requested model id."""

    status_code = 400

    def __init__(self, model_id: str):
        super().__init__(f"Model not found or disabled: {model_id}")
        self.model_id = model_id


class UpstreamTransportError(GatewayError):
    """The upstream call did not complete at the transport level."""

    status_code = 502

    def __init__(self, reason: str, duration: float):
        super().__init__(f"Bad Gateway: {reason}")
        self.reason = reason
        self.duration = duration
