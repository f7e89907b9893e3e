"""
Per-connection request handling.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

from aiproxy.api.schemas import ChatCompletionRequest, HealthResponse, Model, ModelsListResponse
from aiproxy.core.config import settings
from aiproxy.core.exceptions import (
    BodyDecodeError,
    ModelNotFoundError,
    RequestDecodeError,
    UpstreamTransportError,
)
from aiproxy.core.log_sink import LogSink
from aiproxy.core.logger import get_logger
from aiproxy.server.http import HttpRequest, build_response, error_body, json_body, parse_request
from aiproxy.services.router import RequestRouter
from aiproxy.services.store import ModelStore

logger = get_logger(__name__)

CHAT_COMPLETION_PATHS = frozenset({
    "/v1/chat/completions",
    "/api/v1/chat/completions",
    "/v1/messages",
})


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    RECEIVING = "receiving"
    PROCESSING = "processing"
    RESPONDING = "responding"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass
class Reply:
    status_code: int
    body: bytes


class ConnectionHandler:
    """
    Drives one accepted connection from first read to close.

    A single bounded read is issued; requests larger than one read, or split
    across TCP segments, are not reassembled. Exactly one response is
    written and the connection is always closed afterwards.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        store: ModelStore,
        request_router: RequestRouter,
        log_sink: LogSink,
        port: Callable[[], int],
        max_request_bytes: Optional[int] = None,
    ):
        self.reader = reader
        self.writer = writer
        self.store = store
        self.request_router = request_router
        self.log_sink = log_sink
        self.port = port
        self.max_request_bytes = max(1, max_request_bytes or settings.max_request_bytes)
        self.state = ConnectionState.CONNECTING

    async def run(self) -> None:
        """Handle the connection until it is closed."""
        try:
            if self.writer.is_closing():
                raise ConnectionResetError("connection closed before it was ready")
            self.state = ConnectionState.READY

            data = await self.reader.read(self.max_request_bytes)
            self.state = ConnectionState.RECEIVING
        except (ConnectionError, OSError) as e:
            self.state = ConnectionState.FAILED
            self.log_sink.append(f"Connection failed: {e}")
            await self._close()
            return

        if not data:
            await self._close()
            return

        self.state = ConnectionState.PROCESSING
        try:
            reply = await self.process(data)
        except Exception as e:
            logger.error(f"Unhandled request error: {str(e)}", exc_info=True)
            reply = self._error(500, f"Internal server error: {e}")

        await self.respond(reply)

    async def process(self, data: bytes) -> Reply:
        """Parse the received bytes and dispatch on the path."""
        try:
            request = parse_request(data)
        except RequestDecodeError as e:
            return self._error(e.status_code, e.message)

        self.log_sink.append(f"{request.method} {request.path}")

        if request.path == "/health":
            return self.health()
        if request.path == "/v1/models":
            return await self.list_models()
        if request.path in CHAT_COMPLETION_PATHS:
            return await self.chat_completion(request)

        self.log_sink.append(f"Unknown path: {request.path}")
        return self._error(404, "Not found", request.path)

    def health(self) -> Reply:
        response = HealthResponse(
            timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        )
        return Reply(200, json_body(response.model_dump()))

    async def list_models(self) -> Reply:
        """List enabled models in the OpenAI format."""
        models = await self.store.list_enabled_models()
        self.log_sink.append(f"Found {len(models)} enabled models")

        data = []
        for model in models:
            created_at = model.created_at.replace(tzinfo=timezone.utc)
            data.append(Model(
                id=model.model_id,
                created=int(created_at.timestamp()),
                owned_by=model.provider_type,
                name=model.name
            ))
        return Reply(200, json_body(ModelsListResponse(data=data).model_dump()))

    async def chat_completion(self, request: HttpRequest) -> Reply:
        """Decode, resolve and forward a chat completion."""
        try:
            completion = self.decode_chat_request(request.body)
            response = await self.request_router.route_request(completion)
        except (BodyDecodeError, ModelNotFoundError, UpstreamTransportError) as e:
            return self._error(e.status_code, e.message, request.path)

        return Reply(response.status_code, response.content)

    @staticmethod
    def decode_chat_request(body: Optional[bytes]) -> ChatCompletionRequest:
        if not body:
            raise BodyDecodeError("Invalid request body")
        try:
            return ChatCompletionRequest.model_validate_json(body)
        except ValidationError as e:
            logger.warning("Invalid chat completion body", errors=e.error_count())
            raise BodyDecodeError("Invalid request body") from e

    def _error(self, status_code: int, message: str, path: Optional[str] = None) -> Reply:
        path_info = f" [path: {path}]" if path else ""
        self.log_sink.append(f"Sending error response: {status_code} - {message}{path_info}")
        if path:
            self.log_sink.append(f"Full request URL: http://127.0.0.1:{self.port()}{path}")
        return Reply(status_code, error_body(message))

    async def respond(self, reply: Reply) -> None:
        """Write the complete response in one send, then close."""
        self.state = ConnectionState.RESPONDING
        payload = build_response(reply.body, reply.status_code)
        self.log_sink.append(
            f"Sending response, status code: {reply.status_code}, size: {len(payload)} bytes"
        )
        try:
            self.writer.write(payload)
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            self.log_sink.append(f"Failed to send response: {e}")
        else:
            self.log_sink.append("Response sent")
        finally:
            await self._close()

    async def _close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Connection closed with error", error=str(e))
        self.state = ConnectionState.CLOSED

