"""
Request router: resolves, sanitizes, forwards and records chat completions.
"""
from typing import Optional

from aiproxy.api.schemas import ChatCompletionRequest
from aiproxy.core.exceptions import UpstreamTransportError
from aiproxy.core.log_sink import LogSink
from aiproxy.core.logger import get_logger
from aiproxy.models.model_config import ModelConfig
from aiproxy.models.request_log import RequestLog
from aiproxy.providers.upstream import UpstreamForwarder, UpstreamResponse
from aiproxy.services.resolver import ModelResolver
from aiproxy.services.sanitizer import sanitize_messages
from aiproxy.services.store import ModelStore

logger = get_logger(__name__)

UPSTREAM_METHOD = "POST"
UPSTREAM_PATH = "/chat/completions"


class RequestRouter:
    """
    Route a decoded chat completion to its upstream model.

    Every call that reaches the forwarder records exactly one request log
    row and one log sink line, whether the exchange completed or not.
    """

    def __init__(
        self,
        store: ModelStore,
        forwarder: UpstreamForwarder,
        log_sink: LogSink
    ):
        """
        Initialize request router.

        Args:
            store: Model store
            forwarder: Upstream forwarder
            log_sink: Gateway log sink
        """
        self.store = store
        self.resolver = ModelResolver(store)
        self.forwarder = forwarder
        self.log_sink = log_sink

    async def route_request(self, request: ChatCompletionRequest) -> UpstreamResponse:
        """
        Forward a chat completion.

        Args:
            request: Decoded chat completion request

        Returns:
            Upstream response to relay

        Raises:
            ModelNotFoundError: If the model id has no enabled config
            UpstreamTransportError: If the upstream call failed
        """
        model = await self.resolver.resolve(request.model)

        sanitized = request.model_copy(
            update={"messages": sanitize_messages(request.messages)}
        )
        payload = sanitized.to_upstream_payload()

        try:
            response = await self.forwarder.forward(model, payload)
        except UpstreamTransportError as e:
            self.log_sink.append(f"Upstream request failed: {e.reason}")
            await self._record(model, None, e.duration, e.reason)
            raise

        self.log_sink.append(
            f"Upstream status: {response.status_code} ({response.duration:.2f}s)"
        )
        await self._record(model, response.status_code, response.duration, None)
        return response

    async def _record(
        self,
        model: ModelConfig,
        status_code: Optional[int],
        duration: float,
        error_message: Optional[str]
    ) -> None:
        entry = RequestLog(
            model=model.model_id,
            method=UPSTREAM_METHOD,
            path=UPSTREAM_PATH,
            status_code=status_code,
            duration=max(duration, 0.0),
            error_message=error_message
        )
        try:
            await self.store.add_request_log(entry)
        except Exception as e:
            # The server may already be stopped; a lost row must not fail the reply
            logger.error(f"Failed to log request: {str(e)}", model=model.model_id)
