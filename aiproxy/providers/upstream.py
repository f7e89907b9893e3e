"""
Upstream forwarder: issues provider calls and classifies their outcome.
"""
import ssl
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from aiproxy.core.config import settings
from aiproxy.core.exceptions import UpstreamTransportError
from aiproxy.core.log_sink import LogSink
from aiproxy.core.logger import get_logger
from aiproxy.models.model_config import ModelConfig

logger = get_logger(__name__)

# Classified transport failure reasons
TIMED_OUT = "timed-out"
NOT_CONNECTED = "not-connected"
CERTIFICATE_UNTRUSTED = "certificate-untrusted"


@dataclass
class UpstreamResponse:
    """A completed upstream exchange, relayed to the caller as-is."""
    status_code: int
    content: bytes
    duration: float


@dataclass
class ConnectionTestResult:
    """Outcome of a model connectivity test."""
    success: bool
    message: str
    duration: float


def _is_certificate_error(exc: BaseException) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_transport_error(exc: Exception) -> str:
    """
    Map a transport exception onto a short failure reason.

    Returns:
        ``timed-out``, ``certificate-untrusted``, ``not-connected`` or the
        exception's own description
    """
    if isinstance(exc, httpx.TimeoutException):
        return TIMED_OUT
    if _is_certificate_error(exc):
        return CERTIFICATE_UNTRUSTED
    if isinstance(exc, httpx.ConnectError):
        return NOT_CONNECTED
    return str(exc) or type(exc).__name__


def build_endpoint(api_url: str, path: str) -> str:
    return f"{api_url.rstrip('/')}/{path.lstrip('/')}"


class UpstreamForwarder:
    """
    Forwards chat completions to the configured provider.

    Exactly one attempt is made per call; there is no retry loop.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log_sink: Optional[LogSink] = None,
    ):
        """
        Initialize forwarder.

        Args:
            timeout: Request timeout in seconds for forwarded calls
            transport: Optional httpx transport (tests inject a mock)
            log_sink: Sink for human-readable progress lines
        """
        self.timeout = timeout or settings.request_timeout
        self.transport = transport
        self.log_sink = log_sink
        self._client: Optional[httpx.AsyncClient] = None

    def _log(self, message: str) -> None:
        if self.log_sink is not None:
            self.log_sink.append(message)

    async def get_client(self) -> httpx.AsyncClient:
        """
        Get or create the HTTP client.

        Returns:
            Async HTTP client
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                    keepalive_expiry=30.0
                )
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def prepare_headers(self, model: ModelConfig) -> Dict[str, str]:
        """
        Prepare upstream request headers.

        Returns:
            Headers dictionary
        """
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {model.api_key}",
            "User-Agent": f"{settings.app_name}/1.0"
        }

    async def forward(self, model: ModelConfig, payload: Dict[str, Any]) -> UpstreamResponse:
        """
        Send a chat completion to the model's provider.

        Args:
            model: Resolved model configuration
            payload: Sanitized request body

        Returns:
            The upstream response, whatever its status

        Raises:
            UpstreamTransportError: If the call did not complete
        """
        client = await self.get_client()
        url = build_endpoint(model.api_url, "chat/completions")
        headers = self.prepare_headers(model)

        logger.info("Forwarding chat completion", model=model.model_id, url=url, headers=headers)

        start_time = time.monotonic()
        try:
            response = await client.post(url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            duration = time.monotonic() - start_time
            reason = classify_transport_error(e)
            logger.error(
                "Upstream request failed",
                model=model.model_id,
                reason=reason,
                error=str(e)
            )
            raise UpstreamTransportError(reason, duration) from e
        except Exception as e:
            # Failures raised while building the request, e.g. a header that is not ASCII
            duration = time.monotonic() - start_time
            reason = str(e) or type(e).__name__
            logger.error(
                "Upstream request could not be sent",
                model=model.model_id,
                reason=reason,
                exc_info=True
            )
            raise UpstreamTransportError(reason, duration) from e

        duration = time.monotonic() - start_time
        logger.info(
            "Upstream responded",
            model=model.model_id,
            status_code=response.status_code,
            duration=round(duration, 3)
        )
        return UpstreamResponse(
            status_code=response.status_code,
            content=response.content,
            duration=duration
        )

    async def test_connection(self, model: ModelConfig) -> ConnectionTestResult:
        """
        Check that a model's provider is reachable with its key.

        Issues ``GET {api_url}/models`` with a fixed timeout.

        Args:
            model: Model configuration to test

        Returns:
            Connection test result
        """
        url = build_endpoint(model.api_url, "models")
        self._log(f"Testing model connection: {model.name} ({model.model_id})")
        self._log(f"API URL: {url}")

        start_time = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(settings.connection_test_timeout),
                transport=self.transport
            ) as client:
                self._log("Sending request to API...")
                response = await client.get(url, headers=self.prepare_headers(model))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            duration = time.monotonic() - start_time
            reason = classify_transport_error(e)
            message = {
                TIMED_OUT: "Request timed out",
                NOT_CONNECTED: "Network connection failed",
                CERTIFICATE_UNTRUSTED: "Server certificate is not trusted",
            }.get(reason, f"Connection failed: {reason}")
            self._log(f"Connection test failed: {message}")
            return ConnectionTestResult(False, message, duration)
        except Exception as e:
            duration = time.monotonic() - start_time
            message = f"Connection failed: {str(e) or type(e).__name__}"
            self._log(f"Connection test failed: {message}")
            return ConnectionTestResult(False, message, duration)

        duration = time.monotonic() - start_time
        self._log(f"Received response, status code: {response.status_code}")

        if response.status_code == 200:
            try:
                data = response.json().get("data")
            except (ValueError, AttributeError):
                data = None
            if isinstance(data, list):
                message = f"Connection succeeded, found {len(data)} models"
            else:
                message = "Connection succeeded"
            self._log(message)
            return ConnectionTestResult(True, message, duration)

        if response.status_code == 401:
            message = "Authentication failed, check the API key"
        else:
            self._log(f"API returned an error: {response.text}")
            message = f"API returned an error (status code: {response.status_code})"
        self._log(message)
        return ConnectionTestResult(False, message, duration)
