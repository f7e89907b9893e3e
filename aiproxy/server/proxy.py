"""
Proxy server: TCP listener with port fallback and observable state.
"""
import asyncio
import errno
from typing import Any, Callable, List, Optional

from aiproxy.core.config import settings
from aiproxy.core.exceptions import ServerStartError
from aiproxy.core.log_sink import LogSink
from aiproxy.core.logger import get_logger
from aiproxy.models.model_config import ModelConfig
from aiproxy.providers.upstream import ConnectionTestResult, UpstreamForwarder
from aiproxy.server.handler import ConnectionHandler
from aiproxy.services.router import RequestRouter
from aiproxy.services.store import ModelStore

logger = get_logger(__name__)

FALLBACK_PORTS = (3001, 3002, 3003, 8080, 8081)

StateObserver = Callable[[str, Any], None]


class ProxyServer:
    """
    Embedded AI API gateway.

    All connections are served as tasks on the running event loop, so a
    slow upstream call on one connection does not hold up the others.

    Observable state: ``is_running``, ``current_port`` and ``logs``.
    Observers registered with :meth:`subscribe` are told about changes to
    ``running`` and ``port``; log lines are observed on ``logs`` directly.
    """

    fallback_ports = FALLBACK_PORTS

    def __init__(
        self,
        store: Optional[ModelStore] = None,
        forwarder: Optional[UpstreamForwarder] = None,
        log_sink: Optional[LogSink] = None,
        host: Optional[str] = None,
    ):
        """
        Initialize proxy server.

        Args:
            store: Model store (defaults to the app database)
            forwarder: Upstream forwarder; created on start when omitted
            log_sink: Log sink shared with observers
            host: Listen address (defaults to all addresses)
        """
        self.store = store if store is not None else ModelStore()
        # An empty sink is falsy, so compare against None
        self.logs = log_sink if log_sink is not None else LogSink()
        self.forwarder = forwarder
        self.host = host or settings.host
        self.is_running = False
        self.current_port = settings.port
        self.request_router: Optional[RequestRouter] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()
        self._observers: List[StateObserver] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer called as ``observer(field, value)``.

        Returns:
            A callable that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, field: str, value: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(field, value)
            except Exception as e:
                logger.warning("State observer failed", field=field, error=str(e))

    def _set_running(self, running: bool) -> None:
        if self.is_running != running:
            self.is_running = running
            self._notify("running", running)

    def _set_port(self, port: int) -> None:
        if self.current_port != port:
            self.current_port = port
            self._notify("port", port)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def candidate_ports(self, preferred_port: int) -> List[int]:
        """Ports to try in order: the preferred one, then the fallbacks."""
        ports: List[int] = []
        for port in (preferred_port, *self.fallback_ports):
            if port not in ports:
                ports.append(port)
        return ports

    async def start(self, port: Optional[int] = None) -> None:
        """
        Start listening, falling back through the candidate ports.

        Does nothing while already running.

        Args:
            port: Preferred port (defaults to the configured port)

        Raises:
            ServerStartError: If every candidate port failed to bind
        """
        async with self._start_lock:
            if self.is_running:
                return
            await self._bind(settings.port if port is None else port)

    async def _bind(self, preferred_port: int) -> None:
        """Bind the first available candidate port and start serving."""
        await self._prepare_forwarding()

        last_error: Optional[OSError] = None
        candidates = self.candidate_ports(preferred_port)
        for candidate in candidates:
            try:
                server = await asyncio.start_server(
                    self._handle_connection,
                    host=self.host,
                    port=candidate,
                    reuse_address=True
                )
            except OSError as e:
                last_error = e
                self.logs.append(f"Port {candidate} unavailable: {e.strerror or e}")
                continue

            bound_port = server.sockets[0].getsockname()[1] if server.sockets else candidate
            self._server = server
            self._serve_task = asyncio.create_task(server.serve_forever())
            self._serve_task.add_done_callback(self._on_listener_done)
            self._set_port(bound_port)
            self._set_running(True)
            self.logs.append(f"Proxy server started, listening on port {bound_port}")
            await self._save_state(port=bound_port, is_running=True)
            return

        self.logs.append(f"Proxy server failed to start: {last_error}")
        raise ServerStartError(
            f"No candidate port could be bound: {last_error}",
            port=candidates[-1]
        ) from last_error

    async def stop(self) -> None:
        """
        Stop accepting connections.

        Connections already accepted, and their upstream calls, run to
        completion. Does nothing while stopped.
        """
        if not self.is_running and self._server is None:
            return

        self._close_listener()
        self._set_running(False)
        self.logs.append("Proxy server stopped")
        await self._save_state(is_running=False)

    async def close(self) -> None:
        """Stop the server and release the upstream client."""
        if self.is_running:
            await self.stop()
        if self.forwarder is not None:
            await self.forwarder.close()

    def _close_listener(self) -> None:
        if self._server is not None:
            self._server.close()
            self._server = None
        if self._serve_task is not None:
            task, self._serve_task = self._serve_task, None
            if not task.done():
                task.cancel()

    def _on_listener_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        self.logs.append(f"Server failed: {error}")
        if isinstance(error, PermissionError) or getattr(error, "errno", None) in (errno.EACCES, errno.EPERM):
            self.logs.append(
                "Hint: check that this process is permitted to accept network connections"
            )
        if self._serve_task is task:
            self._serve_task = None
        self._close_listener()
        self._set_running(False)
        self.logs.append("Proxy server stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        handler = ConnectionHandler(
            reader,
            writer,
            store=self.store,
            request_router=self.request_router,
            log_sink=self.logs,
            port=lambda: self.current_port,
        )
        await handler.run()

    # ------------------------------------------------------------------
    # Server configuration
    # ------------------------------------------------------------------

    async def _prepare_forwarding(self) -> None:
        if self.forwarder is None:
            timeout = settings.request_timeout
            try:
                server_config = await self.store.get_server_config()
                timeout = server_config.request_timeout or timeout
            except Exception as e:
                logger.error(f"Failed to load server config: {str(e)}")
            self.forwarder = UpstreamForwarder(timeout=timeout, log_sink=self.logs)
        elif self.forwarder.log_sink is None:
            self.forwarder.log_sink = self.logs

        self.request_router = RequestRouter(self.store, self.forwarder, self.logs)

    async def _save_state(self, **values) -> None:
        try:
            await self.store.update_server_config(**values)
        except Exception as e:
            logger.error(f"Failed to save server config: {str(e)}")

    # ------------------------------------------------------------------
    # Connectivity test
    # ------------------------------------------------------------------

    async def test_connection(self, model: ModelConfig) -> ConnectionTestResult:
        """
        Test a model's provider connection.

        Args:
            model: Model configuration to test

        Returns:
            Connection test result
        """
        if self.forwarder is None:
            self.forwarder = UpstreamForwarder(log_sink=self.logs)
        return await self.forwarder.test_connection(model)
