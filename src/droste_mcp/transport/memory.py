"""
In-memory transport between an HTTP request path and the protocol server.

The HTTP wrapper calls ``send()`` with a JSON-RPC request; the transport
hands it synchronously to the protocol server's registered handler and
waits until the server calls ``deliver()`` with the matching response.
"""

import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from droste_mcp.errors import INTERNAL_ERROR, CorrelationTimeoutError, RPCError, TransportError

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 30.0

MessageHandler = Callable[[Dict[str, Any]], None]
NotificationListener = Callable[[Dict[str, Any]], None]


class PendingState(enum.Enum):
    REGISTERED = "registered"
    SETTLED = "settled"
    TIMED_OUT = "timed_out"


@dataclass
class PendingRequest:
    """
    A request waiting for its response.

    Transitions only out of REGISTERED; a settled or timed-out entry is
    never settled again.
    """

    id: Any
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = None
    state: PendingState = PendingState.REGISTERED

    def settle(self, result: Any = None, error: Optional[BaseException] = None) -> bool:
        """
        Resolve or reject the waiting caller.

        Returns:
            True if this call settled the entry, False if it was already final
        """
        if self.state is not PendingState.REGISTERED:
            return False
        self.state = PendingState.SETTLED
        self._finish(result, error)
        return True

    def expire(self, error: BaseException) -> bool:
        if self.state is not PendingState.REGISTERED:
            return False
        self.state = PendingState.TIMED_OUT
        self._finish(None, error)
        return True

    def _finish(self, result: Any, error: Optional[BaseException]) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            # Caller was cancelled; nothing left to notify
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)


def generate_request_id() -> str:
    """Generate a unique correlation id (http-<epoch ms>-<random>)."""
    return f"http-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class InMemoryTransport:
    """
    Correlates asynchronous protocol-server responses with waiting callers.

    Exactly one message handler may be registered. Each pending request is
    bounded by ``timeout`` seconds.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.is_started = False
        self._handler: Optional[MessageHandler] = None
        self._pending: Dict[Any, PendingRequest] = {}
        self._listeners: List[NotificationListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Called by the protocol server before it registers its handler."""
        logger.debug("InMemoryTransport: connect() called by protocol server")

    async def start(self) -> None:
        if self.is_started:
            logger.warning("InMemoryTransport: start() called but already started")
            return
        self.is_started = True
        logger.info("InMemoryTransport started")

    async def stop(self) -> None:
        """
        Stop accepting requests and reject everything still pending.

        Safe to call repeatedly.
        """
        if not self.is_started and not self._pending:
            logger.debug("InMemoryTransport: stop() called but not started")
            return
        self.is_started = False

        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.settle(error=TransportError("Transport stopped"))
        if pending:
            logger.warning(f"InMemoryTransport stopped with {len(pending)} pending request(s)")
        else:
            logger.info("InMemoryTransport stopped")

    async def disconnect(self) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on_message(self, handler: MessageHandler) -> None:
        """
        Register the protocol server's inbound message handler.

        Raises:
            RuntimeError: If a handler is already registered
        """
        if self._handler is not None:
            raise RuntimeError("InMemoryTransport: a message handler is already registered")
        self._handler = handler
        logger.debug("InMemoryTransport: message handler registered")

    def remove_message_handler(self) -> None:
        self._handler = None

    def on_notification(self, listener: NotificationListener) -> None:
        """Subscribe to notifications delivered by the protocol server."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: Any) -> bool:
        return request_id in self._pending

    async def send(self, request: Mapping[str, Any]) -> Any:
        """
        Send a request to the protocol server and wait for its response.

        Args:
            request: Mapping with "method" and optional "id" and "params"

        Returns:
            The response's ``result`` (or the whole response if it has none)

        Raises:
            TransportError: Not started, no handler, bad request or duplicate id
            RPCError: The protocol server answered with a JSON-RPC error
            CorrelationTimeoutError: No response within ``timeout`` seconds
        """
        if not self.is_started:
            raise TransportError("InMemoryTransport: Transport not started. Cannot send request.")
        if self._handler is None:
            raise TransportError(
                "InMemoryTransport: message handler not registered. Cannot send request."
            )
        if not isinstance(request, Mapping) or not request.get("method"):
            raise TransportError("InMemoryTransport: request must have a 'method' property.")

        message_id = request.get("id")
        if message_id is None:
            message_id = generate_request_id()
        elif not isinstance(message_id, (str, int)):
            raise TransportError("InMemoryTransport: request ID must be a string or number.")
        elif message_id in self._pending:
            raise TransportError(f"InMemoryTransport: request ID {message_id!r} is already pending")

        message = {
            "jsonrpc": "2.0",
            "id": message_id,
            "method": request["method"],
            "params": request.get("params") or {},
        }

        loop = asyncio.get_running_loop()
        entry = PendingRequest(id=message_id, future=loop.create_future())
        entry.timer = loop.call_later(self.timeout, self._expire, message_id)
        self._pending[message_id] = entry
        logger.debug(f"InMemoryTransport: [ID: {message_id}] sending {message['method']}")

        try:
            self._handler(message)
        except Exception:
            logger.exception(f"InMemoryTransport: handler failed for ID {message_id}")
            self._discard(message_id)
            raise

        try:
            return await entry.future
        finally:
            # No-op once settled; cleans up when the caller was cancelled
            self._discard(message_id)

    # ------------------------------------------------------------------
    # Response path
    # ------------------------------------------------------------------

    def deliver(self, message: Optional[Mapping[str, Any]]) -> None:
        """
        Route a message from the protocol server back to its caller.

        Never raises: unknown or malformed messages are logged and dropped.
        """
        if not isinstance(message, Mapping):
            logger.error(f"InMemoryTransport: dropped invalid message from server: {message!r}")
            return

        message_id = message.get("id")

        if message_id is None:
            if message.get("method"):
                self._emit_notification(dict(message))
            else:
                logger.warning(
                    f"InMemoryTransport: dropped message with no ID and no method: {message!r}"
                )
            return

        if not isinstance(message_id, (str, int)):
            logger.error(f"InMemoryTransport: dropped message with invalid ID {message_id!r}")
            return

        entry = self._pending.pop(message_id, None)
        if entry is None:
            logger.error(f"InMemoryTransport: received message for unknown request ID {message_id!r}")
            return

        error = message.get("error")
        if error is not None:
            if isinstance(error, Mapping):
                rpc_error = RPCError(
                    code=error.get("code", INTERNAL_ERROR),
                    message=error.get("message") or "MCP Server Error",
                    data=error.get("data"),
                )
            else:
                rpc_error = RPCError(code=INTERNAL_ERROR, message=str(error))
            entry.settle(error=rpc_error)
        else:
            entry.settle(result=message["result"] if "result" in message else dict(message))

    def _emit_notification(self, message: Dict[str, Any]) -> None:
        logger.debug(f"InMemoryTransport: notification {message.get('method')}")
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("InMemoryTransport: notification listener failed")

    def _expire(self, message_id: Any) -> None:
        entry = self._pending.pop(message_id, None)
        if entry is None:
            return
        if entry.expire(CorrelationTimeoutError(message_id, self.timeout)):
            logger.error(f"InMemoryTransport: request ID {message_id} timed out")

    def _discard(self, message_id: Any) -> None:
        entry = self._pending.pop(message_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
