"""
Tests for the in-memory request/response correlator.

Tests cover:
- Request/response round trips and id generation
- Late, duplicate and unknown responses
- Timeouts and stop() rejecting pending requests
- Handler registration rules and notification delivery
"""

import asyncio
import re

import pytest

from droste_mcp.errors import CorrelationTimeoutError, RPCError, TransportError
from droste_mcp.transport import InMemoryTransport, PendingRequest, PendingState, generate_request_id


def echo_handler(transport):
    """Handler that answers every request on the next loop iteration."""

    def handler(message):
        loop = asyncio.get_running_loop()
        loop.call_soon(
            transport.deliver,
            {"jsonrpc": "2.0", "id": message["id"], "result": {"echo": message["params"]}},
        )

    return handler


async def started(timeout=1.0):
    transport = InMemoryTransport(timeout=timeout)
    await transport.start()
    return transport


class TestRoundTrip:
    """Correlating responses with callers."""

    @pytest.mark.asyncio
    async def test_send_resolves_with_result(self):
        transport = await started()
        transport.on_message(echo_handler(transport))

        result = await transport.send({"id": 1, "method": "tools/list", "params": {"a": 1}})

        assert result == {"echo": {"a": 1}}
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_generated_id_format(self):
        transport = await started()
        seen = []

        def handler(message):
            seen.append(message)
            transport.deliver({"id": message["id"], "result": "ok"})

        transport.on_message(handler)
        assert await transport.send({"method": "ping"}) == "ok"

        assert re.fullmatch(r"http-\d+-[0-9a-f]{7}", seen[0]["id"])
        assert seen[0]["jsonrpc"] == "2.0"
        assert seen[0]["params"] == {}

    def test_generated_ids_are_unique(self):
        ids = {generate_request_id() for _ in range(200)}
        assert len(ids) == 200

    @pytest.mark.asyncio
    async def test_concurrent_requests_resolve_independently(self):
        transport = await started()
        held = {}

        def handler(message):
            held[message["id"]] = message

        transport.on_message(handler)
        first = asyncio.ensure_future(transport.send({"id": "a", "method": "ping"}))
        second = asyncio.ensure_future(transport.send({"id": "b", "method": "ping"}))
        await asyncio.sleep(0)

        # Answer out of order
        transport.deliver({"id": "b", "result": "second"})
        transport.deliver({"id": "a", "result": "first"})

        assert await first == "first"
        assert await second == "second"

    @pytest.mark.asyncio
    async def test_response_without_result_resolves_with_message(self):
        transport = await started()
        transport.on_message(lambda m: transport.deliver({"id": m["id"], "jsonrpc": "2.0"}))

        result = await transport.send({"id": 7, "method": "ping"})

        assert result == {"id": 7, "jsonrpc": "2.0"}

    @pytest.mark.asyncio
    async def test_error_response_rejects_with_rpc_error(self):
        transport = await started()
        transport.on_message(
            lambda m: transport.deliver(
                {"id": m["id"], "error": {"code": -32601, "message": "Method not found: nope"}}
            )
        )

        with pytest.raises(RPCError) as exc_info:
            await transport.send({"id": 3, "method": "nope"})

        assert exc_info.value.code == -32601
        assert "Method not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_error_response_defaults(self):
        transport = await started()
        transport.on_message(lambda m: transport.deliver({"id": m["id"], "error": {}}))

        with pytest.raises(RPCError) as exc_info:
            await transport.send({"id": 4, "method": "ping"})

        assert exc_info.value.code == -32603
        assert exc_info.value.message == "MCP Server Error"


class TestLateAndUnknownResponses:
    """Responses that match nothing are logged and dropped."""

    @pytest.mark.asyncio
    async def test_second_delivery_is_ignored(self):
        transport = await started()
        transport.on_message(echo_handler(transport))

        result = await transport.send({"id": 1, "method": "ping", "params": {}})
        transport.deliver({"id": 1, "result": "late duplicate"})

        assert result == {"echo": {}}
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_unknown_id_does_not_raise(self):
        transport = await started()
        transport.deliver({"id": "never-sent", "result": {}})
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_malformed_messages_are_dropped(self):
        transport = await started()
        transport.deliver(None)
        transport.deliver("not a message")
        transport.deliver({"result": "no id and no method"})
        transport.deliver({"id": {"nested": True}, "result": 1})
        assert transport.pending_count == 0


class TestTimeouts:
    """Each pending request is bounded by the transport timeout."""

    @pytest.mark.asyncio
    async def test_timeout_rejects_and_removes_entry(self):
        transport = await started(timeout=0.05)
        transport.on_message(lambda message: None)

        with pytest.raises(CorrelationTimeoutError) as exc_info:
            await transport.send({"id": "slow", "method": "tools/call"})

        assert exc_info.value.request_id == "slow"
        assert not transport.is_pending("slow")

    @pytest.mark.asyncio
    async def test_response_after_timeout_is_ignored(self):
        transport = await started(timeout=0.05)
        transport.on_message(lambda message: None)

        with pytest.raises(CorrelationTimeoutError):
            await transport.send({"id": "slow", "method": "ping"})

        transport.deliver({"id": "slow", "result": "too late"})
        assert transport.pending_count == 0

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError, match="timeout must be positive"):
            InMemoryTransport(timeout=0)

    def test_pending_request_settles_once(self):
        loop = asyncio.new_event_loop()
        try:
            entry = PendingRequest(id=1, future=loop.create_future())
            assert entry.settle(result="first") is True
            assert entry.expire(TransportError("late")) is False
            assert entry.settle(result="second") is False
            assert entry.state is PendingState.SETTLED
            assert entry.future.result() == "first"
        finally:
            loop.close()


class TestSendPreconditions:
    """send() fails fast and registers nothing when it cannot proceed."""

    @pytest.mark.asyncio
    async def test_not_started(self):
        transport = InMemoryTransport()
        transport.on_message(lambda message: None)

        with pytest.raises(TransportError, match="not started"):
            await transport.send({"id": 1, "method": "ping"})

    @pytest.mark.asyncio
    async def test_no_handler_rejects_immediately(self):
        transport = await started()

        with pytest.raises(TransportError, match="handler not registered"):
            await transport.send({"id": 1, "method": "ping"})

        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_method_required(self):
        transport = await started()
        transport.on_message(lambda message: None)

        with pytest.raises(TransportError, match="'method'"):
            await transport.send({"id": 1})

    @pytest.mark.asyncio
    async def test_invalid_id_type(self):
        transport = await started()
        transport.on_message(lambda message: None)

        with pytest.raises(TransportError, match="string or number"):
            await transport.send({"id": [1], "method": "ping"})

    @pytest.mark.asyncio
    async def test_duplicate_pending_id(self):
        transport = await started()
        transport.on_message(lambda message: None)

        first = asyncio.ensure_future(transport.send({"id": "dup", "method": "ping"}))
        await asyncio.sleep(0)

        with pytest.raises(TransportError, match="already pending"):
            await transport.send({"id": "dup", "method": "ping"})

        transport.deliver({"id": "dup", "result": "ok"})
        assert await first == "ok"

    @pytest.mark.asyncio
    async def test_handler_exception_discards_entry(self):
        transport = await started()

        def broken(message):
            raise RuntimeError("boom")

        transport.on_message(broken)

        with pytest.raises(RuntimeError, match="boom"):
            await transport.send({"id": 1, "method": "ping"})

        assert transport.pending_count == 0


class TestLifecycle:
    """start/stop idempotence and handler registration."""

    @pytest.mark.asyncio
    async def test_stop_rejects_pending_requests(self):
        transport = await started()
        transport.on_message(lambda message: None)

        pending = asyncio.ensure_future(transport.send({"id": 1, "method": "ping"}))
        await asyncio.sleep(0)
        await transport.stop()

        with pytest.raises(TransportError, match="Transport stopped"):
            await pending
        assert transport.pending_count == 0
        assert not transport.is_started

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        transport = InMemoryTransport()
        await transport.start()
        await transport.start()
        assert transport.is_started

        await transport.stop()
        await transport.stop()
        assert not transport.is_started

    def test_second_handler_registration_raises(self):
        transport = InMemoryTransport()
        transport.on_message(lambda message: None)

        with pytest.raises(RuntimeError, match="already registered"):
            transport.on_message(lambda message: None)

    def test_handler_can_be_replaced_after_removal(self):
        transport = InMemoryTransport()
        transport.on_message(lambda message: None)
        transport.remove_message_handler()
        transport.on_message(lambda message: None)

    @pytest.mark.asyncio
    async def test_notifications_reach_listeners(self):
        transport = await started()
        received = []
        transport.on_notification(received.append)

        def failing_listener(message):
            raise ValueError("listener bug")

        transport.on_notification(failing_listener)
        transport.deliver({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"})

        assert received == [{"jsonrpc": "2.0", "method": "notifications/tools/list_changed"}]
