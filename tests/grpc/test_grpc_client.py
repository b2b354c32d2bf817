import asyncio

import grpc
import pytest
from grpc_health.v1 import health, health_pb2, health_pb2_grpc
from grpc_reflection.v1alpha import reflection

from domain.common.exceptions import ConnectionFailedException, InvocationException
from infrastructure.external.clients.grpc_client import GrpcClient, metadata_from_headers, parse_messages
from infrastructure.external.clients.reflection import ReflectionError, split_method_name
from shared.codes import WarmupCode

HEALTH_CHECK = "grpc.health.v1.Health/Check"


async def _start_server(with_reflection: bool = True):
    server = grpc.aio.server()
    health_pb2_grpc.add_HealthServicer_to_server(health.aio.HealthServicer(), server)
    if with_reflection:
        service_names = (
            health_pb2.DESCRIPTOR.services_by_name["Health"].full_name,
            reflection.SERVICE_NAME,
        )
        reflection.enable_server_reflection(service_names, server)
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    return server, f"127.0.0.1:{port}"


@pytest.fixture
async def health_target():
    """In-process health server with reflection on an ephemeral port."""
    server, target = await _start_server()
    try:
        yield target
    finally:
        await server.stop(grace=None)


class FakeSource:
    def __init__(self):
        self.lookups = 0

    async def find_method(self, full_name):
        self.lookups += 1
        raise ReflectionError(f"no such method {full_name}")


class CountingGrpcClient(GrpcClient):
    """Replaces dial/reflection with counters so no server is needed."""

    def __init__(self, *args, fail_dial: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_dial = fail_dial
        self.dials = 0
        self.reflections = 0

    async def _dial(self):
        self.dials += 1
        await asyncio.sleep(0.05)
        if self.fail_dial:
            raise ConnectionFailedException("gRPC dial: refused", host=self.host, protocol=self.protocol)
        return object()

    async def _reflect(self, channel, metadata):
        self.reflections += 1
        return FakeSource()

    async def _close(self):
        self._channel = None
        self._descriptor_source = None


@pytest.mark.asyncio
async def test_concurrent_dispatches_connect_once():
    client = CountingGrpcClient("fake:1", insecure=True)
    first, second = await asyncio.gather(
        client.send_request("pkg.Svc/Call", "", []),
        client.send_request("pkg.Svc/Call", "", []),
    )

    assert client.dials == 1
    assert client.reflections == 1
    assert client.connected
    # connected, so both calls got as far as method resolution
    assert isinstance(first.error, InvocationException)
    assert isinstance(second.error, InvocationException)
    assert first.error.code == WarmupCode.METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_failed_connect_is_not_retried():
    client = CountingGrpcClient("fake:1", insecure=True, fail_dial=True)
    first = await client.send_request("pkg.Svc/Call", "", [])
    second = await client.send_request("pkg.Svc/Call", "{}", [])

    assert client.dials == 1
    assert client.reflections == 0
    assert isinstance(first.error, ConnectionFailedException)
    assert second.error is first.error
    assert first.duration.total_seconds() == 0
    assert second.duration.total_seconds() == 0
    assert first.protocol == second.protocol == "grpc"


@pytest.mark.asyncio
async def test_close_without_connect_is_noop():
    client = CountingGrpcClient("fake:1")
    assert await client.close() is None
    await client.close()
    assert client.dials == 0
    assert not client.connected


class ClosedMidDispatchClient(CountingGrpcClient):
    """Closes right after the connect check, before the method lookup."""

    async def _ensure_connected(self, headers=()):
        error = await super()._ensure_connected(headers)
        await self.close()
        return error


@pytest.mark.asyncio
async def test_close_during_dispatch_reports_closed_client():
    client = ClosedMidDispatchClient("fake:1", insecure=True)
    resp = await client.send_request("pkg.Svc/Call", "", [])

    assert client.dials == 1
    assert isinstance(resp.error, ConnectionFailedException)
    assert "closed" in str(resp.error)
    assert resp.duration.total_seconds() == 0


@pytest.mark.asyncio
async def test_unary_call_through_reflection(health_target):
    async with GrpcClient(health_target, insecure=True, timeout_seconds=5) as client:
        resp = await client.send_request(HEALTH_CHECK, '{"service": ""}', ["x-warmup: 1"])
        empty = await client.send_request(HEALTH_CHECK, "", [])

    assert resp.error is None
    assert resp.protocol == "grpc"
    assert resp.status_code == "OK"
    assert resp.duration.total_seconds() > 0
    assert empty.error is None


@pytest.mark.asyncio
async def test_invocation_error_is_reported_and_client_stays_usable(health_target):
    async with GrpcClient(health_target, insecure=True, timeout_seconds=5) as client:
        failed = await client.send_request(HEALTH_CHECK, '{"service": "unknown.Service"}', [])
        ok = await client.send_request(HEALTH_CHECK, '{"service": ""}', [])

    assert isinstance(failed.error, InvocationException)
    assert failed.error.status_code == "NOT_FOUND"
    assert failed.status_code == "NOT_FOUND"
    assert failed.duration.total_seconds() > 0
    assert ok.error is None


@pytest.mark.asyncio
async def test_unknown_method_and_bad_message(health_target):
    async with GrpcClient(health_target, insecure=True, timeout_seconds=5) as client:
        missing_method = await client.send_request("grpc.health.v1.Health/Nope", "", [])
        missing_service = await client.send_request("no.such.Service/Call", "", [])
        bad_json = await client.send_request(HEALTH_CHECK, "{not json", [])
        bad_field = await client.send_request(HEALTH_CHECK, '{"nope": 1}', [])
        too_many = await client.send_request(HEALTH_CHECK, '{} {}', [])

    assert missing_method.error.code == WarmupCode.METHOD_NOT_FOUND
    assert isinstance(missing_service.error, InvocationException)
    for resp in (bad_json, bad_field, too_many):
        assert isinstance(resp.error, InvocationException)
        assert resp.error.code == WarmupCode.MESSAGE_PARSE_ERROR


@pytest.mark.asyncio
async def test_connect_fails_without_reflection():
    server, target = await _start_server(with_reflection=False)
    try:
        client = GrpcClient(target, insecure=True, timeout_seconds=5)
        first = await client.send_request(HEALTH_CHECK, "", [])
        second = await client.send_request(HEALTH_CHECK, "", [])
        await client.close()
    finally:
        await server.stop(grace=None)

    assert isinstance(first.error, ConnectionFailedException)
    assert first.error.code == WarmupCode.REFLECTION_ERROR
    assert second.error is first.error


@pytest.mark.asyncio
async def test_dial_timeout():
    client = GrpcClient("127.0.0.1:1", insecure=True, timeout_seconds=1, dial_timeout_seconds=0.2)
    resp = await client.send_request(HEALTH_CHECK, "", [])
    await client.close()

    assert isinstance(resp.error, ConnectionFailedException)
    assert resp.error.code == WarmupCode.DIAL_TIMEOUT
    assert resp.duration.total_seconds() == 0


def test_metadata_from_headers():
    md = metadata_from_headers(["X-Request-Id: abc", "trace-bin: aGVsbG8=", "raw-bin: !!"])
    assert md == [("x-request-id", "abc"), ("trace-bin", b"hello"), ("raw-bin", b"!!")]


def test_parse_messages():
    cls = health_pb2.HealthCheckRequest
    assert parse_messages("", cls) == []
    assert parse_messages("  ", cls) == []
    msgs = parse_messages('{"service": "a"}\n{"service": "b"}', cls)
    assert [m.service for m in msgs] == ["a", "b"]
    with pytest.raises(ValueError):
        parse_messages("[1, 2]", cls)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("pkg.Svc/Call", ("pkg.Svc", "Call")),
        ("/pkg.Svc/Call", ("pkg.Svc", "Call")),
        ("pkg.Svc.Call", ("pkg.Svc", "Call")),
    ],
)
def test_split_method_name(name, expected):
    assert split_method_name(name) == expected


def test_split_method_name_rejects_bare_names():
    with pytest.raises(ReflectionError):
        split_method_name("Call")
