"""
gRPC warmup client

Connects lazily (once) to the target, discovers schemas through server
reflection and invokes methods by name with JSON-encoded messages, so no
generated stubs are needed for the target service.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import json
import re
import time
from typing import Any, Optional, Sequence

import grpc
from google.protobuf import json_format, message_factory
from google.protobuf.descriptor import MethodDescriptor
from google.protobuf.message import Message

from application.utils.descriptors import parse_headers
from core.logging_config import get_logger
from domain.common.exceptions import ConnectionFailedException
from domain.request.entity import GrpcRequest
from domain.response.entity import Response
from infrastructure.external.clients.base import BaseProtocolClient
from infrastructure.external.clients.reflection import ReflectionDescriptorSource, ReflectionError
from shared.codes import WarmupCode


logger = get_logger(__name__)

DIAL_TIMEOUT_SECONDS = 10.0

_WHITESPACE_RE = re.compile(r"\s*")


def metadata_from_headers(headers: Sequence[str]) -> list[tuple[str, str | bytes]]:
    """Build call metadata from ``"key: value"`` strings.

    Keys are lower-cased; values of ``-bin`` keys are base64-decoded when possible.
    """
    metadata: list[tuple[str, str | bytes]] = []
    for key, value in parse_headers(headers, lowercase_keys=True):
        if key.endswith("-bin"):
            try:
                metadata.append((key, base64.b64decode(value, validate=True)))
                continue
            except binascii.Error:
                metadata.append((key, value.encode("utf-8")))
                continue
        metadata.append((key, value))
    return metadata


def parse_messages(message: str, message_cls: type[Message], pool=None) -> list[Message]:
    """Parse zero or more concatenated JSON objects into protobuf messages."""
    decoder = json.JSONDecoder()
    messages: list[Message] = []
    idx = _WHITESPACE_RE.match(message, 0).end()
    while idx < len(message):
        obj, idx = decoder.raw_decode(message, idx)
        if not isinstance(obj, dict):
            raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
        messages.append(json_format.ParseDict(obj, message_cls(), descriptor_pool=pool))
        idx = _WHITESPACE_RE.match(message, idx).end()
    return messages


def _rpc_status(exc: grpc.RpcError) -> tuple[Optional[str], str]:
    code = exc.code() if callable(getattr(exc, "code", None)) else None
    details = exc.details() if callable(getattr(exc, "details", None)) else None
    return (code.name if code is not None else None), (details or str(exc))


class GrpcClient(BaseProtocolClient):
    """Warmup client for gRPC targets with server reflection enabled."""

    protocol = "grpc"

    def __init__(
        self,
        host: str,
        insecure: bool = False,
        timeout_seconds: int = 10,
        dial_timeout_seconds: float = DIAL_TIMEOUT_SECONDS,
        options: Optional[Sequence[tuple[str, Any]]] = None,
    ) -> None:
        super().__init__(host, insecure=insecure, timeout_seconds=timeout_seconds)
        self.dial_timeout_seconds = dial_timeout_seconds
        self._options = list(options or [])
        self._channel: Optional[grpc.aio.Channel] = None
        self._descriptor_source: Optional[ReflectionDescriptorSource] = None

    # Connection lifecycle
    def _create_channel(self) -> grpc.aio.Channel:
        if self.insecure:
            logger.info("grpc_client_insecure", host=self.host)
            return grpc.aio.insecure_channel(self.host, options=self._options)
        return grpc.aio.secure_channel(self.host, grpc.ssl_channel_credentials(), options=self._options)

    async def _dial(self) -> grpc.aio.Channel:
        channel = self._create_channel()
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=self.dial_timeout_seconds)
        except asyncio.TimeoutError as exc:
            await channel.close()
            raise ConnectionFailedException(
                f"gRPC dial: no connection to {self.host} within {self.dial_timeout_seconds}s",
                host=self.host,
                protocol=self.protocol,
                code=WarmupCode.DIAL_TIMEOUT,
            ) from exc
        except BaseException:
            await channel.close()
            raise
        return channel

    async def _reflect(
        self, channel: grpc.aio.Channel, metadata: Sequence[tuple[str, str | bytes]]
    ) -> ReflectionDescriptorSource:
        source = ReflectionDescriptorSource(channel, metadata=metadata, timeout=self.timeout_seconds)
        try:
            services = await source.list_services()
        except (grpc.RpcError, ReflectionError) as exc:
            raise ConnectionFailedException(
                f"gRPC reflection: {exc}",
                host=self.host,
                protocol=self.protocol,
                code=WarmupCode.REFLECTION_ERROR,
            ) from exc
        logger.debug("grpc_reflection_services", host=self.host, services=services)
        return source

    async def _connect(self, headers: Sequence[str]) -> None:
        logger.info("grpc_client_connecting", host=self.host)
        channel = await self._dial()
        try:
            source = await self._reflect(channel, metadata_from_headers(headers))
        except BaseException:
            await channel.close()
            raise
        self._channel = channel
        self._descriptor_source = source
        logger.info("grpc_client_connected", host=self.host)

    async def _close(self) -> None:
        channel, self._channel = self._channel, None
        self._descriptor_source = None
        if channel is not None:
            await channel.close()

    # Dispatch
    async def send_request(self, service_method: str, message: str, headers: Sequence[str] = ()) -> Response:
        """Invoke ``service_method`` with a JSON message.

        ``message`` is required; pass ``""`` when there is no payload. Never
        raises: connection and invocation failures are carried in the Response.
        """
        connect_error = await self._ensure_connected(headers)
        if connect_error is not None:
            logger.debug("grpc_client_unavailable", method=service_method, error=str(connect_error))
            return self._failed(connect_error)

        source = self._descriptor_source
        if source is None:
            # closed after the connect check
            return self._failed(self._connect_error or ConnectionFailedException(
                f"{self.protocol} client closed", host=self.host, protocol=self.protocol
            ))
        try:
            method = await source.find_method(service_method)
        except (ReflectionError, grpc.RpcError) as exc:
            return self._failed(self._invocation_error(
                f"gRPC method {service_method}: {exc}", code=WarmupCode.METHOD_NOT_FOUND
            ))

        request_cls = message_factory.GetMessageClass(method.input_type)
        try:
            requests = parse_messages(message, request_cls, pool=source.pool)
            if not method.client_streaming and len(requests) > 1:
                raise ValueError(f"method {service_method} is unary but received {len(requests)} request messages")
        except (ValueError, json_format.ParseError) as exc:
            return self._failed(self._invocation_error(
                f"gRPC message for {service_method}: {exc}", code=WarmupCode.MESSAGE_PARSE_ERROR
            ))

        metadata = metadata_from_headers(headers)
        started = time.perf_counter()
        try:
            responses = await self._invoke(method, requests, metadata)
        except grpc.RpcError as exc:
            ended = time.perf_counter()
            status, details = _rpc_status(exc)
            error = self._invocation_error(f"gRPC invoke {service_method}: {details}", status_code=status)
            logger.debug("grpc_invoke_failed", method=service_method, status=status, details=details)
            return self._response(started, ended, error=error, status_code=status)
        ended = time.perf_counter()

        for resp in responses:
            logger.debug(
                "grpc_response",
                method=service_method,
                message=json_format.MessageToJson(resp, descriptor_pool=source.pool),
            )
        return self._response(started, ended, status_code=grpc.StatusCode.OK.name)

    async def send(self, request: GrpcRequest, headers: Sequence[str] = ()) -> Response:
        return await self.send_request(request.service_method, request.message, headers)

    async def _invoke(
        self,
        method: MethodDescriptor,
        requests: list[Message],
        metadata: Sequence[tuple[str, str | bytes]],
    ) -> list[Message]:
        path = f"/{method.containing_service.full_name}/{method.name}"
        request_cls = message_factory.GetMessageClass(method.input_type)
        response_cls = message_factory.GetMessageClass(method.output_type)
        codec = dict(
            request_serializer=request_cls.SerializeToString,
            response_deserializer=response_cls.FromString,
        )
        call_kwargs = dict(metadata=tuple(metadata), timeout=self.timeout_seconds)

        if not method.client_streaming:
            # no payload means one default message
            request = requests[0] if requests else request_cls()
            if not method.server_streaming:
                rpc = self._channel.unary_unary(path, **codec)
                return [await rpc(request, **call_kwargs)]
            rpc = self._channel.unary_stream(path, **codec)
            return [resp async for resp in rpc(request, **call_kwargs)]

        if not method.server_streaming:
            rpc = self._channel.stream_unary(path, **codec)
            return [await rpc(iter(requests), **call_kwargs)]
        rpc = self._channel.stream_stream(path, **codec)
        return [resp async for resp in rpc(iter(requests), **call_kwargs)]
