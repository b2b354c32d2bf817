"""
Descriptor source backed by gRPC server reflection.

Resolves fully-qualified method names into protobuf descriptors at runtime so
calls can be encoded without generated stubs. Files are fetched lazily, per
service, and cached in a private descriptor pool.
"""
from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Sequence

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.descriptor import MethodDescriptor
from grpc_reflection.v1alpha import reflection_pb2, reflection_pb2_grpc

from core.logging_config import get_logger


logger = get_logger(__name__)


class ReflectionError(Exception):
    """The server answered a reflection request with an error, or not at all."""


def split_method_name(full_name: str) -> tuple[str, str]:
    """Split ``pkg.Service/Method`` (or ``pkg.Service.Method``) into service and method."""
    name = full_name.strip().lstrip("/")
    if "/" in name:
        service, _, method = name.rpartition("/")
    else:
        service, _, method = name.rpartition(".")
    if not service or not method:
        raise ReflectionError(
            f"given method name {full_name!r} is not in expected format: 'service/method' or 'service.method'"
        )
    return service, method


class ReflectionDescriptorSource:
    def __init__(
        self,
        channel: grpc.aio.Channel,
        metadata: Sequence[tuple[str, str | bytes]] = (),
        timeout: Optional[float] = None,
    ) -> None:
        self._stub = reflection_pb2_grpc.ServerReflectionStub(channel)
        self._metadata = tuple(metadata)
        self._timeout = timeout
        self._pool = descriptor_pool.DescriptorPool()
        self._loaded_files: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def pool(self) -> descriptor_pool.DescriptorPool:
        return self._pool

    async def _request(self, **kwargs) -> reflection_pb2.ServerReflectionResponse:
        request = reflection_pb2.ServerReflectionRequest(**kwargs)
        call = self._stub.ServerReflectionInfo(iter((request,)), metadata=self._metadata, timeout=self._timeout)
        try:
            async for response in call:
                if response.HasField("error_response"):
                    err = response.error_response
                    raise ReflectionError(f"{err.error_message} (code {err.error_code})")
                return response
        finally:
            call.cancel()
        raise ReflectionError("server closed the reflection stream without a response")

    async def list_services(self) -> list[str]:
        response = await self._request(list_services="")
        return [svc.name for svc in response.list_services_response.service]

    async def find_method(self, full_name: str) -> MethodDescriptor:
        service_name, method_name = split_method_name(full_name)
        async with self._lock:
            try:
                service = self._pool.FindServiceByName(service_name)
            except KeyError:
                response = await self._request(file_containing_symbol=service_name)
                await self._add_files(response.file_descriptor_response.file_descriptor_proto)
                try:
                    service = self._pool.FindServiceByName(service_name)
                except KeyError:
                    raise ReflectionError(f"target server does not expose service {service_name!r}") from None

        method = service.methods_by_name.get(method_name)
        if method is None:
            raise ReflectionError(f"service {service_name!r} does not include a method named {method_name!r}")
        return method

    async def _add_files(self, serialized: Iterable[bytes]) -> None:
        batch: dict[str, descriptor_pb2.FileDescriptorProto] = {}
        for raw in serialized:
            proto = descriptor_pb2.FileDescriptorProto.FromString(raw)
            batch[proto.name] = proto
        pending: set[str] = set()
        for name in list(batch):
            await self._add_file(name, batch, pending)

    async def _add_file(
        self,
        name: str,
        batch: dict[str, descriptor_pb2.FileDescriptorProto],
        pending: set[str],
    ) -> None:
        # dependencies go into the pool before the files that import them;
        # a file counts as loaded only once it is in the pool
        if name in self._loaded_files or name in pending:
            return
        proto = batch.get(name)
        if proto is None:
            response = await self._request(file_by_filename=name)
            for raw in response.file_descriptor_response.file_descriptor_proto:
                fetched = descriptor_pb2.FileDescriptorProto.FromString(raw)
                batch.setdefault(fetched.name, fetched)
            proto = batch.get(name)
            if proto is None:
                raise ReflectionError(f"server did not return file {name!r}")

        pending.add(name)
        try:
            for dependency in proto.dependency:
                await self._add_file(dependency, batch, pending)
            self._pool.AddSerializedFile(proto.SerializeToString())
        finally:
            pending.discard(name)
        self._loaded_files.add(name)
        logger.debug("grpc_reflection_file_loaded", file=name)
