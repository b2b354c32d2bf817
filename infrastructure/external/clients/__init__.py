"""
Protocol clients

Warmup clients for HTTP and gRPC targets sharing one connect-once contract.
"""
from .base import BaseProtocolClient
from .http_client import HttpClient
from .grpc_client import GrpcClient

__all__ = [
    "BaseProtocolClient",
    "HttpClient",
    "GrpcClient",
]
