"""Warmup request domain exports."""
from .entity import HttpMethod, Request, GrpcRequest

__all__ = ["HttpMethod", "Request", "GrpcRequest"]
