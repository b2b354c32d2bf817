"""Warmup response domain exports."""
from .entity import Response

__all__ = ["Response"]
