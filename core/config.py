"""
Warmup client configuration, read from the environment and an optional .env file.
"""
import json
from typing import Any, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


def _as_list(v: Any) -> Any:
    """Accept a list, a JSON array, or a single plain string (one item).

    Descriptors may legally contain commas (``{$random|a,b}``), so plain
    strings are never split.
    """
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                arr = json.loads(s)
                if isinstance(arr, list):
                    return arr
            except json.JSONDecodeError:
                pass
        return [s]
    return v


class HttpTargetSettings(BaseModel):
    enabled: bool = True
    host: str = "http://localhost:8080"
    # <method>:<path>[:body]
    requests: list[str] = Field(default_factory=lambda: ["get:/"])
    # "key: value"
    headers: list[str] = Field(default_factory=list)
    insecure: bool = False
    timeout_seconds: int = 10

    @field_validator("requests", "headers", mode="before")
    @classmethod
    def _parse_list(cls, v):
        return _as_list(v)


class GrpcTargetSettings(BaseModel):
    enabled: bool = False
    host: str = "localhost:50051"
    # <package.Service/Method>[:json message]
    requests: list[str] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)
    insecure: bool = False
    timeout_seconds: int = 10
    # Bounded wait for the channel to become ready, separate from the per-call timeout
    dial_timeout_seconds: float = 10.0

    @field_validator("requests", "headers", mode="before")
    @classmethod
    def _parse_list(cls, v):
        return _as_list(v)


class WarmupSettings(BaseModel):
    concurrency: int = Field(default=2, ge=1)
    max_duration_seconds: int = Field(default=60, ge=1)
    # 0 means the run is bounded by max_duration_seconds only
    max_requests: int = Field(default=0, ge=0)
    request_delay_ms: int = Field(default=0, ge=0)


class LogSettings(BaseModel):
    level: str = "INFO"
    # auto: console renderer when DEBUG is on, JSON lines otherwise
    format: Literal["auto", "json", "console"] = "auto"
    # stdlib loggers of the transport libraries, held at WARNING
    quiet_loggers: list[str] = Field(default_factory=lambda: ["httpx", "httpcore", "grpc"])

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("quiet_loggers", mode="before")
    @classmethod
    def _parse_list(cls, v):
        return _as_list(v)


class Settings(BaseSettings):
    """Top-level settings; nested groups use the "__" env delimiter (HTTP__HOST)."""

    PROJECT_NAME: str = Field(default="warmup-client")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)

    http: HttpTargetSettings = Field(default_factory=HttpTargetSettings)
    grpc: GrpcTargetSettings = Field(default_factory=GrpcTargetSettings)
    warmup: WarmupSettings = Field(default_factory=WarmupSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settings = Settings()
